"""
Community training sessions run by partner organisations.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, func, select

from lifecraft.db import (
    CommunitySessionRow,
    Database,
    ProfileRow,
    SessionRegistrationRow,
    utcnow,
)
from lifecraft.errors import ConflictError, InvalidRequestError, NotFoundError
from lifecraft.gamification import (
    ACTION_COMPLETED_SESSION,
    ACTION_REGISTERED_SESSION,
    record_activity,
)
from lifecraft.storage import StorageClient, certificate_key

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_REGISTERED = "registered"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"
STATUS_COMPLETED = "completed"

# Registrations that take a seat in the listing.
SEATED_STATUSES = (STATUS_REGISTERED, STATUS_APPROVED, STATUS_COMPLETED)
# Registrations that count against capacity when a new one arrives.
CAPACITY_STATUSES = (STATUS_REGISTERED, STATUS_APPROVED, STATUS_PENDING, STATUS_COMPLETED)

REGISTRATION_CONFLICTS = {
    STATUS_PENDING: "You have already registered for this session and your registration is pending approval.",
    STATUS_REGISTERED: "You have already been approved for this session.",
    STATUS_APPROVED: "You have already been approved for this session.",
    STATUS_COMPLETED: "You have already completed this session.",
    STATUS_DECLINED: "Your previous registration for this session was declined. Please contact an administrator.",
}

SESSION_FIELDS = (
    "title",
    "description",
    "organization",
    "category",
    "level",
    "date",
    "time",
    "location",
    "instructor",
    "capacity",
    "certified",
    "volunteer",
)


class CommunityService:
    def __init__(self, db: Database, storage: Optional[StorageClient] = None):
        self.db = db
        self.storage = storage

    def list_sessions(self, user_id: Optional[str] = None) -> list[dict]:
        """Sessions by date with seat counts and the caller's own registration."""
        with self.db.Session() as session:
            sessions = session.execute(
                select(CommunitySessionRow).order_by(CommunitySessionRow.date.asc())
            ).scalars().all()
            counts = dict(
                session.execute(
                    select(SessionRegistrationRow.session_id, func.count(SessionRegistrationRow.id))
                    .where(SessionRegistrationRow.status.in_(SEATED_STATUSES))
                    .group_by(SessionRegistrationRow.session_id)
                ).all()
            )
            own = {}
            if user_id:
                own = {
                    reg.session_id: reg
                    for reg in session.execute(
                        select(SessionRegistrationRow).where(
                            SessionRegistrationRow.user_id == user_id
                        )
                    ).scalars()
                }

        results = []
        for row in sessions:
            registered = counts.get(row.id, 0)
            reg = own.get(row.id)
            results.append(
                {
                    **row.as_dict(),
                    "registered_count": registered,
                    "available_spots": max(0, row.capacity - registered),
                    "user_registration": {"id": reg.id, "status": reg.status} if reg else None,
                }
            )
        return results

    def register_for_session(self, user_id: str, session_id: str) -> dict:
        with self.db.Session() as session:
            existing = session.execute(
                select(SessionRegistrationRow).where(
                    SessionRegistrationRow.user_id == user_id,
                    SessionRegistrationRow.session_id == session_id,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise ConflictError(
                    REGISTRATION_CONFLICTS.get(
                        existing.status, "You are already registered for this session."
                    )
                )
            community_session = session.get(CommunitySessionRow, session_id)
            if community_session is None:
                raise NotFoundError("Session not found.")
            taken = session.execute(
                select(func.count(SessionRegistrationRow.id)).where(
                    SessionRegistrationRow.session_id == session_id,
                    SessionRegistrationRow.status.in_(CAPACITY_STATUSES),
                )
            ).scalar_one()
            if taken >= community_session.capacity:
                raise ConflictError("This session is full. Please choose another session.")
            registration = SessionRegistrationRow(
                user_id=user_id, session_id=session_id, status=STATUS_PENDING
            )
            session.add(registration)
            session.commit()
        record_activity(self.db, user_id, ACTION_REGISTERED_SESSION, community_session.title)
        logger.info("User %s registered for session %s", user_id, session_id)
        return registration.as_dict()

    # -- admin ---------------------------------------------------------

    def list_registrations(self) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(SessionRegistrationRow, ProfileRow, CommunitySessionRow)
                .join(
                    CommunitySessionRow,
                    CommunitySessionRow.id == SessionRegistrationRow.session_id,
                )
                .join(ProfileRow, ProfileRow.id == SessionRegistrationRow.user_id, isouter=True)
                .order_by(SessionRegistrationRow.created_at.desc())
            ).all()
        return [
            {
                **registration.as_dict(),
                "profile": {
                    "full_name": profile.full_name,
                    "email": profile.email,
                    "role": profile.role,
                }
                if profile
                else None,
                "session": {
                    "title": community_session.title,
                    "date": community_session.date,
                    "time": community_session.time,
                    "location": community_session.location,
                    "organization": community_session.organization,
                    "certified": community_session.certified,
                    "instructor": community_session.instructor,
                },
            }
            for registration, profile, community_session in rows
        ]

    def _get_registration(self, session, registration_id: str) -> SessionRegistrationRow:
        registration = session.get(SessionRegistrationRow, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found.")
        return registration

    def update_registration_status(self, registration_id: str, status: str) -> dict:
        if status not in (STATUS_PENDING, STATUS_APPROVED, STATUS_DECLINED):
            raise InvalidRequestError("Status must be pending, approved or declined")
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            # An approved registration holds a seat.
            registration.status = STATUS_REGISTERED if status == STATUS_APPROVED else status
            session.commit()
            return registration.as_dict()

    def mark_session_complete(self, registration_id: str) -> dict:
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            community_session = session.get(CommunitySessionRow, registration.session_id)
            if community_session is None or not community_session.certified:
                raise InvalidRequestError("This session is not a certified training session.")
            registration.status = STATUS_COMPLETED
            registration.completed_at = utcnow()
            session.commit()
        record_activity(
            self.db, registration.user_id, ACTION_COMPLETED_SESSION, community_session.title
        )
        return registration.as_dict()

    def upload_certificate(self, registration_id: str, data: bytes) -> str:
        if self.storage is None:
            raise RuntimeError("CommunityService was created without storage")
        with self.db.Session() as session:
            registration = self._get_registration(session, registration_id)
            path = certificate_key("sessions", registration.user_id, registration.session_id)
            self.storage.upload_bytes(path, data)
            registration.certificate_path = path
            session.commit()
        return path

    def create_session(self, data: dict) -> dict:
        row = CommunitySessionRow()
        for key in SESSION_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        with self.db.Session() as session:
            session.add(row)
            session.commit()
        return row.as_dict()

    def update_session(self, session_id: str, data: dict) -> dict:
        with self.db.Session() as session:
            row = session.get(CommunitySessionRow, session_id)
            if row is None:
                raise NotFoundError("Session not found.")
            for key in SESSION_FIELDS:
                if key in data:
                    setattr(row, key, data[key])
            row.updated_at = utcnow()
            session.commit()
            return row.as_dict()

    def delete_session(self, session_id: str) -> None:
        with self.db.Session() as session:
            if session.get(CommunitySessionRow, session_id) is None:
                raise NotFoundError("Session not found.")
            session.execute(
                delete(SessionRegistrationRow).where(
                    SessionRegistrationRow.session_id == session_id
                )
            )
            session.execute(delete(CommunitySessionRow).where(CommunitySessionRow.id == session_id))
            session.commit()
