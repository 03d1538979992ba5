"""
Accounts, password hashing and bearer tokens.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from lifecraft.config import Settings, get_settings
from lifecraft.db import Database, ProfileRow, utcnow
from lifecraft.errors import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    LifeCraftError,
    NotFoundError,
)
from lifecraft.mailer import Mailer, send_password_reset

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
ACCESS_PURPOSE = "access"
RESET_PURPOSE = "reset"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(
    user_id: str,
    settings: Settings,
    purpose: str = ACCESS_PURPOSE,
    lifetime_seconds: Optional[int] = None,
) -> str:
    if lifetime_seconds is None:
        lifetime_seconds = settings.jwt_lifetime_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "purpose": purpose,
        "iat": now,
        "exp": now + timedelta(seconds=lifetime_seconds),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings, purpose: str = ACCESS_PURPOSE) -> str:
    """Return the user id carried by ``token``."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Could not validate credentials") from exc
    if payload.get("purpose") != purpose or not payload.get("sub"):
        raise AuthenticationError("Could not validate credentials")
    return payload["sub"]


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequestError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


class AccountService:
    def __init__(
        self,
        db: Database,
        mailer: Optional[Mailer] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.mailer = mailer
        self.settings = settings or get_settings()

    def register(
        self, email: str, password: str, full_name: Optional[str] = None, role: str = "student"
    ) -> ProfileRow:
        _check_password(password)
        profile = ProfileRow(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
        )
        try:
            with self.db.Session() as session:
                session.add(profile)
                session.commit()
        except IntegrityError as exc:
            raise ConflictError("An account with this email already exists") from exc
        logger.info("Registered user %s", profile.id)
        return profile

    def authenticate(self, email: str, password: str) -> ProfileRow:
        with self.db.Session() as session:
            profile = session.execute(
                select(ProfileRow).where(ProfileRow.email == email.strip().lower())
            ).scalar_one_or_none()
        if profile is None or not verify_password(password, profile.password_hash):
            raise AuthenticationError("Incorrect email or password")
        return profile

    def login(self, email: str, password: str) -> str:
        profile = self.authenticate(email, password)
        return create_token(profile.id, self.settings)

    def get_profile(self, user_id: str) -> ProfileRow:
        with self.db.Session() as session:
            profile = session.get(ProfileRow, user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    def request_password_reset(self, email: str) -> Optional[str]:
        """
        Email a reset link when the address is registered.

        Returns the reset token, or None for unknown addresses. Delivery
        failures are logged, never reported to the caller.
        """
        with self.db.Session() as session:
            profile = session.execute(
                select(ProfileRow).where(ProfileRow.email == email.strip().lower())
            ).scalar_one_or_none()
        if profile is None:
            logger.info("Password reset requested for unknown email")
            return None

        token = create_token(
            profile.id,
            self.settings,
            purpose=RESET_PURPOSE,
            lifetime_seconds=self.settings.reset_token_lifetime_seconds,
        )
        if self.mailer is not None:
            link = f"{self.settings.password_reset_url}?token={token}"
            try:
                send_password_reset(self.mailer, profile.email, link)
            except LifeCraftError as exc:
                logger.warning("Password reset email not sent: %s", exc.message)
        return token

    def confirm_password_reset(self, token: str, new_password: str) -> None:
        user_id = decode_token(token, self.settings, purpose=RESET_PURPOSE)
        _check_password(new_password)
        with self.db.Session() as session:
            profile = session.get(ProfileRow, user_id)
            if profile is None:
                raise NotFoundError("Profile not found")
            profile.password_hash = hash_password(new_password)
            profile.updated_at = utcnow()
            session.commit()
        logger.info("Password reset for user %s", user_id)
