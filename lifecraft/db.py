"""
Relational storage for LifeCraft.

A single ``Database`` object owns the SQLAlchemy engine and session factory.
Service classes open short-lived sessions from it, one per operation. Any
SQLAlchemy URL works: Postgres in production, SQLite for local runs and tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _RowMixin:
    _hidden_columns: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        return {
            column.key: getattr(self, column.key)
            for column in self.__table__.columns
            if column.key not in self._hidden_columns
        }


Base = declarative_base(cls=_RowMixin)


class Database:
    """
    SQLAlchemy-backed storage. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for Database")
        engine_kwargs: dict = {"future": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every thread sees an empty database.
            engine_kwargs.update(
                poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
        elif not database_url.startswith("sqlite"):
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def reset(self) -> None:
        """Drop and recreate every table (useful in tests)."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)


class ProfileRow(Base):
    __tablename__ = "profiles"
    _hidden_columns = ("password_hash",)

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="student")
    points = Column(Integer, nullable=False, default=0)
    rank = Column(String, nullable=False, default="Beginner")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ModuleRow(Base):
    __tablename__ = "modules"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True, index=True)
    difficulty = Column(String, nullable=False, default="Beginner")
    duration = Column(String, nullable=True)
    points = Column(Integer, nullable=False, default=0)
    lessons = Column(Integer, nullable=False, default=0)
    locked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class LessonRow(Base):
    __tablename__ = "lessons"

    id = Column(String, primary_key=True, default=new_id)
    module_id = Column(String, ForeignKey("modules.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    order_number = Column(Integer, nullable=False, default=0)
    duration = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class QuizQuestionRow(Base):
    __tablename__ = "quiz_questions"

    id = Column(String, primary_key=True, default=new_id)
    lesson_id = Column(String, ForeignKey("lessons.id"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(Integer, nullable=False)
    explanation = Column(Text, nullable=True)
    order_number = Column(Integer, nullable=False, default=0)


class UserModuleRow(Base):
    __tablename__ = "user_modules"
    __table_args__ = (UniqueConstraint("user_id", "module_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    module_id = Column(String, ForeignKey("modules.id"), nullable=False, index=True)
    completed = Column(Boolean, nullable=False, default=False)
    score = Column(Integer, nullable=True)
    last_lesson_index = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class LessonProgressRow(Base):
    __tablename__ = "user_lesson_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    lesson_id = Column(String, ForeignKey("lessons.id"), nullable=False, index=True)
    completed = Column(Boolean, nullable=False, default=False)
    quiz_score = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class DrillRow(Base):
    __tablename__ = "drills"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False, default="Virtual")
    difficulty = Column(String, nullable=False, default="Beginner")
    duration = Column(String, nullable=True)
    participants = Column(String, nullable=True)
    points = Column(Integer, nullable=False, default=0)
    location = Column(String, nullable=True)
    date = Column(Date, nullable=True)
    time = Column(String, nullable=True)
    capacity = Column(Integer, nullable=True)
    instructor = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DrillContentRow(Base):
    __tablename__ = "drill_content"

    id = Column(String, primary_key=True, default=new_id)
    drill_id = Column(String, ForeignKey("drills.id"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    step_title = Column(String, nullable=False)
    step_description = Column(Text, nullable=True)
    step_type = Column(String, nullable=False, default="info")
    content = Column(JSON, nullable=False, default=dict)
    points = Column(Integer, nullable=False, default=0)


class UserDrillRow(Base):
    __tablename__ = "user_drills"
    __table_args__ = (UniqueConstraint("user_id", "drill_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    drill_id = Column(String, ForeignKey("drills.id"), nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    score = Column(Integer, nullable=True)
    completion_seconds = Column(Float, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    certificate_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class CommunitySessionRow(Base):
    __tablename__ = "community_sessions"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    organization = Column(String, nullable=True)
    category = Column(String, nullable=True)
    level = Column(String, nullable=True)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False)
    location = Column(String, nullable=False)
    instructor = Column(String, nullable=True)
    capacity = Column(Integer, nullable=False, default=0)
    certified = Column(Boolean, nullable=False, default=False)
    volunteer = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SessionRegistrationRow(Base):
    __tablename__ = "user_community_sessions"
    __table_args__ = (UniqueConstraint("user_id", "session_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    session_id = Column(
        String, ForeignKey("community_sessions.id"), nullable=False, index=True
    )
    status = Column(String, nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    certificate_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class TutorialRow(Base):
    __tablename__ = "first_aid_tutorials"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True, index=True)
    difficulty = Column(String, nullable=True)
    duration = Column(String, nullable=True)
    steps = Column(Integer, nullable=False, default=0)
    type = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    video_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class TutorialProgressRow(Base):
    __tablename__ = "user_tutorial_progress"
    __table_args__ = (UniqueConstraint("user_id", "tutorial_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    tutorial_id = Column(
        String, ForeignKey("first_aid_tutorials.id"), nullable=False, index=True
    )
    completed = Column(Boolean, nullable=False, default=False)
    completion_date = Column(DateTime(timezone=True), nullable=True)
    certificate_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ActivityRow(Base):
    __tablename__ = "activity_log"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    item = Column(String, nullable=True)
    points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class BadgeAwardRow(Base):
    __tablename__ = "badge_awards"
    __table_args__ = (UniqueConstraint("user_id", "badge_name"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    badge_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
