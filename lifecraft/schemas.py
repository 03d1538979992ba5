"""
Pydantic schemas for the LifeCraft API.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


# -- auth ---------------------------------------------------------------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=200)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"


class RankInfo(BaseModel):
    current: str
    next: str
    nextPoints: int
    level: int


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: str
    points: int
    rank: str
    rank_info: RankInfo


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=128)


# -- badges and recommendations -----------------------------------------


class Badge(BaseModel):
    name: str
    description: str
    icon: str


class BadgesResponse(BaseModel):
    badges: list[str]
    source: Literal["cache", "database"]


class NewBadgesResponse(BaseModel):
    badges: list[Badge]


class Recommendation(BaseModel):
    moduleId: str
    title: str
    reason: str
    difficulty: Optional[str] = None
    points: int = 0


class RecommendationsResponse(BaseModel):
    fromCache: bool
    recommendations: list[Recommendation]
    responseTime: int
    source: str
    message: Optional[str] = None


# -- modules ------------------------------------------------------------


class ModuleCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: str = "Beginner"
    duration: Optional[str] = None
    points: int = Field(default=0, ge=0)
    locked: bool = False


class ModuleUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    duration: Optional[str] = None
    points: Optional[int] = Field(default=None, ge=0)
    locked: Optional[bool] = None


class LessonCreate(BaseModel):
    title: str
    description: Optional[str] = None
    content: str = ""
    order_number: int = 0
    duration: Optional[str] = None


class LessonUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    order_number: Optional[int] = None
    duration: Optional[str] = None


class QuestionCreate(BaseModel):
    question: str
    options: list[str] = Field(..., min_length=2)
    correct_answer: int = Field(..., ge=0)
    explanation: Optional[str] = None
    order_number: int = 0


class QuestionUpdate(BaseModel):
    question: Optional[str] = None
    options: Optional[list[str]] = None
    correct_answer: Optional[int] = Field(default=None, ge=0)
    explanation: Optional[str] = None
    order_number: Optional[int] = None


class QuizSubmission(BaseModel):
    answers: list[int]


class QuizResult(BaseModel):
    score: int
    correct: int
    total: int
    attempts: int
    attemptsRemaining: int
    completed: bool


class ModuleCompletion(BaseModel):
    alreadyCompleted: bool
    score: Optional[int] = None
    pointsEarned: int


# -- drills -------------------------------------------------------------


class DrillPage(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    type: str = "info"
    question: Optional[str] = None
    options: Optional[list[str]] = None
    correctAnswer: Optional[int] = None
    explanation: Optional[str] = None
    points: int = 0


class DrillCreate(BaseModel):
    title: str
    description: Optional[str] = None
    type: Literal["Virtual", "Physical"] = "Virtual"
    difficulty: str = "Beginner"
    duration: Optional[str] = None
    participants: Optional[str] = None
    points: int = Field(default=0, ge=0)
    location: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    instructor: Optional[str] = None
    pages: Optional[list[DrillPage]] = None


class DrillUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[Literal["Virtual", "Physical"]] = None
    difficulty: Optional[str] = None
    duration: Optional[str] = None
    participants: Optional[str] = None
    points: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    instructor: Optional[str] = None
    pages: Optional[list[DrillPage]] = None


class DrillCompletion(BaseModel):
    score: int = Field(..., ge=0, le=100)
    completion_seconds: float = Field(..., ge=0)
    is_retry: bool = False


class DrillCompletionResult(BaseModel):
    score: int
    completion_seconds: float
    pointsEarned: int
    improved: bool


class RegistrationStatusUpdate(BaseModel):
    status: Literal["pending", "approved", "declined"]


# -- community sessions -------------------------------------------------


class SessionCreate(BaseModel):
    title: str
    description: Optional[str] = None
    organization: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    date: dt.date
    time: str
    location: str
    instructor: Optional[str] = None
    capacity: int = Field(..., ge=0)
    certified: bool = False
    volunteer: bool = False


class SessionUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    organization: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    location: Optional[str] = None
    instructor: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    certified: Optional[bool] = None
    volunteer: Optional[bool] = None


# -- first aid ----------------------------------------------------------


class TutorialCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    duration: Optional[str] = None
    steps: int = Field(default=0, ge=0)
    type: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None


class TutorialUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    duration: Optional[str] = None
    steps: Optional[int] = Field(default=None, ge=0)
    type: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None


class TutorialStats(BaseModel):
    total: int
    completed: int
    inProgress: int
    completionRate: int


# -- notifications ------------------------------------------------------


class CompletionNotificationRequest(BaseModel):
    email: EmailStr
    fullName: str = Field(..., min_length=1)
    drillTitle: str = Field(..., min_length=1)
    drillDate: Optional[dt.date] = None
    drillLocation: Optional[str] = None


class NotificationResponse(BaseModel):
    success: bool
    messageId: str
    message: str = "Notification sent successfully"


class CertificateUploadResponse(BaseModel):
    path: str
    url: str


class StatusResponse(BaseModel):
    status: Literal["ok"] = "ok"
    detail: Optional[Any] = None
