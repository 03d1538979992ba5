"""
Learning modules: lessons, quizzes, progress tracking and completion.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import delete, func, select

from lifecraft.badges import BadgeService
from lifecraft.db import (
    Database,
    LessonProgressRow,
    LessonRow,
    ModuleRow,
    ProfileRow,
    QuizQuestionRow,
    UserModuleRow,
    utcnow,
)
from lifecraft.errors import ConflictError, InvalidRequestError, NotFoundError
from lifecraft.gamification import (
    ACTION_COMPLETED_MODULE,
    ACTION_STARTED_MODULE,
    award_points,
    log_activity,
    round_half_up,
)

logger = logging.getLogger(__name__)

MAX_QUIZ_ATTEMPTS = 3
LESSON_PASS_SCORE = 70
MODULE_PASS_SCORE = 50

MODULE_FIELDS = (
    "title",
    "description",
    "category",
    "difficulty",
    "duration",
    "points",
    "lessons",
    "locked",
)
LESSON_FIELDS = ("title", "description", "content", "order_number", "duration")
QUESTION_FIELDS = ("question", "options", "correct_answer", "explanation", "order_number")


def _apply(row: Any, data: dict, fields: tuple[str, ...]) -> None:
    for key in fields:
        if key in data:
            setattr(row, key, data[key])


class ModuleService:
    def __init__(self, db: Database, badges: Optional[BadgeService] = None):
        self.db = db
        self.badges = badges

    # -- learner views -------------------------------------------------

    def list_modules(self, user_id: str) -> list[dict]:
        with self.db.Session() as session:
            modules = session.execute(
                select(ModuleRow).order_by(ModuleRow.created_at.asc())
            ).scalars().all()
            progress = {
                row.module_id: row
                for row in session.execute(
                    select(UserModuleRow).where(UserModuleRow.user_id == user_id)
                ).scalars()
            }
        results = []
        for module in modules:
            row = progress.get(module.id)
            item = module.as_dict()
            item["started"] = row is not None
            item["completed"] = bool(row and row.completed)
            item["score"] = row.score if row else None
            item["last_lesson_index"] = row.last_lesson_index if row else 0
            results.append(item)
        return results

    def get_module(self, module_id: str, include_answers: bool = False) -> dict:
        """The module with its ordered lessons and their quiz questions."""
        with self.db.Session() as session:
            module = session.get(ModuleRow, module_id)
            if module is None:
                raise NotFoundError("Module not found")
            lessons = session.execute(
                select(LessonRow)
                .where(LessonRow.module_id == module_id)
                .order_by(LessonRow.order_number.asc())
            ).scalars().all()
            questions = session.execute(
                select(QuizQuestionRow)
                .where(QuizQuestionRow.lesson_id.in_([lesson.id for lesson in lessons]))
                .order_by(QuizQuestionRow.order_number.asc())
            ).scalars().all()

        by_lesson: dict[str, list[dict]] = {}
        for question in questions:
            data = question.as_dict()
            if not include_answers:
                data.pop("correct_answer")
                data.pop("explanation")
            by_lesson.setdefault(question.lesson_id, []).append(data)

        result = module.as_dict()
        result["lesson_list"] = [
            {**lesson.as_dict(), "questions": by_lesson.get(lesson.id, [])}
            for lesson in lessons
        ]
        return result

    def get_completed_modules(self, user_id: str) -> list[dict]:
        with self.db.Session() as session:
            rows = session.execute(
                select(UserModuleRow, ModuleRow)
                .join(ModuleRow, ModuleRow.id == UserModuleRow.module_id)
                .where(UserModuleRow.user_id == user_id, UserModuleRow.completed.is_(True))
                .order_by(UserModuleRow.completed_at.desc())
            ).all()
        return [{**progress.as_dict(), "module": module.as_dict()} for progress, module in rows]

    # -- progress ------------------------------------------------------

    def start_module(self, user_id: str, module_id: str) -> None:
        with self.db.Session() as session:
            module = session.get(ModuleRow, module_id)
            if module is None:
                raise NotFoundError("Module not found")
            existing = session.execute(
                select(UserModuleRow).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.module_id == module_id
                )
            ).scalar_one_or_none()
            if existing is not None:
                return
            session.add(UserModuleRow(user_id=user_id, module_id=module_id))
            log_activity(session, user_id, ACTION_STARTED_MODULE, module.title)
            session.commit()
        logger.info("User %s started module %s", user_id, module_id)

    def submit_lesson_quiz(self, user_id: str, lesson_id: str, answers: list[int]) -> dict:
        """
        Grade a quiz attempt and record it against the lesson.

        A lesson allows three attempts. It counts as completed once the user
        scores 70% or has used every attempt; the latest score is kept.
        """
        with self.db.Session() as session:
            lesson = session.get(LessonRow, lesson_id)
            if lesson is None:
                raise NotFoundError("Lesson not found")
            questions = session.execute(
                select(QuizQuestionRow)
                .where(QuizQuestionRow.lesson_id == lesson_id)
                .order_by(QuizQuestionRow.order_number.asc())
            ).scalars().all()
            if not questions:
                raise InvalidRequestError("This lesson has no quiz")

            progress = session.execute(
                select(LessonProgressRow).where(
                    LessonProgressRow.user_id == user_id,
                    LessonProgressRow.lesson_id == lesson_id,
                )
            ).scalar_one_or_none()
            if progress is not None and progress.attempts >= MAX_QUIZ_ATTEMPTS:
                raise ConflictError(
                    f"You have already used all {MAX_QUIZ_ATTEMPTS} attempts for this quiz"
                )
            if progress is None:
                progress = LessonProgressRow(user_id=user_id, lesson_id=lesson_id, attempts=0)
                session.add(progress)

            correct = sum(
                1
                for index, question in enumerate(questions)
                if index < len(answers) and answers[index] == question.correct_answer
            )
            score = round_half_up(correct / len(questions) * 100)
            progress.attempts += 1
            progress.quiz_score = score
            progress.completed = progress.attempts >= MAX_QUIZ_ATTEMPTS or score >= LESSON_PASS_SCORE
            if progress.completed and progress.completed_at is None:
                progress.completed_at = utcnow()

            lesson_ids = session.execute(
                select(LessonRow.id)
                .where(LessonRow.module_id == lesson.module_id)
                .order_by(LessonRow.order_number.asc())
            ).scalars().all()
            user_module = session.execute(
                select(UserModuleRow).where(
                    UserModuleRow.user_id == user_id,
                    UserModuleRow.module_id == lesson.module_id,
                )
            ).scalar_one_or_none()
            if user_module is None:
                user_module = UserModuleRow(user_id=user_id, module_id=lesson.module_id)
                session.add(user_module)
            user_module.last_lesson_index = lesson_ids.index(lesson_id)
            session.commit()

            return {
                "score": score,
                "correct": correct,
                "total": len(questions),
                "attempts": progress.attempts,
                "attemptsRemaining": MAX_QUIZ_ATTEMPTS - progress.attempts,
                "completed": progress.completed,
            }

    def complete_module(self, user_id: str, module_id: str) -> dict:
        """
        Finish a module, award points for a passing score and queue a badge check.

        The overall score is the rounded mean of the attempted lessons' latest
        quiz scores. Points scale with the share of questions answered
        correctly and are only awarded on the first completion.
        """
        with self.db.Session() as session:
            module = session.get(ModuleRow, module_id)
            if module is None:
                raise NotFoundError("Module not found")
            if session.get(ProfileRow, user_id) is None:
                raise NotFoundError("Profile not found")

            user_module = session.execute(
                select(UserModuleRow).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.module_id == module_id
                )
            ).scalar_one_or_none()
            if user_module is not None and user_module.completed:
                return {
                    "alreadyCompleted": True,
                    "score": user_module.score,
                    "pointsEarned": 0,
                }

            attempted = session.execute(
                select(LessonProgressRow)
                .join(LessonRow, LessonRow.id == LessonProgressRow.lesson_id)
                .where(
                    LessonRow.module_id == module_id,
                    LessonProgressRow.user_id == user_id,
                    LessonProgressRow.attempts > 0,
                )
            ).scalars().all()
            score = (
                round_half_up(sum(p.quiz_score or 0 for p in attempted) / len(attempted))
                if attempted
                else 0
            )

            points_earned = 0
            if score >= MODULE_PASS_SCORE:
                question_counts = dict(
                    session.execute(
                        select(QuizQuestionRow.lesson_id, func.count(QuizQuestionRow.id))
                        .where(QuizQuestionRow.lesson_id.in_([p.lesson_id for p in attempted]))
                        .group_by(QuizQuestionRow.lesson_id)
                    ).all()
                )
                total_correct = 0
                total_questions = 0
                for progress in attempted:
                    count = question_counts.get(progress.lesson_id, 0)
                    total_correct += round_half_up((progress.quiz_score or 0) / 100 * count)
                    total_questions += count
                if total_questions:
                    points_earned = round_half_up(total_correct / total_questions * module.points)
                award_points(session, user_id, points_earned)

            log_activity(session, user_id, ACTION_COMPLETED_MODULE, module.title, points_earned)
            if user_module is None:
                user_module = UserModuleRow(user_id=user_id, module_id=module_id)
                session.add(user_module)
            user_module.completed = True
            user_module.score = score
            user_module.completed_at = utcnow()
            session.commit()

        logger.info(
            "User %s completed module %s with %d%% (+%d points)",
            user_id,
            module_id,
            score,
            points_earned,
        )
        if self.badges is not None:
            self.badges.enqueue_badge_job(user_id, module_id)
        return {"alreadyCompleted": False, "score": score, "pointsEarned": points_earned}

    def get_module_progress(self, user_id: str, module_id: str) -> dict:
        with self.db.Session() as session:
            lesson_ids = session.execute(
                select(LessonRow.id).where(LessonRow.module_id == module_id)
            ).scalars().all()
            attempted = session.execute(
                select(LessonProgressRow).where(
                    LessonProgressRow.user_id == user_id,
                    LessonProgressRow.lesson_id.in_(lesson_ids),
                    LessonProgressRow.attempts > 0,
                )
            ).scalars().all()
            user_module = session.execute(
                select(UserModuleRow).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.module_id == module_id
                )
            ).scalar_one_or_none()

        total = len(lesson_ids)
        average = (
            round_half_up(sum(p.quiz_score or 0 for p in attempted) / len(attempted))
            if attempted
            else 0
        )
        return {
            "progress": round_half_up(len(attempted) / total * 100) if total else 0,
            "completed_lessons": len(attempted),
            "total_lessons": total,
            "average_score": average,
            "completed": bool(user_module and user_module.completed),
            "final_score": user_module.score if user_module else None,
        }

    # -- admin ---------------------------------------------------------

    def create_module(self, data: dict) -> dict:
        module = ModuleRow()
        _apply(module, data, MODULE_FIELDS)
        with self.db.Session() as session:
            session.add(module)
            session.commit()
        return module.as_dict()

    def update_module(self, module_id: str, data: dict) -> dict:
        with self.db.Session() as session:
            module = session.get(ModuleRow, module_id)
            if module is None:
                raise NotFoundError("Module not found")
            _apply(module, data, MODULE_FIELDS)
            module.updated_at = utcnow()
            session.commit()
            return module.as_dict()

    def delete_module(self, module_id: str) -> None:
        """Delete a module with its lessons, questions and every user's progress."""
        with self.db.Session() as session:
            if session.get(ModuleRow, module_id) is None:
                raise NotFoundError("Module not found")
            lesson_ids = select(LessonRow.id).where(LessonRow.module_id == module_id)
            session.execute(
                delete(LessonProgressRow).where(LessonProgressRow.lesson_id.in_(lesson_ids))
            )
            session.execute(
                delete(QuizQuestionRow).where(QuizQuestionRow.lesson_id.in_(lesson_ids))
            )
            session.execute(delete(UserModuleRow).where(UserModuleRow.module_id == module_id))
            session.execute(delete(LessonRow).where(LessonRow.module_id == module_id))
            session.execute(delete(ModuleRow).where(ModuleRow.id == module_id))
            session.commit()
        logger.info("Deleted module %s", module_id)

    def _refresh_lesson_count(self, session, module_id: str) -> None:
        module = session.get(ModuleRow, module_id)
        module.lessons = session.execute(
            select(func.count(LessonRow.id)).where(LessonRow.module_id == module_id)
        ).scalar_one()

    def create_lesson(self, module_id: str, data: dict) -> dict:
        lesson = LessonRow(module_id=module_id)
        _apply(lesson, data, LESSON_FIELDS)
        with self.db.Session() as session:
            if session.get(ModuleRow, module_id) is None:
                raise NotFoundError("Module not found")
            session.add(lesson)
            session.flush()
            self._refresh_lesson_count(session, module_id)
            session.commit()
        return lesson.as_dict()

    def update_lesson(self, lesson_id: str, data: dict) -> dict:
        with self.db.Session() as session:
            lesson = session.get(LessonRow, lesson_id)
            if lesson is None:
                raise NotFoundError("Lesson not found")
            _apply(lesson, data, LESSON_FIELDS)
            session.commit()
            return lesson.as_dict()

    def delete_lesson(self, lesson_id: str) -> None:
        with self.db.Session() as session:
            lesson = session.get(LessonRow, lesson_id)
            if lesson is None:
                raise NotFoundError("Lesson not found")
            module_id = lesson.module_id
            session.execute(
                delete(LessonProgressRow).where(LessonProgressRow.lesson_id == lesson_id)
            )
            session.execute(delete(QuizQuestionRow).where(QuizQuestionRow.lesson_id == lesson_id))
            session.delete(lesson)
            session.flush()
            self._refresh_lesson_count(session, module_id)
            session.commit()

    def create_question(self, lesson_id: str, data: dict) -> dict:
        question = QuizQuestionRow(lesson_id=lesson_id)
        _apply(question, data, QUESTION_FIELDS)
        self._check_answer_index(question)
        with self.db.Session() as session:
            if session.get(LessonRow, lesson_id) is None:
                raise NotFoundError("Lesson not found")
            session.add(question)
            session.commit()
        return question.as_dict()

    def update_question(self, question_id: str, data: dict) -> dict:
        with self.db.Session() as session:
            question = session.get(QuizQuestionRow, question_id)
            if question is None:
                raise NotFoundError("Question not found")
            _apply(question, data, QUESTION_FIELDS)
            self._check_answer_index(question)
            session.commit()
            return question.as_dict()

    def delete_question(self, question_id: str) -> None:
        with self.db.Session() as session:
            question = session.get(QuizQuestionRow, question_id)
            if question is None:
                raise NotFoundError("Question not found")
            session.delete(question)
            session.commit()

    @staticmethod
    def _check_answer_index(question: QuizQuestionRow) -> None:
        if not 0 <= question.correct_answer < len(question.options or []):
            raise InvalidRequestError("correct_answer must index one of the options")

    def get_completed_users(self, module_id: str) -> list[dict]:
        """Users who completed a module, best score first."""
        with self.db.Session() as session:
            rows = session.execute(
                select(UserModuleRow, ProfileRow)
                .join(ProfileRow, ProfileRow.id == UserModuleRow.user_id, isouter=True)
                .where(UserModuleRow.module_id == module_id, UserModuleRow.completed.is_(True))
                .order_by(UserModuleRow.score.desc())
            ).all()
        return [
            {
                "user_id": progress.user_id,
                "score": progress.score or 0,
                "completed_at": progress.completed_at,
                "full_name": (profile.full_name if profile else None) or "Unknown User",
                "email": profile.email if profile else "No email",
            }
            for progress, profile in rows
        ]

    def reset_progress(self, user_id: str, module_id: str) -> None:
        with self.db.Session() as session:
            lesson_ids = select(LessonRow.id).where(LessonRow.module_id == module_id)
            session.execute(
                delete(LessonProgressRow).where(
                    LessonProgressRow.user_id == user_id,
                    LessonProgressRow.lesson_id.in_(lesson_ids),
                )
            )
            session.execute(
                delete(UserModuleRow).where(
                    UserModuleRow.user_id == user_id, UserModuleRow.module_id == module_id
                )
            )
            session.commit()
        logger.info("Reset module %s progress for user %s", module_id, user_id)
