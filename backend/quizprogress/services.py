"""Business logic services used by the store and HTTP controllers.

`QuizResultService` is the single writer of quiz results: it validates
the submitted counts, fixes the score at creation time and keeps the
streak state in step with the log. `StreakService` owns the
consecutive-day rules.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from . import models, repositories
from .analytics.aggregation import calculate_score_percentage
from .schemas import QuizResultIn

logger = logging.getLogger("quizprogress.services")


class StreakService:
    """Track consecutive days with at least one completed quiz.

    Days are UTC calendar days, the same dates the score trend uses.
    """
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.StreakRepository(session)

    @staticmethod
    def next_streak(current: int, last_quiz_at: Optional[datetime], quiz_at: datetime) -> int:
        """Streak after a quiz at `quiz_at`.

        First quiz ever starts at 1, another quiz the same day keeps the
        streak, the next day extends it, anything else restarts it.
        """
        if last_quiz_at is None:
            return 1
        gap = (models.as_utc(quiz_at).date() - models.as_utc(last_quiz_at).date()).days
        if gap == 0:
            return max(current, 1)
        if gap == 1:
            return current + 1
        return 1

    def record_quiz(self, quiz_at: datetime) -> int:
        """Update the stored streak for a quiz completed at `quiz_at`.

        A quiz older than the last recorded one (imported history) leaves
        the state untouched, so `last_quiz_at` never moves backwards.
        """
        state = self.repo.get()
        current = state.streak if state else 0
        last = state.last_quiz_at if state else None
        if last is not None and models.as_utc(quiz_at) < models.as_utc(last):
            logger.info("streak unchanged for back-dated quiz at %s", models.as_utc(quiz_at).isoformat())
            return current
        streak = self.next_streak(current, last, quiz_at)
        self.repo.save(streak, quiz_at)
        return streak

    def current_streak(self, now: Optional[datetime] = None) -> int:
        """Stored streak, or 0 once a full day has passed without a quiz."""
        state = self.repo.get()
        if state is None or state.last_quiz_at is None:
            return 0
        now = models.as_utc(now) if now else models.utc_now()
        gap = (now.date() - models.as_utc(state.last_quiz_at).date()).days
        return 0 if gap > 1 else state.streak


class QuizResultService:
    """Create quiz result records."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.QuizResultRepository(session)
        self.streaks = StreakService(session)

    def save_quiz_result(self, payload: QuizResultIn, now: Optional[datetime] = None) -> models.QuizResultRecord:
        """Validate `payload`, persist it as a new record and bump the streak.

        Raises ValueError when the counts are inconsistent. The score is
        computed here, once, and never recomputed for a stored record.
        """
        self._validate(payload)
        timestamp = models.as_utc(now) if now else models.utc_now()
        times = list(payload.time_per_question)
        record = models.QuizResultRecord(
            subject_id=payload.subject_id,
            subject_title=payload.subject_title,
            topic_id=payload.topic_id,
            topic_title=payload.topic_title,
            mode=payload.mode,
            timestamp=timestamp,
            correct_answers=payload.correct_answers,
            total_questions=payload.total_questions,
            score_percentage=calculate_score_percentage(payload.correct_answers, payload.total_questions),
            time_per_question=times,
            duration_ms=payload.duration_ms if payload.duration_ms is not None else sum(times),
        )
        created = self.repo.create(record)
        streak = self.streaks.record_quiz(timestamp)
        logger.info("quiz result saved id=%s score=%s streak=%s", created.id, created.score_percentage, streak)
        return created

    def _validate(self, payload: QuizResultIn):
        """Raise ValueError for counts that cannot come from a real attempt."""
        if payload.correct_answers < 0 or payload.total_questions < 0:
            raise ValueError("answer counts must be >= 0")
        if payload.correct_answers > payload.total_questions:
            raise ValueError("correct_answers cannot exceed total_questions")
        if payload.time_per_question and len(payload.time_per_question) != payload.total_questions:
            raise ValueError("time_per_question must have one entry per question")
        if any(t < 0 for t in payload.time_per_question):
            raise ValueError("time_per_question entries must be >= 0")

    def clear_all(self) -> None:
        """Delete every stored result and the streak state."""
        self.repo.delete_all()
        self.streaks.repo.delete_all()
        logger.info("quiz result storage cleared")
