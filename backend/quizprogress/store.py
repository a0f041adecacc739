"""Async read/write facade over the quiz result log.

`QuizResultStore` is the only surface the progress coordinator reads
through. Each call opens its own short-lived session and runs the
blocking SQLModel work in a worker thread, so an awaiting caller is
suspended only at these I/O boundaries. Analytics returned here are
derived from the full log on every call.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, TypeVar, Union

from sqlalchemy.engine import Engine
from sqlmodel import Session

from . import database, repositories
from .analytics import aggregation
from .models import utc_now
from .notifications import (
    RESULT_SAVED,
    STORAGE_CLEARED,
    ChangeNotificationRegistry,
    QuizDataChanged,
    change_notifications,
)
from .schemas import QuizAnalytics, QuizResultIn, QuizResultOut, SubjectAnalytics, TopicAnalytics
from .services import QuizResultService, StreakService

T = TypeVar("T")


class QuizResultStore:
    def __init__(
        self,
        bind: Optional[Engine] = None,
        notifications: Optional[ChangeNotificationRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.bind = bind if bind is not None else database.engine
        self.notifications = notifications if notifications is not None else change_notifications
        self.clock = clock

    def _in_session(self, work: Callable[[Session], T]) -> T:
        with Session(self.bind, expire_on_commit=False) as session:
            return work(session)

    async def _run(self, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._in_session, work)

    @staticmethod
    def _history(session: Session) -> List[QuizResultOut]:
        rows = repositories.QuizResultRepository(session).list_all()
        return [QuizResultOut.model_validate(r) for r in rows]

    async def get_quiz_history(self) -> List[QuizResultOut]:
        """Full result history, newest first."""
        return await self._run(self._history)

    async def get_all_subject_analytics(self) -> List[SubjectAnalytics]:
        history = await self._run(self._history)
        return aggregation.summarize_subjects(history)

    async def get_all_topic_analytics(self) -> List[TopicAnalytics]:
        history = await self._run(self._history)
        return aggregation.summarize_topics(history)

    async def get_quiz_analytics(self) -> QuizAnalytics:
        """Overall aggregate including the current streak."""
        now = self.clock()

        def work(session: Session):
            history = self._history(session)
            streak = StreakService(session).current_streak(now)
            return history, streak

        history, streak = await self._run(work)
        return aggregation.summarize_overall(history, streak=streak)

    async def save_quiz_results(self, payload: Union[QuizResultIn, dict]) -> QuizResultOut:
        """Persist a completed quiz and notify subscribers.

        Raises ValueError for inconsistent counts; nothing is stored or
        published in that case.
        """
        if isinstance(payload, dict):
            payload = QuizResultIn(**payload)
        now = self.clock()

        def work(session: Session) -> QuizResultOut:
            record = QuizResultService(session).save_quiz_result(payload, now=now)
            return QuizResultOut.model_validate(record)

        saved = await self._run(work)
        self.notifications.publish(QuizDataChanged(RESULT_SAVED, record_id=saved.id))
        return saved

    async def clear_all(self) -> None:
        """Delete every stored result and the streak, then notify subscribers."""
        await self._run(lambda session: QuizResultService(session).clear_all())
        self.notifications.publish(QuizDataChanged(STORAGE_CLEARED))
