"""Progress data coordinator.

Owns the selected time window and the `ProgressSummary` shown for it.
Every trigger (first start, explicit refresh, window change, or a
change notification from a writer) rebuilds the summary from scratch:
the four store reads are awaited in sequence, the pure aggregation runs,
and only then is the new summary published by replacing the previous
object. Until that point the previous summary stays visible unchanged.

Overlapping refreshes are resolved by generation: each refresh takes a
new number and only the newest one may publish or report an error.
After `close()` in-flight results are dropped silently.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set

from .analytics.aggregation import build_progress_summary
from .analytics.time_window import TimeRange
from .models import utc_now
from .notifications import ChangeNotificationRegistry, QuizDataChanged, change_notifications
from .schemas import CoordinatorState, ProgressSnapshot, ProgressSummary

logger = logging.getLogger("quizprogress.coordinator")

FETCH_FAILED_MESSAGE = "Failed to load progress data"


class ProgressDataCoordinator:
    def __init__(
        self,
        store,
        time_range: TimeRange | str = TimeRange.WEEK,
        notifications: Optional[ChangeNotificationRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock
        self._time_range = TimeRange(time_range)
        self._state = CoordinatorState.IDLE
        self._summary: Optional[ProgressSummary] = None
        self._error_message: Optional[str] = None
        self._generation = 0
        self._closed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Task] = set()
        registry = notifications if notifications is not None else change_notifications
        self._subscription = registry.subscribe(self._on_data_changed)

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def time_range(self) -> TimeRange:
        return self._time_range

    @property
    def summary(self) -> Optional[ProgressSummary]:
        return self._summary

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            state=self._state,
            time_range=self._time_range,
            summary=self._summary,
            error_message=self._error_message,
        )

    async def start(self) -> None:
        """Initial load; a no-op unless the coordinator is still idle."""
        if self._state is CoordinatorState.IDLE:
            await self.refresh()

    async def select_time_range(self, time_range: TimeRange | str) -> None:
        """Switch the window and rebuild the summary for it.

        Raises ValueError for an unknown window; the current window is
        left untouched in that case.
        """
        self._time_range = TimeRange(time_range)
        await self.refresh()

    async def refresh(self) -> None:
        """Fetch, filter and aggregate for the current window.

        Store failures put the coordinator in the `error` state with a
        generic message; they are logged, never raised to the caller.
        """
        if self._closed:
            return
        self._loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation
        time_range = self._time_range
        self._state = CoordinatorState.LOADING
        try:
            history = await self.store.get_quiz_history()
            subjects = await self.store.get_all_subject_analytics()
            topics = await self.store.get_all_topic_analytics()
            overall = await self.store.get_quiz_analytics()
            summary = build_progress_summary(time_range, history, subjects, topics, overall, now=self.clock())
        except Exception:
            if not self._is_current(generation):
                logger.info("superseded progress refresh %d failed; ignoring", generation)
                return
            logger.exception("error loading progress data for window %s", time_range.value)
            self._error_message = FETCH_FAILED_MESSAGE
            self._state = CoordinatorState.ERROR
            return
        if not self._is_current(generation):
            logger.debug("discarding superseded progress refresh %d", generation)
            return
        self._summary = summary
        self._error_message = None
        self._state = CoordinatorState.READY
        logger.debug("progress refresh %d published (%s, %d quizzes)", generation, time_range.value, summary.total_quizzes)

    def close(self) -> None:
        """Tear down: stop listening and drop any in-flight results."""
        if self._closed:
            return
        self._closed = True
        self._subscription.unsubscribe()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _on_data_changed(self, event: QuizDataChanged) -> None:
        if self._closed:
            return
        logger.debug("quiz data changed (%s); scheduling refresh", event.reason)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._schedule_refresh()
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._schedule_refresh)
        else:
            logger.debug("no event loop available; refresh deferred until next explicit trigger")

    def _schedule_refresh(self) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_pending(self) -> None:
        """Await refreshes scheduled by change notifications."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
