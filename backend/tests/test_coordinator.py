import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from quizprogress.analytics import aggregation
from quizprogress.analytics.time_window import TimeRange
from quizprogress.coordinator import FETCH_FAILED_MESSAGE, ProgressDataCoordinator
from quizprogress.notifications import RESULT_SAVED, QuizDataChanged
from quizprogress.schemas import CoordinatorState, DifficultyBuckets
from quizprogress.store import QuizResultStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    """In-memory stand-in for QuizResultStore with failure and gating hooks."""

    def __init__(self, history=None, streak=0):
        self.history = list(history or [])
        self.streak = streak
        self.fail_on = set()
        self.gates = []
        self.calls = []

    async def _read(self, name):
        self.calls.append(name)
        if name == "history" and self.gates:
            await self.gates.pop(0).wait()
        if name in self.fail_on:
            raise RuntimeError(f"{name} storage unavailable: disk I/O error")

    async def get_quiz_history(self):
        await self._read("history")
        return list(self.history)

    async def get_all_subject_analytics(self):
        await self._read("subjects")
        return aggregation.summarize_subjects(self.history)

    async def get_all_topic_analytics(self):
        await self._read("topics")
        return aggregation.summarize_topics(self.history)

    async def get_quiz_analytics(self):
        await self._read("overall")
        return aggregation.summarize_overall(self.history, streak=self.streak)


def _coordinator(store, registry, time_range=TimeRange.WEEK):
    return ProgressDataCoordinator(store, time_range=time_range, notifications=registry, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_starts_idle_then_ready(registry, make_result):
    store = FakeStore([make_result(8, 10, timestamp=NOW)], streak=2)
    coord = _coordinator(store, registry)
    assert coord.state is CoordinatorState.IDLE
    assert coord.summary is None

    await coord.start()

    assert coord.state is CoordinatorState.READY
    assert coord.summary.total_quizzes == 1
    assert coord.summary.streak == 2
    assert store.calls == ["history", "subjects", "topics", "overall"]

    await coord.start()
    assert len(store.calls) == 4


@pytest.mark.asyncio
async def test_empty_history_is_ready_not_error(registry):
    coord = _coordinator(FakeStore(), registry, TimeRange.ALL)
    await coord.refresh()
    snap = coord.snapshot()
    assert snap.state is CoordinatorState.READY
    assert snap.error_message is None
    assert snap.summary.total_quizzes == 0
    assert snap.summary.accuracy == 0
    assert snap.summary.time_series == []
    assert snap.summary.difficulty_buckets == DifficultyBuckets(easy=0, medium=0, hard=0)


@pytest.mark.asyncio
async def test_month_window_drops_older_records(registry, make_result):
    history = [make_result(8, 10, timestamp=NOW), make_result(3, 10, timestamp=NOW - timedelta(days=40))]
    coord = _coordinator(FakeStore(history), registry)
    await coord.select_time_range("month")
    summary = coord.summary
    assert coord.time_range is TimeRange.MONTH
    assert (summary.total_quizzes, summary.accuracy, summary.average_score) == (1, 80, 80)
    assert summary.difficulty_buckets == DifficultyBuckets(easy=1, medium=0, hard=0)

    await coord.select_time_range(TimeRange.ALL)
    assert coord.summary.total_quizzes == 2
    assert coord.summary.accuracy == 55


@pytest.mark.asyncio
async def test_invalid_window_is_rejected(registry):
    coord = _coordinator(FakeStore(), registry)
    with pytest.raises(ValueError):
        await coord.select_time_range("fortnight")
    assert coord.time_range is TimeRange.WEEK
    assert coord.state is CoordinatorState.IDLE


@pytest.mark.asyncio
async def test_refresh_is_idempotent(registry, make_result):
    history = [make_result(6, 10, timestamp=NOW - timedelta(days=d), subject_id="s", topic_id="t") for d in range(5)]
    coord = _coordinator(FakeStore(history), registry)
    await coord.refresh()
    first = coord.summary
    await coord.refresh()
    assert coord.summary == first
    assert coord.summary.model_dump_json() == first.model_dump_json()


@pytest.mark.asyncio
async def test_fetch_failure_sets_generic_error_and_keeps_last_summary(registry, make_result, caplog):
    store = FakeStore([make_result(5, 5, timestamp=NOW)])
    coord = _coordinator(store, registry)
    await coord.refresh()
    good = coord.summary

    store.fail_on.add("topics")
    with caplog.at_level(logging.ERROR, logger="quizprogress.coordinator"):
        await coord.refresh()

    assert coord.state is CoordinatorState.ERROR
    assert coord.error_message == FETCH_FAILED_MESSAGE
    assert "disk I/O" not in coord.error_message
    assert coord.summary is good
    assert "disk I/O error" in caplog.text

    store.fail_on.clear()
    await coord.refresh()
    assert coord.state is CoordinatorState.READY
    assert coord.error_message is None


@pytest.mark.asyncio
async def test_previous_summary_visible_while_loading(registry, make_result):
    store = FakeStore([make_result(1, 2, timestamp=NOW)])
    coord = _coordinator(store, registry)
    await coord.refresh()
    before = coord.summary

    gate = asyncio.Event()
    store.gates.append(gate)
    store.history.append(make_result(2, 2, timestamp=NOW))
    task = asyncio.create_task(coord.refresh())
    await asyncio.sleep(0)

    assert coord.state is CoordinatorState.LOADING
    assert coord.summary is before
    assert before.total_quizzes == 1

    gate.set()
    await task
    assert coord.state is CoordinatorState.READY
    assert coord.summary.total_quizzes == 2


@pytest.mark.asyncio
async def test_superseded_refresh_cannot_overwrite_newer_result(registry, make_result):
    history = [make_result(1, 1, timestamp=NOW), make_result(0, 1, timestamp=NOW - timedelta(days=60))]
    store = FakeStore(history)
    coord = _coordinator(store, registry)

    gate = asyncio.Event()
    store.gates.append(gate)
    slow = asyncio.create_task(coord.refresh())
    await asyncio.sleep(0)

    await coord.select_time_range("all")
    assert coord.summary.time_range is TimeRange.ALL
    assert coord.summary.total_quizzes == 2

    gate.set()
    await slow
    assert coord.state is CoordinatorState.READY
    assert coord.summary.time_range is TimeRange.ALL
    assert coord.summary.total_quizzes == 2


@pytest.mark.asyncio
async def test_superseded_failure_does_not_flag_error(registry, make_result):
    store = FakeStore([make_result(1, 1, timestamp=NOW)])
    coord = _coordinator(store, registry)
    gate = asyncio.Event()
    store.gates.append(gate)
    store.fail_on.add("history")
    slow = asyncio.create_task(coord.refresh())
    await asyncio.sleep(0)

    store.fail_on.clear()
    await coord.refresh()
    store.fail_on.add("history")
    gate.set()
    await slow

    assert coord.state is CoordinatorState.READY
    assert coord.error_message is None


@pytest.mark.asyncio
async def test_change_notification_triggers_refresh(registry, make_result):
    store = FakeStore()
    coord = _coordinator(store, registry)
    await coord.start()
    assert coord.summary.total_quizzes == 0

    store.history.append(make_result(4, 5, timestamp=NOW))
    registry.publish(QuizDataChanged(RESULT_SAVED, record_id=store.history[0].id))
    await coord.wait_for_pending()

    assert coord.summary.total_quizzes == 1
    assert coord.summary.accuracy == 80


@pytest.mark.asyncio
async def test_notification_from_worker_thread_is_marshalled_to_loop(registry, make_result):
    store = FakeStore()
    coord = _coordinator(store, registry)
    await coord.start()

    store.history.append(make_result(1, 1, timestamp=NOW))
    await asyncio.to_thread(registry.publish, QuizDataChanged(RESULT_SAVED))
    await asyncio.sleep(0)
    await coord.wait_for_pending()

    assert coord.summary.total_quizzes == 1


@pytest.mark.asyncio
async def test_close_unsubscribes_and_discards_in_flight_result(registry, make_result):
    store = FakeStore([make_result(1, 1, timestamp=NOW)])
    coord = _coordinator(store, registry)
    assert registry.subscriber_count == 1

    gate = asyncio.Event()
    store.gates.append(gate)
    task = asyncio.create_task(coord.refresh())
    await asyncio.sleep(0)

    coord.close()
    coord.close()
    gate.set()
    await task

    assert registry.subscriber_count == 0
    assert coord.closed
    assert coord.summary is None

    calls = len(store.calls)
    registry.publish(QuizDataChanged(RESULT_SAVED))
    await coord.refresh()
    assert len(store.calls) == calls


@pytest.mark.asyncio
async def test_coordinator_with_sqlite_store(engine, registry, clock):
    store = QuizResultStore(engine, notifications=registry, clock=clock)
    coord = ProgressDataCoordinator(store, time_range="week", notifications=registry, clock=clock)
    await coord.start()
    assert coord.summary.total_quizzes == 0

    clock.now = NOW - timedelta(days=1)
    await store.save_quiz_results({"subject_id": "math", "correct_answers": 10, "total_questions": 10})
    await coord.wait_for_pending()
    clock.now = NOW
    await store.save_quiz_results({"subject_id": "math", "correct_answers": 6, "total_questions": 10})
    await coord.wait_for_pending()

    summary = coord.summary
    assert summary.total_quizzes == 2
    assert summary.accuracy == 80
    assert summary.streak == 2
    assert [(p.date, p.score) for p in summary.time_series] == [("2026-10-18", 100), ("2026-10-19", 60)]
    assert [s.id for s in summary.subjects] == ["math"]
    coord.close()
