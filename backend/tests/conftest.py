import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Point the app at a throwaway database before any quizprogress import reads settings.
_DB_DIR = Path(tempfile.mkdtemp(prefix="quizprogress-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'app.db'}"

from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from quizprogress.analytics.aggregation import calculate_score_percentage
from quizprogress.database import create_db_and_tables
from quizprogress.notifications import ChangeNotificationRegistry
from quizprogress.schemas import QuizResultOut

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Settable clock for code that takes a `clock` callable."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def engine():
    """Fresh in-memory database shared across worker threads."""
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def registry():
    return ChangeNotificationRegistry()


@pytest.fixture
def make_result():
    """Build a stored-result value without touching the database."""
    def _make(correct, total, timestamp=NOW, subject_id=None, topic_id=None, mode="Practice", times=None, **extra):
        times = list(times or [])
        return QuizResultOut(
            id=uuid.uuid4().hex,
            subject_id=subject_id,
            topic_id=topic_id,
            mode=mode,
            timestamp=timestamp,
            correct_answers=correct,
            total_questions=total,
            score_percentage=calculate_score_percentage(correct, total),
            time_per_question=times,
            duration_ms=sum(times),
            **extra,
        )
    return _make
