"""SQLModel data models.

This module defines the persisted tables: the append-only quiz result
log and the small streak state row maintained alongside it. Subject,
topic and overall analytics are never stored; they are derived from
`QuizResultRecord` rows on demand (see `analytics.aggregation`).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime.

    SQLite drops tzinfo on round-trip, so naive values read back from
    the database are taken to be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class QuizMode(str, Enum):
    PRACTICE = "Practice"
    TEST = "Test"


class QuizResultRecord(SQLModel, table=True):
    """One completed quiz attempt.

    Fields:
    - `subject_id`/`topic_id`: optional taxonomy references; absent for
      mixed or bookmark-review quizzes
    - `score_percentage`: `round(100 * correct_answers / total_questions)`
      fixed at creation time
    - `time_per_question`: per-question durations in milliseconds

    Rows are written once by `QuizResultService` and never updated.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    subject_id: Optional[str] = Field(default=None, index=True)
    subject_title: Optional[str] = None
    topic_id: Optional[str] = Field(default=None, index=True)
    topic_title: Optional[str] = None
    mode: QuizMode = QuizMode.PRACTICE
    timestamp: datetime = Field(default_factory=utc_now, index=True)
    correct_answers: int = 0
    total_questions: int = 0
    score_percentage: int = 0
    time_per_question: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    duration_ms: int = 0


class StreakState(SQLModel, table=True):
    """Single-row consecutive-activity state updated on every save."""
    id: Optional[int] = Field(default=1, primary_key=True)
    streak: int = 0
    last_quiz_at: Optional[datetime] = None
