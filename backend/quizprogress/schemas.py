"""Pydantic request/response schemas.

Besides the API input/output shapes, this module holds the derived
analytics types produced by `analytics.aggregation`. They are plain
value objects: rebuilt from the result log on every request and never
persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .analytics.time_window import TimeRange
from .models import QuizMode, as_utc


class QuizResultIn(BaseModel):
    """Payload for recording a completed quiz."""
    subject_id: Optional[str] = None
    subject_title: Optional[str] = None
    topic_id: Optional[str] = None
    topic_title: Optional[str] = None
    mode: QuizMode = QuizMode.PRACTICE
    correct_answers: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    time_per_question: List[int] = Field(default_factory=list)
    duration_ms: Optional[int] = Field(default=None, ge=0)


class QuizResultOut(BaseModel):
    """A stored quiz result as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_id: Optional[str] = None
    subject_title: Optional[str] = None
    topic_id: Optional[str] = None
    topic_title: Optional[str] = None
    mode: QuizMode
    timestamp: datetime
    correct_answers: int
    total_questions: int
    score_percentage: int
    time_per_question: List[int] = Field(default_factory=list)
    duration_ms: int = 0

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class SubjectAnalytics(BaseModel):
    """Rollup of every stored result for one subject."""
    id: str
    title: str
    total_quizzes: int = 0
    total_questions: int = 0
    correct_answers: int = 0
    accuracy: int = 0
    average_score: int = 0
    average_time_per_question: int = 0
    total_time_ms: int = 0
    last_attempted: Optional[datetime] = None


class TopicAnalytics(SubjectAnalytics):
    """Rollup of every stored result for one topic."""
    subject_id: Optional[str] = None


class AccuracyData(BaseModel):
    correct: int = 0
    total: int = 0
    percentage: int = 0


class QuizAnalytics(BaseModel):
    """Whole-history aggregate; independent of the selected time window."""
    streak: int = 0
    total_quizzes: int = 0
    accuracy: int = 0
    average_score: int = 0
    by_mode: Dict[QuizMode, AccuracyData] = Field(default_factory=dict)
    last_quiz_at: Optional[datetime] = None


class TimeSeriesPoint(BaseModel):
    date: str
    score: int


class DifficultyBuckets(BaseModel):
    """Counts of attempts by how well the user scored.

    `easy` means the user scored 80 or more, `medium` 50 to 79 and
    `hard` below 50. These describe performance on the attempt, not
    difficulty authored on the questions.
    """
    easy: int = 0
    medium: int = 0
    hard: int = 0


class ProgressSummary(BaseModel):
    """Everything the progress screen shows for one time window."""
    time_range: TimeRange
    total_quizzes: int = 0
    accuracy: int = 0
    average_score: int = 0
    streak: int = 0
    time_series: List[TimeSeriesPoint] = Field(default_factory=list)
    difficulty_buckets: DifficultyBuckets = Field(default_factory=DifficultyBuckets)
    history: List[QuizResultOut] = Field(default_factory=list)
    # Whole-history rollups of subjects/topics last attempted inside the
    # window; their totals do not add up to `total_quizzes`.
    subjects: List[SubjectAnalytics] = Field(default_factory=list)
    topics: List[TopicAnalytics] = Field(default_factory=list)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ProgressSnapshot(BaseModel):
    """Current coordinator state as seen by presentation clients."""
    state: CoordinatorState
    time_range: TimeRange
    summary: Optional[ProgressSummary] = None
    error_message: Optional[str] = None
