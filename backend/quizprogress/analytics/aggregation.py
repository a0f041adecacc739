"""Pure aggregation over quiz result records.

Every function here takes an already-filtered list of records and
returns fresh derived values; nothing is cached or updated in place.
An empty list is a valid input everywhere and yields zeros or empty
collections. Rounding is half-up so scores match what the mobile
client has always displayed (`round(62.5) == 63`, not 62).
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..models import QuizMode
from ..schemas import (
    AccuracyData,
    DifficultyBuckets,
    ProgressSummary,
    QuizAnalytics,
    QuizResultOut,
    SubjectAnalytics,
    TimeSeriesPoint,
    TopicAnalytics,
)
from .time_window import TimeRange, filter_by_time_range, to_datetime

EASY_THRESHOLD = 80
MEDIUM_THRESHOLD = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score_percentage(correct_answers: int, total_questions: int) -> int:
    """Percentage score of a single attempt; 0 for an attempt with no questions."""
    if total_questions <= 0:
        return 0
    return round_half_up(100.0 * correct_answers / total_questions)


def calculate_accuracy(records: Sequence) -> int:
    """Question-weighted correctness across `records`.

    Unlike `calculate_average_score`, a 20-question quiz counts twice as
    much as a 10-question one.
    """
    total_correct = sum(r.correct_answers for r in records)
    total_questions = sum(r.total_questions for r in records)
    if total_questions <= 0:
        return 0
    return round_half_up(100.0 * total_correct / total_questions)


def calculate_average_score(records: Sequence) -> int:
    """Quiz-weighted mean of per-attempt `score_percentage`."""
    if not records:
        return 0
    return round_half_up(sum(r.score_percentage for r in records) / len(records))


def calculate_average_time_per_question(records: Sequence) -> int:
    """Mean of every per-question duration across `records`, in ms."""
    times = [t for r in records for t in (r.time_per_question or [])]
    if not times:
        return 0
    return round_half_up(sum(times) / len(times))


def record_date(record) -> str:
    """UTC calendar date (`YYYY-MM-DD`) of a record's timestamp."""
    return to_datetime(record.timestamp).date().isoformat()


def prepare_time_series(records: Iterable) -> List[TimeSeriesPoint]:
    """Mean score per calendar date, oldest date first.

    ISO dates are zero-padded so sorting the strings sorts the dates.
    """
    by_date: Dict[str, List[int]] = defaultdict(list)
    for r in records:
        by_date[record_date(r)].append(r.score_percentage)
    return [
        TimeSeriesPoint(date=day, score=round_half_up(sum(scores) / len(scores)))
        for day, scores in sorted(by_date.items())
    ]


def classify_difficulty(score_percentage: int) -> str:
    if score_percentage >= EASY_THRESHOLD:
        return "easy"
    if score_percentage >= MEDIUM_THRESHOLD:
        return "medium"
    return "hard"


def prepare_difficulty_buckets(records: Iterable) -> DifficultyBuckets:
    """Bucket attempts by the score the user achieved on them.

    The label reflects performance ("this quiz was easy for the user"),
    not difficulty authored on the questions themselves.
    """
    counts = {"easy": 0, "medium": 0, "hard": 0}
    for r in records:
        counts[classify_difficulty(r.score_percentage)] += 1
    return DifficultyBuckets(**counts)


def _group(records: Iterable, key: Callable) -> Dict[str, list]:
    groups: Dict[str, list] = defaultdict(list)
    for r in records:
        k = key(r)
        if k:
            groups[k].append(r)
    return groups


def _rollup_fields(records: list) -> dict:
    return {
        "total_quizzes": len(records),
        "total_questions": sum(r.total_questions for r in records),
        "correct_answers": sum(r.correct_answers for r in records),
        "accuracy": calculate_accuracy(records),
        "average_score": calculate_average_score(records),
        "average_time_per_question": calculate_average_time_per_question(records),
        "total_time_ms": sum(r.duration_ms or 0 for r in records),
        "last_attempted": max(to_datetime(r.timestamp) for r in records),
    }


def _latest_title(records: list, attr: str, fallback: str) -> str:
    for r in sorted(records, key=lambda x: to_datetime(x.timestamp), reverse=True):
        title = getattr(r, attr, None)
        if title:
            return title
    return fallback


def summarize_subjects(records: Iterable) -> List[SubjectAnalytics]:
    """One rollup per subject, most recently attempted first.

    Records without a `subject_id` belong to no subject.
    """
    out = []
    for subject_id, rows in _group(records, lambda r: r.subject_id).items():
        out.append(SubjectAnalytics(
            id=subject_id,
            title=_latest_title(rows, "subject_title", subject_id),
            **_rollup_fields(rows),
        ))
    out.sort(key=lambda s: s.last_attempted, reverse=True)
    return out


def summarize_topics(records: Iterable) -> List[TopicAnalytics]:
    """One rollup per topic, most recently attempted first."""
    out = []
    for topic_id, rows in _group(records, lambda r: r.topic_id).items():
        subject_ids = [r.subject_id for r in rows if r.subject_id]
        out.append(TopicAnalytics(
            id=topic_id,
            title=_latest_title(rows, "topic_title", topic_id),
            subject_id=subject_ids[0] if subject_ids else None,
            **_rollup_fields(rows),
        ))
    out.sort(key=lambda t: t.last_attempted, reverse=True)
    return out


def summarize_overall(records: Sequence, streak: int = 0) -> QuizAnalytics:
    """Whole-history aggregate; `streak` comes from the streak state."""
    by_mode = {}
    for mode in QuizMode:
        rows = [r for r in records if QuizMode(r.mode) is mode]
        correct = sum(r.correct_answers for r in rows)
        total = sum(r.total_questions for r in rows)
        by_mode[mode] = AccuracyData(correct=correct, total=total, percentage=calculate_accuracy(rows))
    return QuizAnalytics(
        streak=streak,
        total_quizzes=len(records),
        accuracy=calculate_accuracy(records),
        average_score=calculate_average_score(records),
        by_mode=by_mode,
        last_quiz_at=max((to_datetime(r.timestamp) for r in records), default=None),
    )


def build_progress_summary(
    time_range: TimeRange,
    history: Sequence,
    subjects: Sequence[SubjectAnalytics],
    topics: Sequence[TopicAnalytics],
    overall: QuizAnalytics,
    now: Optional[datetime] = None,
) -> ProgressSummary:
    """Filter every input by `time_range` and assemble a full summary.

    All windowed values are computed from the same filtered history so
    accuracy, average score, trend and buckets always agree. The streak
    is a whole-history figure and is passed through unfiltered.
    """
    time_range = TimeRange(time_range)
    filtered = filter_by_time_range(history, time_range, field="timestamp", now=now)
    filtered.sort(key=lambda r: to_datetime(r.timestamp), reverse=True)
    return ProgressSummary(
        time_range=time_range,
        total_quizzes=len(filtered),
        accuracy=calculate_accuracy(filtered),
        average_score=calculate_average_score(filtered),
        streak=overall.streak,
        time_series=prepare_time_series(filtered),
        difficulty_buckets=prepare_difficulty_buckets(filtered),
        history=[QuizResultOut.model_validate(r) for r in filtered],
        subjects=filter_by_time_range(subjects, time_range, now=now),
        topics=filter_by_time_range(topics, time_range, now=now),
    )
