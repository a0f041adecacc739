"""Parse quiz history exported from the mobile client.

The client keeps its history as a JSON array of camelCase result
objects (`subjectId`, `correctAnswers`, `timestamp` in epoch ms,
`attempts[].timeSpent`, ...). This module maps such an export onto
`QuizResultIn` payloads plus their original completion time so old
history can be loaded into the store.
"""

import json
import math
from datetime import datetime
from typing import List, Tuple, Union

from ..analytics.time_window import to_datetime
from ..schemas import QuizResultIn


def _count(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{name} must be finite")
    return int(value)


def _parse_item(item: dict) -> Tuple[QuizResultIn, datetime]:
    if not isinstance(item, dict):
        raise ValueError("history item must be an object")
    completed_at = to_datetime(item.get("timestamp", item.get("date")))
    if completed_at is None:
        raise ValueError("missing or invalid timestamp")
    attempts = item.get("attempts") or []
    if not isinstance(attempts, list):
        raise ValueError("attempts must be a list")
    times = [
        _count(a.get("timeSpent") or 0, "attempts[].timeSpent")
        for a in attempts
        if isinstance(a, dict)
    ]
    total = item.get("totalQuestions")
    total = len(attempts) if total is None else _count(total, "totalQuestions")
    correct = item.get("correctAnswers")
    if correct is None:
        raise ValueError("missing correctAnswers")
    duration = item.get("duration")
    payload = QuizResultIn(
        subject_id=item.get("subjectId") or None,
        subject_title=item.get("subject") or None,
        topic_id=item.get("topicId") or None,
        topic_title=item.get("quiz") or None,
        mode=item.get("mode") or "Practice",
        correct_answers=_count(correct, "correctAnswers"),
        total_questions=total,
        time_per_question=times if len(times) == total else [],
        duration_ms=_count(duration, "duration") if duration is not None else None,
    )
    return payload, completed_at


def parse_history_export(data: Union[bytes, str, list]) -> Tuple[List[Tuple[QuizResultIn, datetime]], List[dict]]:
    """Parse an exported history into `(payload, completed_at)` pairs.

    Returns the parsed items oldest first (so streaks replay in order)
    and a list of `{index, error}` dicts for items that were skipped.
    """
    if isinstance(data, (bytes, str)):
        data = json.loads(data)
    if not isinstance(data, list):
        raise ValueError("history export must be a JSON array")
    parsed = []
    errors = []
    for idx, item in enumerate(data):
        try:
            parsed.append(_parse_item(item))
        except ValueError as e:
            errors.append({"index": idx, "error": str(e)})
    parsed.sort(key=lambda pair: pair[1])
    return parsed, errors
