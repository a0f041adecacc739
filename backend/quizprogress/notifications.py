"""In-process publish/subscribe channel for quiz data changes.

Writers of quiz results publish a `QuizDataChanged` event on the
process-wide `change_notifications` registry after the write commits.
Readers that cache derived data (the progress coordinator) subscribe
when they are created and unsubscribe when torn down; the registry
keeps no state beyond the live subscriptions.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger("quizprogress.notifications")

RESULT_SAVED = "result_saved"
STORAGE_CLEARED = "storage_cleared"


@dataclass(frozen=True)
class QuizDataChanged:
    reason: str
    record_id: Optional[str] = None


Listener = Callable[[QuizDataChanged], None]


class Subscription:
    """Handle returned by `subscribe`; `unsubscribe` may be called repeatedly."""

    def __init__(self, registry: "ChangeNotificationRegistry", token: int):
        self._registry = registry
        self._token = token

    @property
    def active(self) -> bool:
        return self._registry._has(self._token)

    def unsubscribe(self) -> None:
        self._registry._remove(self._token)


class ChangeNotificationRegistry:
    def __init__(self) -> None:
        self._listeners: Dict[int, Listener] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._listeners[token] = listener
        return Subscription(self, token)

    def publish(self, event: QuizDataChanged) -> None:
        """Deliver `event` to every current listener.

        A failing listener is logged and does not stop delivery to the rest.
        """
        with self._lock:
            listeners = list(self._listeners.values())
        logger.debug("publishing %s to %d listener(s)", event.reason, len(listeners))
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("change listener failed for %s", event.reason)

    def clear(self) -> None:
        """Drop every subscription (process shutdown, test isolation)."""
        with self._lock:
            self._listeners.clear()

    def _has(self, token: int) -> bool:
        with self._lock:
            return token in self._listeners

    def _remove(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)


change_notifications = ChangeNotificationRegistry()
