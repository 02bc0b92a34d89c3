"""Per-run event bus.

Pipeline stages emit ``ResearchLog`` entries through the bus; the
orchestrator subscribes to forward them to the progress stream and the
server can subscribe to mirror them elsewhere. Entries are appended to
``history`` in emission order and never mutated.
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from .models import LogType, ResearchLog

logger = logging.getLogger(__name__)

Listener = Callable[[ResearchLog], None]


class EventBus:
    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self.history: List[ResearchLog] = []

    def add_listener(self, fn: Listener) -> None:
        """Subscribe to every log emitted on this bus."""
        with self._lock:
            self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(fn)
            except ValueError:
                pass

    def emit(
        self,
        type: LogType,
        message: str,
        details: Any = None,
        token_count: Optional[int] = None,
    ) -> ResearchLog:
        """Record a log entry and broadcast it to every listener."""
        entry = ResearchLog(type=type, message=message, details=details, token_count=token_count)
        with self._lock:
            self.history.append(entry)
            listeners = list(self._listeners)
        for fn in listeners:
            try:
                fn(entry)
            except Exception:
                logger.exception("Event listener failed for %s log", entry.type.value)
        return entry
