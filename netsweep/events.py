"""
Event Log - structured scan events with a subscription registry

Every entry is also mirrored to the standard logging module so that
headless runs keep a record of what the scanners reported.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from netsweep.models import LogEntry, Severity

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.ERROR: logging.ERROR,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
}

Subscriber = Callable[[LogEntry], None]


class EventLog:
    """
    Thread-safe append-only event stream.

    Subscribers are called outside the internal lock, in the thread that
    emitted the event.
    """

    def __init__(self, max_entries: int = 5000):
        self._lock = threading.Lock()
        self._entries: List[LogEntry] = []
        self._offset = 0
        self._subscribers: List[Subscriber] = []
        self.max_entries = max_entries

    def emit(self, message: str, severity: Severity = Severity.INFO,
             details: Optional[Dict[str, Any]] = None) -> LogEntry:
        entry = LogEntry(message=message, severity=severity, details=dict(details or {}))
        with self._lock:
            self._entries.append(entry)
            # Drop the oldest entries but keep absolute indexes stable
            overflow = len(self._entries) - self.max_entries
            if overflow > 0:
                del self._entries[:overflow]
                self._offset += overflow
            subscribers = list(self._subscribers)

        logger.log(_LEVELS[severity], message)
        for callback in subscribers:
            try:
                callback(entry)
            except Exception as e:
                logger.error(f"Event subscriber failed: {e}")
        return entry

    def info(self, message: str, **details) -> LogEntry:
        return self.emit(message, Severity.INFO, details)

    def success(self, message: str, **details) -> LogEntry:
        return self.emit(message, Severity.SUCCESS, details)

    def error(self, message: str, **details) -> LogEntry:
        return self.emit(message, Severity.ERROR, details)

    def debug(self, message: str, **details) -> LogEntry:
        return self.emit(message, Severity.DEBUG, details)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    def entries(self, since: int = 0) -> List[LogEntry]:
        """Entries with absolute index >= since (older ones may have been dropped)."""
        with self._lock:
            start = max(since - self._offset, 0)
            return list(self._entries[start:])

    def __len__(self) -> int:
        with self._lock:
            return self._offset + len(self._entries)

    def clear(self):
        with self._lock:
            self._offset += len(self._entries)
            self._entries.clear()
