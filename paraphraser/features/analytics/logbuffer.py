"""Server-side log buffer shipped with each usage payload.

Handler code records entries with log_info/log_warn/log_error/log_debug
during a request; the payload builder drains them once. The analytics
wrapper binds a fresh buffer per request through a context variable, so
concurrent requests never see each other's entries. Outside a request the
process-wide buffer is used.
"""

import logging
import threading
import time
from contextvars import ContextVar
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from paraphraser.core.config import analytics_disabled, settings

LogLevel = Literal["INFO", "WARNING", "ERROR", "DEBUG"]

_STDLIB_LEVELS = {
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "DEBUG": logging.DEBUG,
}

logger = logging.getLogger("paraphraser")


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int
    level: LogLevel
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)


class LogBuffer:
    """Insertion-ordered, lock-protected list of LogEntry.

    max_entries > 0 keeps only the newest entries; 0 never drops anything.
    """

    def __init__(self, max_entries: int = 0):
        self.max_entries = max_entries
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            if self.max_entries and len(self._entries) > self.max_entries:
                del self._entries[: len(self._entries) - self.max_entries]

    def drain(self) -> List[LogEntry]:
        with self._lock:
            entries, self._entries = self._entries, []
        return entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_process_buffer = LogBuffer(max_entries=settings.LOG_BUFFER_MAX_ENTRIES)
_request_buffer: ContextVar[Optional[LogBuffer]] = ContextVar("usage_log_buffer", default=None)


def current_log_buffer() -> LogBuffer:
    buffer = _request_buffer.get()
    return buffer if buffer is not None else _process_buffer


def bind_log_buffer(buffer: Optional[LogBuffer] = None) -> LogBuffer:
    """Give the current context its own buffer and return it."""
    if buffer is None:
        buffer = LogBuffer(max_entries=settings.LOG_BUFFER_MAX_ENTRIES)
    _request_buffer.set(buffer)
    return buffer


def record(level: LogLevel, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
    """Append one entry; context keys are free-form, including "level" or "message"."""
    if analytics_disabled():
        return
    context = dict(context or {})
    entry = LogEntry(timestamp=int(time.time() * 1000), level=level, message=message, context=context)
    current_log_buffer().append(entry)
    logger.log(_STDLIB_LEVELS[level], message, extra={"usage_context": context} if context else None)


def log_info(message: str, context: Optional[Mapping[str, Any]] = None) -> None:
    record("INFO", message, context)


def log_warn(message: str, context: Optional[Mapping[str, Any]] = None) -> None:
    record("WARNING", message, context)


def log_error(message: str, context: Optional[Mapping[str, Any]] = None) -> None:
    record("ERROR", message, context)


def log_debug(message: str, context: Optional[Mapping[str, Any]] = None) -> None:
    record("DEBUG", message, context)


def drain_logs() -> List[LogEntry]:
    """Return and clear everything in the current buffer."""
    return current_log_buffer().drain()
