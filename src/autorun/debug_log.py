"""Debug logging with an in-memory ring buffer.

Every entry records the batch session it was logged from, so the history of
one run can be exported on its own (``autorun run --log-file``). Records
from other libraries arrive through ``DebugLogHandler`` once
``setup_debug_logging`` has installed it.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from autorun.limits import MAX_LOG_MESSAGE_LENGTH

MAX_LOG_LINES = 2000
TRUNCATION_SUFFIX = "... [truncated]"


class LogSource(Enum):
    AUTORUN = "AR"
    LOGGING = "PY"


@dataclass(slots=True)
class LogEntry:
    level: str
    message: str
    timestamp: float
    source: LogSource
    session_id: str | None = None

    def format(self) -> str:
        ts = datetime.fromtimestamp(self.timestamp).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        session = f" ({self.session_id})" if self.session_id else ""
        return f"{ts} [{self.source.value}] [{self.level}]{session} {self.message}"


log_buffer: deque[LogEntry] = deque(maxlen=MAX_LOG_LINES)

# Each batch run executes in its own task, so the value is scoped to that run
_session: ContextVar[str | None] = ContextVar("autorun_log_session", default=None)


def set_log_session(session_id: str | None) -> None:
    """Tag entries logged from the current task (and tasks it spawns) with a session."""
    _session.set(session_id)


def current_log_session() -> str | None:
    return _session.get()


def _truncate(message: str) -> str:
    if len(message) > MAX_LOG_MESSAGE_LENGTH:
        return message[:MAX_LOG_MESSAGE_LENGTH] + TRUNCATION_SUFFIX
    return message


class AutorunLogger:
    """Buffers entries for export and forwards them to the ``autorun`` logger."""

    def __init__(self, name: str = "autorun") -> None:
        self._logger = logging.getLogger(name)

    def __call__(self, *args: object, **kwargs: Any) -> None:
        self.info(*args, **kwargs)

    def _log(self, level: int, *args: object, **kwargs: Any) -> None:
        parts = [str(arg) for arg in args]
        parts.extend(f"{key}={value!r}" for key, value in kwargs.items())
        message = _truncate(" ".join(parts))
        session_id = _session.get()
        log_buffer.append(
            LogEntry(
                level=logging.getLevelName(level),
                message=message,
                timestamp=time.time(),
                source=LogSource.AUTORUN,
                session_id=session_id,
            )
        )
        self._logger.log(level, message, extra={"autorun_session": session_id})

    def debug(self, *args: object, **kwargs: Any) -> None:
        self._log(logging.DEBUG, *args, **kwargs)

    def info(self, *args: object, **kwargs: Any) -> None:
        self._log(logging.INFO, *args, **kwargs)

    def warning(self, *args: object, **kwargs: Any) -> None:
        self._log(logging.WARNING, *args, **kwargs)

    def error(self, *args: object, **kwargs: Any) -> None:
        self._log(logging.ERROR, *args, **kwargs)


class DebugLogHandler(logging.Handler):
    """Copies third-party ``logging`` records into the debug buffer."""

    def emit(self, record: logging.LogRecord) -> None:
        # AutorunLogger buffers its own records before they reach logging
        if record.name == "autorun" or record.name.startswith("autorun."):
            return
        try:
            message = _truncate(self.format(record))
        except Exception:
            self.handleError(record)
            return
        log_buffer.append(
            LogEntry(
                level=record.levelname,
                message=message,
                timestamp=record.created,
                source=LogSource.LOGGING,
                session_id=_session.get(),
            )
        )


_handler: DebugLogHandler | None = None


def setup_debug_logging(level: int = logging.INFO) -> None:
    """Install the buffer handler on the root logger; later calls only adjust the level."""
    global _handler

    logging.getLogger("autorun").setLevel(level)
    if _handler is not None:
        return
    _handler = DebugLogHandler()
    _handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logging.getLogger().addHandler(_handler)
    log.debug("Debug logging initialized")


def clear_log_buffer() -> None:
    log_buffer.clear()


def session_entries(session_id: str) -> list[LogEntry]:
    """Entries logged while ``session_id`` was the active run."""
    return [entry for entry in log_buffer if entry.session_id == session_id]


def export_logs_to_file(file_path: str | Path, *, session_id: str | None = None) -> int:
    """Write buffered entries (optionally only one session's) to ``file_path``.

    Returns:
        Number of entries written.
    """
    entries = session_entries(session_id) if session_id else list(log_buffer)
    output_path = Path(file_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    scope = f"session {session_id}" if session_id else "all sessions"
    with output_path.open("w", encoding="utf-8") as f:
        f.write(f"# autorun debug log ({scope}), {len(entries)} entries\n\n")
        for entry in entries:
            f.write(entry.format() + "\n")
    return len(entries)


log = AutorunLogger()
