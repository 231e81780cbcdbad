"""Exceptions raised for programmer misuse of the batch engine.

Expected collaborator failures never raise; they come back as structured
results. Only the conditions below do.
"""

from __future__ import annotations


class AutorunError(Exception):
    """Base class for autorun exceptions."""


class BatchAlreadyRunningError(AutorunError):
    """Raised when a batch is started for a session whose run is still alive."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Batch already running for session {session_id}")
        self.session_id = session_id


class BatchNotPausedError(AutorunError):
    """Raised when an error decision is issued for a session that is not paused."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"No error pause pending for session {session_id}")
        self.session_id = session_id


class ConfigError(AutorunError):
    """Raised when the configuration file cannot be parsed."""
