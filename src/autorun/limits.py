"""Numeric limits and timeouts shared across autorun modules."""

from __future__ import annotations

DEBOUNCE_WINDOW_MS = 200
"""Quiet window before coalesced progress updates reach the store."""

MAX_CONSECUTIVE_NO_PROGRESS = 10
"""Successful agent runs that check nothing off before a document is abandoned."""

GIT_TIMEOUT = 60.0
PR_TIMEOUT = 120.0
SHUTDOWN_TIMEOUT = 5.0

MAX_LOG_MESSAGE_LENGTH = 4096
MAX_ACTION_JOURNAL = 1000
MAX_PR_TITLE_LENGTH = 120
RESPONSE_TAIL_CHARS = 2000
