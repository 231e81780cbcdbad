"""Polling helpers for tests that drive background batch runs."""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

# Slow CI runners get proportionally longer timeouts
TIMEOUT_SCALE: float = float(
    os.environ.get("AUTORUN_TEST_TIMEOUT_SCALE", "5" if os.environ.get("CI") else "1")
)


class _Pausable(Protocol):
    def is_paused(self, session_id: str) -> bool: ...


async def wait_until(
    predicate: Callable[[], bool],
    *,
    timeout: float = 5.0,
    interval: float = 0.01,
    description: str = "condition",
) -> None:
    """Poll ``predicate`` until it holds; raise TimeoutError naming ``description``."""
    scaled = timeout * TIMEOUT_SCALE
    try:
        async with asyncio.timeout(scaled):
            while not predicate():
                await asyncio.sleep(interval)
    except TimeoutError:
        raise TimeoutError(f"{description} not reached within {scaled}s") from None


async def wait_for_pause(
    runner: _Pausable, session_id: str = "s1", *, timeout: float = 5.0
) -> None:
    """Wait until the session's run is paused on an error decision."""
    await wait_until(
        lambda: runner.is_paused(session_id),
        timeout=timeout,
        description=f"error pause of {session_id}",
    )
