"""Per-session debouncing of high-frequency state updates."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from autorun.debug_log import log
from autorun.limits import DEBOUNCE_WINDOW_MS

if TYPE_CHECKING:
    from collections.abc import Callable

type Update = dict[str, Any]
type FlushCallback = Callable[[str, Update], None]
type MergeFunction = Callable[[Update, Update], Update]


def merge_updates(pending: Update, incoming: Update) -> Update:
    """Compose two partial updates; later values win field by field."""
    return {**pending, **incoming}


class SessionDebouncer:
    """Coalesces bursts of updates per key into a single flush.

    Each ``schedule`` call restarts the key's quiet window, so the flush fires
    ``delay_ms`` after the *last* call of a burst with every update of the burst
    merged together. After :meth:`close` no timer remains and no flush can fire,
    which keeps a torn-down session from being written to again.
    """

    def __init__(
        self,
        on_flush: FlushCallback,
        *,
        delay_ms: int = DEBOUNCE_WINDOW_MS,
        merge: MergeFunction = merge_updates,
    ) -> None:
        self._on_flush = on_flush
        self._delay = max(0, delay_ms) / 1000
        self._merge = merge
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._pending: dict[str, Update] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, key: str, update: Update, *, immediate: bool = False) -> None:
        """Queue ``update`` for ``key``; ``immediate`` flushes synchronously."""
        if self._closed:
            log.debug(f"Debouncer closed, dropping update for {key}")
            return

        pending = self._pending.get(key)
        self._pending[key] = update if pending is None else self._merge(pending, update)

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        if immediate:
            self._fire(key)
            return

        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self._delay, self._fire, key)

    def flush(self, key: str) -> None:
        """Deliver the pending update for ``key`` now, if there is one."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key in self._pending:
            self._fire(key)

    def flush_all(self) -> None:
        for key in list(self._pending):
            self.flush(key)

    def cancel(self, key: str) -> None:
        """Drop the pending update for ``key`` without delivering it."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._pending.pop(key, None)

    def has_pending(self, key: str) -> bool:
        return key in self._pending

    def close(self) -> None:
        """Cancel every timer synchronously and refuse further updates."""
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()

    def _fire(self, key: str) -> None:
        self._timers.pop(key, None)
        update = self._pending.pop(key, None)
        if update is None or self._closed:
            return
        try:
            self._on_flush(key, update)
        except Exception as exc:
            log.error(f"Debounced flush failed for {key}: {exc}")


__all__ = ["SessionDebouncer", "merge_updates"]
