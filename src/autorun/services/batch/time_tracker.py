"""Visibility-aware elapsed time tracking for batch runs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from autorun.debug_log import log
from autorun.events import VisibilityChanged

if TYPE_CHECKING:
    from collections.abc import Callable

    from autorun.events import DomainEvent, EventBus


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(slots=True)
class _Tracker:
    accumulated_ms: float = 0.0
    resumed_at: float | None = None


class TimeTracker:
    """Accumulates active (visible) time per session.

    One ``VisibilityChanged`` handler is shared by every tracked session: when
    the host is hidden all trackers freeze, when it becomes visible again they
    resume. Time spent hidden never reaches the reported elapsed value.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        *,
        clock: Callable[[], float] = _monotonic_ms,
        visible: bool = True,
    ) -> None:
        self._clock = clock
        self._visible = visible
        self._trackers: dict[str, _Tracker] = {}
        self._event_bus = event_bus
        self._closed = False
        # Bound once so the identical object can be removed on close
        self._handler = self._on_visibility_event
        if event_bus is not None:
            event_bus.add_handler(self._handler, VisibilityChanged)

    @property
    def visible(self) -> bool:
        return self._visible

    def start_tracking(self, session_id: str) -> None:
        """Start (or restart from zero) tracking for a session."""
        now = self._clock()
        self._trackers[session_id] = _Tracker(resumed_at=now if self._visible else None)

    def stop_tracking(self, session_id: str) -> int:
        """Stop tracking and return the final active elapsed milliseconds."""
        tracker = self._trackers.pop(session_id, None)
        if tracker is None:
            return 0
        return self._elapsed(tracker)

    def get_elapsed_time(self, session_id: str) -> int:
        """Return the active elapsed milliseconds so far (0 when not tracked)."""
        tracker = self._trackers.get(session_id)
        if tracker is None:
            return 0
        return self._elapsed(tracker)

    def is_tracking(self, session_id: str) -> bool:
        return session_id in self._trackers

    def set_visible(self, visible: bool) -> None:
        """Freeze or resume every active tracker."""
        if visible == self._visible:
            return
        now = self._clock()
        self._visible = visible
        for tracker in self._trackers.values():
            if visible:
                tracker.resumed_at = now
            elif tracker.resumed_at is not None:
                tracker.accumulated_ms += now - tracker.resumed_at
                tracker.resumed_at = None
        log.debug(f"Time tracking {'resumed' if visible else 'paused'} for {len(self._trackers)}")

    def close(self) -> None:
        """Unsubscribe from visibility changes; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._event_bus is not None:
            self._event_bus.remove_handler(self._handler)
        self._trackers.clear()

    def _on_visibility_event(self, event: DomainEvent) -> None:
        if isinstance(event, VisibilityChanged):
            self.set_visible(event.visible)

    def _elapsed(self, tracker: _Tracker) -> int:
        total = tracker.accumulated_ms
        if tracker.resumed_at is not None:
            total += self._clock() - tracker.resumed_at
        return int(total)


__all__ = ["TimeTracker"]
