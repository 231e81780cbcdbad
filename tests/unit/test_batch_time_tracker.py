"""Tests for visibility-aware elapsed time tracking."""

from __future__ import annotations

import pytest

from autorun.bootstrap import InMemoryEventBus
from autorun.events import VisibilityChanged
from autorun.services.batch.time_tracker import TimeTracker

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def test_untracked_session_reports_zero() -> None:
    tracker = TimeTracker(clock=FakeClock())
    assert tracker.get_elapsed_time("s1") == 0
    assert tracker.stop_tracking("s1") == 0


def test_accumulates_visible_time() -> None:
    clock = FakeClock()
    tracker = TimeTracker(clock=clock)

    tracker.start_tracking("s1")
    clock.advance(1500)

    assert tracker.get_elapsed_time("s1") == 1500
    assert tracker.stop_tracking("s1") == 1500
    assert not tracker.is_tracking("s1")


def test_hidden_time_is_excluded() -> None:
    clock = FakeClock()
    tracker = TimeTracker(clock=clock)
    tracker.start_tracking("s1")

    clock.advance(100)
    tracker.set_visible(False)
    clock.advance(10_000)
    assert tracker.get_elapsed_time("s1") == 100

    tracker.set_visible(True)
    clock.advance(50)
    assert tracker.get_elapsed_time("s1") == 150


def test_start_while_hidden_counts_nothing_until_visible() -> None:
    clock = FakeClock()
    tracker = TimeTracker(clock=clock, visible=False)
    tracker.start_tracking("s1")

    clock.advance(500)
    assert tracker.get_elapsed_time("s1") == 0

    tracker.set_visible(True)
    clock.advance(20)
    assert tracker.get_elapsed_time("s1") == 20


def test_restart_resets_to_zero() -> None:
    clock = FakeClock()
    tracker = TimeTracker(clock=clock)
    tracker.start_tracking("s1")
    clock.advance(300)

    tracker.start_tracking("s1")

    assert tracker.get_elapsed_time("s1") == 0


async def test_follows_visibility_events_until_closed() -> None:
    clock = FakeClock()
    bus = InMemoryEventBus()
    tracker = TimeTracker(bus, clock=clock)
    tracker.start_tracking("s1")
    assert bus.handler_count == 1

    clock.advance(10)
    await bus.publish(VisibilityChanged(visible=False))
    clock.advance(1000)
    assert tracker.get_elapsed_time("s1") == 10
    assert not tracker.visible

    tracker.close()
    tracker.close()

    assert bus.handler_count == 0
    await bus.publish(VisibilityChanged(visible=True))
    assert not tracker.visible
