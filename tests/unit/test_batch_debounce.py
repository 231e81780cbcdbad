"""Tests for the per-session update debouncer."""

from __future__ import annotations

import asyncio

import pytest

from autorun.services.batch.debounce import SessionDebouncer, merge_updates

pytestmark = pytest.mark.unit


class Recorder:
    def __init__(self) -> None:
        self.flushes: list[tuple[str, dict]] = []

    def __call__(self, key: str, update: dict) -> None:
        self.flushes.append((key, update))


async def test_burst_is_coalesced_into_one_flush() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=20)

    debouncer.schedule("s1", {"a": 1})
    debouncer.schedule("s1", {"b": 2})
    debouncer.schedule("s1", {"a": 3})
    assert recorder.flushes == []

    await asyncio.sleep(0.06)

    assert recorder.flushes == [("s1", {"a": 3, "b": 2})]
    assert not debouncer.has_pending("s1")


async def test_quiet_window_restarts_on_each_call() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=200)

    debouncer.schedule("s1", {"a": 1})
    await asyncio.sleep(0.1)
    debouncer.schedule("s1", {"b": 2})

    # Past the first call's window but inside the second's
    await asyncio.sleep(0.15)
    assert recorder.flushes == []

    await asyncio.sleep(0.15)
    assert recorder.flushes == [("s1", {"a": 1, "b": 2})]


async def test_sessions_are_independent() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=10)

    debouncer.schedule("s1", {"x": 1})
    debouncer.schedule("s2", {"y": 2})
    await asyncio.sleep(0.04)

    assert sorted(recorder.flushes) == [("s1", {"x": 1}), ("s2", {"y": 2})]


async def test_immediate_flushes_with_pending_merged() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=1000)

    debouncer.schedule("s1", {"a": 1})
    debouncer.schedule("s1", {"b": 2}, immediate=True)

    assert recorder.flushes == [("s1", {"a": 1, "b": 2})]


async def test_flush_delivers_now_and_cancels_timer() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=20)

    debouncer.schedule("s1", {"a": 1})
    debouncer.flush("s1")
    await asyncio.sleep(0.05)

    assert recorder.flushes == [("s1", {"a": 1})]


async def test_flush_without_pending_is_noop() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder)
    debouncer.flush("s1")
    assert recorder.flushes == []


async def test_cancel_drops_update() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=10)

    debouncer.schedule("s1", {"a": 1})
    debouncer.cancel("s1")
    await asyncio.sleep(0.03)

    assert recorder.flushes == []


async def test_close_prevents_any_later_flush() -> None:
    recorder = Recorder()
    debouncer = SessionDebouncer(recorder, delay_ms=10)

    debouncer.schedule("s1", {"a": 1})
    debouncer.close()
    debouncer.schedule("s1", {"b": 2})
    debouncer.flush_all()
    await asyncio.sleep(0.03)

    assert debouncer.closed
    assert recorder.flushes == []


async def test_flush_callback_errors_are_contained() -> None:
    calls = []

    def broken(key: str, update: dict) -> None:
        calls.append(key)
        raise RuntimeError("boom")

    debouncer = SessionDebouncer(broken, delay_ms=0)
    debouncer.schedule("s1", {"a": 1}, immediate=True)
    debouncer.schedule("s1", {"a": 2}, immediate=True)

    assert calls == ["s1", "s1"]


async def test_custom_merge_function() -> None:
    recorder = Recorder()

    def summing(pending: dict, incoming: dict) -> dict:
        return {"n": pending["n"] + incoming["n"]}

    debouncer = SessionDebouncer(recorder, delay_ms=1000, merge=summing)
    debouncer.schedule("s1", {"n": 1})
    debouncer.schedule("s1", {"n": 2})
    debouncer.flush_all()

    assert recorder.flushes == [("s1", {"n": 3})]


def test_merge_updates_later_values_win() -> None:
    assert merge_updates({"a": 1, "b": 1}, {"b": 2}) == {"a": 1, "b": 2}
