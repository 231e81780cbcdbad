"""Tests for BatchStore and action replay."""

from __future__ import annotations

import pytest

from autorun.services.batch.actions import (
    CompleteBatch,
    SetStopping,
    StartBatch,
    StartBatchPayload,
    UpdateProgress,
    UpdateProgressPayload,
)
from autorun.services.batch.state import DEFAULT_BATCH_STATE
from autorun.services.batch.store import BatchStore, replay_actions

pytestmark = pytest.mark.unit


def _start(session_id: str) -> StartBatch:
    return StartBatch(
        session_id=session_id,
        payload=StartBatchPayload(
            documents=("a",), total_tasks_across_all_docs=2, folder_path="/docs"
        ),
    )


def test_get_returns_idle_default_for_unknown_session() -> None:
    store = BatchStore()
    assert store.get("nope") is DEFAULT_BATCH_STATE
    assert not store.has_state("nope")


def test_dispatch_notifies_listeners_with_new_state() -> None:
    store = BatchStore()
    seen = []
    unsubscribe = store.subscribe(lambda action, state: seen.append((action, state["s1"])))

    action = _start("s1")
    store.dispatch(action)
    unsubscribe()
    store.dispatch(SetStopping("s1"))

    assert len(seen) == 1
    assert seen[0][0] is action
    assert seen[0][1].is_running


def test_listener_errors_do_not_break_dispatch() -> None:
    store = BatchStore()

    def broken(action, state) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.dispatch(_start("s1"))

    assert store.get("s1").is_running


def test_snapshot_is_stable_across_dispatches() -> None:
    store = BatchStore()
    store.dispatch(_start("s1"))
    snapshot = store.snapshot()

    store.dispatch(CompleteBatch("s1"))

    assert snapshot["s1"].is_running
    assert not store.get("s1").is_running


def test_active_sessions() -> None:
    store = BatchStore()
    store.dispatch(_start("s1"))
    store.dispatch(_start("s2"))
    store.dispatch(CompleteBatch("s1"))

    assert store.active_session_ids() == ["s2"]
    assert store.has_any_active_batch()

    store.dispatch(CompleteBatch("s2"))
    assert not store.has_any_active_batch()


def test_journal_disabled_by_default() -> None:
    store = BatchStore()
    store.dispatch(_start("s1"))
    assert store.journal == ()


def test_journal_is_bounded() -> None:
    store = BatchStore(journal=True, journal_limit=2)
    store.dispatch(_start("s1"))
    store.dispatch(SetStopping("s1"))
    store.dispatch(CompleteBatch("s1"))

    assert [type(action) for action in store.journal] == [SetStopping, CompleteBatch]


def test_replay_rebuilds_state() -> None:
    store = BatchStore(journal=True)
    store.dispatch(_start("s1"))
    store.dispatch(
        UpdateProgress("s1", UpdateProgressPayload(completed_tasks_across_all_docs=1))
    )
    store.dispatch(_start("s2"))
    store.dispatch(CompleteBatch("s2", final_session_ids=("agent-1",)))

    assert replay_actions(store.journal) == store.snapshot()
