"""Loop decisions for batch runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from autorun.debug_log import log
from autorun.services.batch.actions import IncrementLoop
from autorun.services.batch.documents import read_doc_and_count_tasks

if TYPE_CHECKING:
    from collections.abc import Iterable

    from autorun.services.batch.state import BatchRunState
    from autorun.services.batch.store import BatchStore
    from autorun.services.batch.types import DocumentStore


def loop_limit_reached(state: BatchRunState) -> bool:
    return state.max_loops is not None and state.loop_iteration >= state.max_loops


def should_continue_loop(state: BatchRunState, *, tasks_completed_in_pass: int) -> bool:
    """Return whether another full pass over the documents is warranted."""
    if not state.loop_enabled or loop_limit_reached(state):
        return False
    # A pass that checked nothing off would only repeat itself
    return tasks_completed_in_pass > 0


def is_document_processable(document: str, locked_documents: Iterable[str]) -> bool:
    return document not in set(locked_documents)


async def rescan_remaining_tasks(
    documents: DocumentStore,
    folder: str,
    names: Iterable[str],
    *,
    locked_documents: Iterable[str] = (),
) -> int:
    """Sum unfinished tasks across every non-locked document."""
    locked = set(locked_documents)
    total = 0
    for name in names:
        if name in locked:
            continue
        counts = await read_doc_and_count_tasks(documents, folder, name)
        total += counts.unfinished
    return total


async def advance_loop(
    store: BatchStore,
    session_id: str,
    *,
    documents: DocumentStore,
    tasks_completed_in_pass: int,
) -> bool:
    """Start the next loop iteration if one is warranted.

    Re-scans the documents, dispatches ``IncrementLoop`` and returns True when
    the driver should run another pass. Returns False (without dispatching)
    when looping is off, the limit is reached, the pass made no progress, or
    no work is left.
    """
    state = store.get(session_id)
    if not should_continue_loop(state, tasks_completed_in_pass=tasks_completed_in_pass):
        if state.loop_enabled and tasks_completed_in_pass == 0:
            log.info(f"Loop for {session_id} ended: last pass completed no tasks")
        return False

    remaining = await rescan_remaining_tasks(
        documents,
        state.folder_path,
        state.documents,
        locked_documents=state.locked_documents,
    )
    if remaining == 0:
        log.info(f"Loop for {session_id} ended: no unfinished tasks left")
        return False

    store.dispatch(IncrementLoop(session_id=session_id, new_total_tasks=remaining))
    log.info(
        f"Starting loop iteration {state.loop_iteration + 1} for {session_id} "
        f"with {remaining} tasks"
    )
    return True


__all__ = [
    "advance_loop",
    "is_document_processable",
    "loop_limit_reached",
    "rescan_remaining_tasks",
    "should_continue_loop",
]
