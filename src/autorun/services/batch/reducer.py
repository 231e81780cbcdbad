"""Pure state transitions for batch runs.

``batch_reducer`` maps (state map, action) to a new state map keyed by session
id. It never mutates its input and never raises for actions that target a
missing or idle session: those are no-ops that return the input map unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from autorun.services.batch.actions import (
    ClearError,
    CompleteBatch,
    IncrementLoop,
    SetError,
    SetStopping,
    StartBatch,
    UpdateProgress,
)
from autorun.services.batch.state import BatchRunState

if TYPE_CHECKING:
    from collections.abc import Mapping

    from autorun.services.batch.actions import BatchAction
    from autorun.services.batch.state import BatchState


def _with_session(
    state: Mapping[str, BatchRunState], session_id: str, value: BatchRunState
) -> BatchState:
    updated = dict(state)
    updated[session_id] = value
    return updated


def _start(state: Mapping[str, BatchRunState], action: StartBatch) -> BatchState:
    payload = action.payload
    return _with_session(
        state,
        action.session_id,
        BatchRunState(
            is_running=True,
            is_stopping=False,
            documents=tuple(payload.documents),
            locked_documents=tuple(payload.locked_documents),
            current_document_index=0,
            current_doc_tasks_total=0,
            current_doc_tasks_completed=0,
            total_tasks_across_all_docs=payload.total_tasks_across_all_docs,
            completed_tasks_across_all_docs=0,
            loop_enabled=payload.loop_enabled,
            loop_iteration=0,
            max_loops=payload.max_loops,
            folder_path=payload.folder_path,
            worktree_active=payload.worktree_active,
            worktree_path=payload.worktree_path,
            worktree_branch=payload.worktree_branch,
            custom_prompt=payload.custom_prompt,
            start_time=payload.start_time,
            accumulated_elapsed_ms=0,
            last_active_timestamp=payload.start_time,
            session_ids=tuple(payload.session_ids),
        ),
    )


def _complete(state: Mapping[str, BatchRunState], action: CompleteBatch) -> BatchState:
    current = state.get(action.session_id)
    if action.final_session_ids is not None:
        session_ids = tuple(action.final_session_ids)
    elif current is not None:
        session_ids = current.session_ids
    else:
        session_ids = ()
    # Idle shape: every progress, worktree and error field back to defaults
    return _with_session(state, action.session_id, BatchRunState(session_ids=session_ids))


def batch_reducer(state: Mapping[str, BatchRunState], action: BatchAction) -> BatchState:
    """Apply ``action`` to ``state`` and return the resulting state map."""
    if isinstance(action, StartBatch):
        return _start(state, action)

    if isinstance(action, CompleteBatch):
        return _complete(state, action)

    current = state.get(action.session_id)
    if current is None:
        return dict(state)

    if isinstance(action, UpdateProgress):
        changes = action.payload.changes()
        if not changes:
            return dict(state)
        return _with_session(state, action.session_id, replace(current, **changes))

    if isinstance(action, SetStopping):
        return _with_session(state, action.session_id, replace(current, is_stopping=True))

    if isinstance(action, SetError):
        if not current.is_running:
            return dict(state)
        payload = action.payload
        return _with_session(
            state,
            action.session_id,
            replace(
                current,
                error=payload.error,
                error_paused=True,
                error_document_index=payload.document_index,
                error_task_description=payload.task_description,
            ),
        )

    if isinstance(action, ClearError):
        return _with_session(
            state,
            action.session_id,
            replace(
                current,
                error=None,
                error_paused=False,
                error_document_index=None,
                error_task_description=None,
            ),
        )

    if isinstance(action, IncrementLoop):
        return _with_session(
            state,
            action.session_id,
            replace(
                current,
                loop_iteration=current.loop_iteration + 1,
                total_tasks_across_all_docs=(
                    action.new_total_tasks + current.completed_tasks_across_all_docs
                ),
            ),
        )

    return dict(state)


__all__ = ["batch_reducer"]
