"""Actions accepted by the batch reducer."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autorun.services.batch.state import AgentError


@dataclass(frozen=True, slots=True)
class StartBatchPayload:
    documents: tuple[str, ...]
    total_tasks_across_all_docs: int
    folder_path: str
    locked_documents: tuple[str, ...] = ()
    loop_enabled: bool = False
    max_loops: int | None = None
    worktree_active: bool = False
    worktree_path: str | None = None
    worktree_branch: str | None = None
    custom_prompt: str | None = None
    start_time: int | None = None
    session_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class UpdateProgressPayload:
    """Partial progress update; ``None`` means "leave unchanged"."""

    current_document_index: int | None = None
    current_doc_tasks_total: int | None = None
    current_doc_tasks_completed: int | None = None
    total_tasks_across_all_docs: int | None = None
    completed_tasks_across_all_docs: int | None = None
    session_ids: tuple[str, ...] | None = None
    accumulated_elapsed_ms: int | None = None
    last_active_timestamp: int | None = None
    loop_iteration: int | None = None

    def changes(self) -> dict[str, Any]:
        """Return only the fields supplied by this payload."""
        result: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                result[item.name] = value
        return result

    @classmethod
    def from_changes(cls, changes: dict[str, Any]) -> UpdateProgressPayload:
        return cls(**changes)


@dataclass(frozen=True, slots=True)
class SetErrorPayload:
    error: AgentError
    document_index: int
    task_description: str | None = None


@dataclass(frozen=True, slots=True)
class StartBatch:
    session_id: str
    payload: StartBatchPayload


@dataclass(frozen=True, slots=True)
class UpdateProgress:
    session_id: str
    payload: UpdateProgressPayload


@dataclass(frozen=True, slots=True)
class SetStopping:
    session_id: str


@dataclass(frozen=True, slots=True)
class SetError:
    session_id: str
    payload: SetErrorPayload


@dataclass(frozen=True, slots=True)
class ClearError:
    session_id: str


@dataclass(frozen=True, slots=True)
class CompleteBatch:
    session_id: str
    final_session_ids: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class IncrementLoop:
    session_id: str
    new_total_tasks: int


type BatchAction = (
    StartBatch
    | UpdateProgress
    | SetStopping
    | SetError
    | ClearError
    | CompleteBatch
    | IncrementLoop
)


__all__ = [
    "BatchAction",
    "ClearError",
    "CompleteBatch",
    "IncrementLoop",
    "SetError",
    "SetErrorPayload",
    "SetStopping",
    "StartBatch",
    "StartBatchPayload",
    "UpdateProgress",
    "UpdateProgressPayload",
]
