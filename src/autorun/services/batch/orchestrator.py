from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from autorun.limits import DEBOUNCE_WINDOW_MS, MAX_CONSECUTIVE_NO_PROGRESS, SHUTDOWN_TIMEOUT
from autorun.services.batch.store import BatchStore

from .runner import BatchEngine

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable

    from autorun.events import EventBus
    from autorun.services.batch.runner import BatchRunRequest
    from autorun.services.batch.state import BatchRunState
    from autorun.services.batch.time_tracker import TimeTracker
    from autorun.services.batch.types import (
        AgentInvoker,
        BatchCompleteInfo,
        DocumentStore,
        GitCapability,
        HistoryEntry,
        SynopsisGenerator,
    )


class BatchOrchestrator(Protocol):
    """Protocol boundary for batch run lifecycle orchestration."""

    @property
    def store(self) -> BatchStore: ...

    def start_batch(self, request: BatchRunRequest) -> asyncio.Task[BatchCompleteInfo]: ...

    async def run_batch(self, request: BatchRunRequest) -> BatchCompleteInfo: ...

    async def stop_batch(self, session_id: str) -> bool: ...

    async def clear_error(self, session_id: str) -> bool: ...

    async def retry_after_error(
        self, session_id: str, *, prompt: str | None = None, new_session: bool = False
    ) -> None: ...

    async def skip_after_error(self, session_id: str) -> None: ...

    async def abort_after_error(self, session_id: str) -> None: ...

    def get_batch_state(self, session_id: str) -> BatchRunState: ...

    def is_paused(self, session_id: str) -> bool: ...

    def active_session_ids(self) -> list[str]: ...

    def has_any_active_batch(self) -> bool: ...

    async def wait_for_completion(self, session_id: str) -> BatchCompleteInfo | None: ...

    async def close(self) -> None: ...


class BatchOrchestratorImpl:
    """Thin facade over BatchEngine for batch run orchestration."""

    def __init__(
        self,
        *,
        agent: AgentInvoker,
        documents: DocumentStore,
        git: GitCapability | None = None,
        synopsis: SynopsisGenerator | None = None,
        event_bus: EventBus | None = None,
        store: BatchStore | None = None,
        time_tracker: TimeTracker | None = None,
        debounce_ms: int = DEBOUNCE_WINDOW_MS,
        max_consecutive_no_progress: int = MAX_CONSECUTIVE_NO_PROGRESS,
        agent_name: str = "autorun",
        default_prompt: str | None = None,
        on_history_entry: Callable[[HistoryEntry], None] | None = None,
        on_complete: Callable[[BatchCompleteInfo], None] | None = None,
    ) -> None:
        self._engine = BatchEngine(
            store=store or BatchStore(),
            agent=agent,
            documents=documents,
            git=git,
            synopsis=synopsis,
            event_bus=event_bus,
            time_tracker=time_tracker,
            debounce_ms=debounce_ms,
            max_consecutive_no_progress=max_consecutive_no_progress,
            agent_name=agent_name,
            default_prompt=default_prompt,
            on_history_entry=on_history_entry,
            on_complete=on_complete,
        )

    @property
    def store(self) -> BatchStore:
        return self._engine.store

    def start_batch(self, request: BatchRunRequest) -> asyncio.Task[BatchCompleteInfo]:
        return self._engine.start_batch(request)

    async def run_batch(self, request: BatchRunRequest) -> BatchCompleteInfo:
        return await self._engine.run_batch(request)

    async def stop_batch(self, session_id: str) -> bool:
        return await self._engine.stop_batch(session_id)

    async def clear_error(self, session_id: str) -> bool:
        return await self._engine.clear_error(session_id)

    async def retry_after_error(
        self, session_id: str, *, prompt: str | None = None, new_session: bool = False
    ) -> None:
        await self._engine.retry_after_error(session_id, prompt=prompt, new_session=new_session)

    async def skip_after_error(self, session_id: str) -> None:
        await self._engine.skip_after_error(session_id)

    async def abort_after_error(self, session_id: str) -> None:
        await self._engine.abort_after_error(session_id)

    def get_batch_state(self, session_id: str) -> BatchRunState:
        return self._engine.get_batch_state(session_id)

    def is_paused(self, session_id: str) -> bool:
        return self._engine.is_paused(session_id)

    def active_session_ids(self) -> list[str]:
        return self._engine.active_session_ids()

    def has_any_active_batch(self) -> bool:
        return self._engine.has_any_active_batch()

    async def wait_for_completion(self, session_id: str) -> BatchCompleteInfo | None:
        return await self._engine.wait_for_completion(session_id)

    async def close(self, *, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        await self._engine.close(timeout=timeout)


__all__ = ["BatchOrchestrator", "BatchOrchestratorImpl"]
