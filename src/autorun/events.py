"""Events published while batch runs progress, and the bus contract carrying them."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import uuid4


class DomainEvent(Protocol):
    @property
    def event_id(self) -> str: ...

    @property
    def occurred_at(self) -> datetime: ...


type EventHandler = Callable[[DomainEvent], None]


class EventBus(Protocol):
    """Fan-out of events to synchronous handlers and async subscribers."""

    async def publish(self, event: DomainEvent) -> None: ...

    def subscribe(
        self, event_type: type[DomainEvent] | None = None
    ) -> AsyncIterator[DomainEvent]: ...

    def add_handler(
        self, handler: EventHandler, event_type: type[DomainEvent] | None = None
    ) -> None: ...

    def remove_handler(self, handler: EventHandler) -> None: ...


@dataclass(frozen=True, kw_only=True)
class _Envelope:
    event_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class VisibilityChanged(_Envelope):
    """The host became visible (focused) or hidden (minimized, suspended).

    Hidden time is excluded from every run's elapsed time.
    """

    visible: bool


@dataclass(frozen=True)
class BatchStarted(_Envelope):
    session_id: str
    documents: tuple[str, ...]
    total_tasks: int
    worktree_path: str | None


@dataclass(frozen=True)
class BatchTaskCompleted(_Envelope):
    """One successful agent invocation; ``tasks_completed`` may be zero."""

    session_id: str
    document: str
    success: bool
    tasks_completed: int
    remaining_tasks: int
    agent_session_id: str | None


@dataclass(frozen=True)
class BatchErrorPaused(_Envelope):
    """The run is waiting for an error decision."""

    session_id: str
    document_index: int
    message: str


@dataclass(frozen=True)
class BatchResumed(_Envelope):
    session_id: str
    decision: str


@dataclass(frozen=True)
class BatchCompleted(_Envelope):
    session_id: str
    completed_tasks: int
    total_tasks: int
    was_stopped: bool
    elapsed_ms: int
    pr_url: str | None
    error: str | None


__all__ = [
    "BatchCompleted",
    "BatchErrorPaused",
    "BatchResumed",
    "BatchStarted",
    "BatchTaskCompleted",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "VisibilityChanged",
]
