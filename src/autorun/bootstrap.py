"""Application bootstrap and dependency injection.

This module wires the batch orchestrator to its default collaborators
(command-line agent, filesystem documents, git/gh CLIs) and an in-process
event bus. Tests and embedders can pass their own collaborators instead.

Usage:
    async with bootstrap_app() as ctx:
        info = await ctx.orchestrator.run_batch(request)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from autorun.config import AutorunConfig
from autorun.debug_log import log

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path

    from autorun.events import DomainEvent, EventBus, EventHandler
    from autorun.services.batch import BatchOrchestrator
    from autorun.services.batch.types import (
        AgentInvoker,
        BatchCompleteInfo,
        DocumentStore,
        GitCapability,
        HistoryEntry,
    )


class Subscription:
    """Queue-backed stream of bus events, registered as soon as it is created.

    Iterate it (``async for``) or await ``get()``; ``close()`` (or leaving an
    ``async with`` block) detaches it from the bus.
    """

    def __init__(
        self,
        bus: InMemoryEventBus,
        event_type: type[DomainEvent] | None,
        maxsize: int,
    ) -> None:
        self._bus = bus
        self.event_type = event_type
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def matches(self, event: DomainEvent) -> bool:
        return self.event_type is None or isinstance(event, self.event_type)

    def offer(self, event: DomainEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning(
                f"Subscriber queue full, dropped {type(event).__name__} "
                f"({self.dropped} dropped so far)"
            )

    async def get(self) -> DomainEvent:
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._detach(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> DomainEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class InMemoryEventBus:
    """Single-process event bus fanning out to sync handlers and subscriptions.

    Handlers run inline during ``publish``; a failing handler is logged and
    does not stop delivery to the rest. Events are not persisted, so a new
    subscription only sees events published after it was created.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[type[DomainEvent] | None, EventHandler]] = []
        self._subscriptions: list[Subscription] = []

    async def publish(self, event: DomainEvent) -> None:
        for filter_type, handler in list(self._handlers):
            if filter_type is not None and not isinstance(event, filter_type):
                continue
            try:
                handler(event)
            except Exception as exc:
                log.error(f"Event handler failed for {type(event).__name__}: {exc}")

        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.offer(event)

    def add_handler(
        self,
        handler: EventHandler,
        event_type: type[DomainEvent] | None = None,
    ) -> None:
        self._handlers.append((event_type, handler))

    def remove_handler(self, handler: EventHandler) -> None:
        self._handlers = [(t, h) for t, h in self._handlers if h is not handler]

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self, event_type: type[DomainEvent] | None = None, *, maxsize: int = 100
    ) -> Subscription:
        """Start receiving events (optionally only ``event_type``) from now on."""
        subscription = Subscription(self, event_type, maxsize)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        self._subscriptions = [s for s in self._subscriptions if s is not subscription]


@dataclass
class AppContext:
    """Container for the wired orchestrator and its shared infrastructure.

    Attributes:
        config: Application configuration.
        event_bus: Domain event bus for pub/sub (visibility and batch events).
        orchestrator: The batch orchestrator.
    """

    config: AutorunConfig
    event_bus: InMemoryEventBus
    orchestrator: BatchOrchestrator

    async def close(self) -> None:
        """Clean up all resources."""
        await self.orchestrator.close()


def create_orchestrator(
    config: AutorunConfig,
    *,
    event_bus: EventBus | None = None,
    agent: AgentInvoker | None = None,
    documents: DocumentStore | None = None,
    git: GitCapability | None = None,
    on_history_entry: Callable[[HistoryEntry], None] | None = None,
    on_complete: Callable[[BatchCompleteInfo], None] | None = None,
) -> BatchOrchestrator:
    """Build a BatchOrchestrator, filling unset collaborators with the CLI defaults."""
    from autorun.adapters.agents import AgentSynopsisGenerator, CommandAgentInvoker
    from autorun.adapters.documents import FileDocumentStore
    from autorun.adapters.git import GitCliAdapter
    from autorun.services.batch import BatchOrchestratorImpl

    agent = agent if agent is not None else CommandAgentInvoker(config.agent)
    synopsis = AgentSynopsisGenerator(agent) if config.general.synopsis_enabled else None

    return BatchOrchestratorImpl(
        agent=agent,
        documents=documents if documents is not None else FileDocumentStore(),
        git=git if git is not None else GitCliAdapter(),
        synopsis=synopsis,
        event_bus=event_bus,
        debounce_ms=config.general.debounce_ms,
        max_consecutive_no_progress=config.general.max_consecutive_no_progress,
        agent_name=config.general.agent_name,
        default_prompt=config.general.default_prompt,
        on_history_entry=on_history_entry,
        on_complete=on_complete,
    )


async def create_app_context(
    config_path: Path | None = None,
    *,
    config: AutorunConfig | None = None,
    agent: AgentInvoker | None = None,
    documents: DocumentStore | None = None,
    git: GitCapability | None = None,
    on_history_entry: Callable[[HistoryEntry], None] | None = None,
    on_complete: Callable[[BatchCompleteInfo], None] | None = None,
) -> AppContext:
    """Create a fully initialized AppContext (non-context-manager)."""
    if config is None:
        config = AutorunConfig.load(config_path)

    event_bus = InMemoryEventBus()
    orchestrator = create_orchestrator(
        config,
        event_bus=event_bus,
        agent=agent,
        documents=documents,
        git=git,
        on_history_entry=on_history_entry,
        on_complete=on_complete,
    )
    return AppContext(config=config, event_bus=event_bus, orchestrator=orchestrator)


@asynccontextmanager
async def bootstrap_app(
    config_path: Path | None = None,
    *,
    config: AutorunConfig | None = None,
    agent: AgentInvoker | None = None,
    documents: DocumentStore | None = None,
    git: GitCapability | None = None,
    on_history_entry: Callable[[HistoryEntry], None] | None = None,
    on_complete: Callable[[BatchCompleteInfo], None] | None = None,
) -> AsyncIterator[AppContext]:
    """Bootstrap the application context and close it on exit.

    Args:
        config_path: Path to the config.toml file (defaults to the user config).
        config: Optional pre-loaded config (for testing).
        agent: Optional agent capability replacing the command-line agent.
        documents: Optional document store replacing the filesystem store.
        git: Optional git capability replacing the git/gh CLI adapter.
        on_history_entry: Called with one entry per task attempt.
        on_complete: Called with the report of every finished run.

    Yields:
        Fully initialized AppContext.
    """
    ctx = await create_app_context(
        config_path,
        config=config,
        agent=agent,
        documents=documents,
        git=git,
        on_history_entry=on_history_entry,
        on_complete=on_complete,
    )
    try:
        yield ctx
    finally:
        await ctx.close()


__all__ = [
    "AppContext",
    "InMemoryEventBus",
    "Subscription",
    "bootstrap_app",
    "create_app_context",
    "create_orchestrator",
]
