"""Single owner of mutable batch orchestration state."""

from __future__ import annotations

import contextlib
from collections import deque
from typing import TYPE_CHECKING

from autorun.debug_log import log
from autorun.limits import MAX_ACTION_JOURNAL
from autorun.services.batch.reducer import batch_reducer
from autorun.services.batch.state import DEFAULT_BATCH_STATE, BatchRunState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from autorun.services.batch.actions import BatchAction
    from autorun.services.batch.state import BatchState

type StoreListener = Callable[[BatchAction, BatchState], None]


class BatchStore:
    """Holds the session-keyed state map and applies actions through the reducer.

    Every dispatch replaces the map wholesale, so a snapshot taken at any point
    stays valid. When journaling is enabled the dispatched actions are kept (up
    to ``journal_limit``) so a run can be replayed with :func:`replay_actions`.
    """

    def __init__(
        self,
        initial: Mapping[str, BatchRunState] | None = None,
        *,
        journal: bool = False,
        journal_limit: int = MAX_ACTION_JOURNAL,
    ) -> None:
        self._state: BatchState = dict(initial or {})
        self._listeners: list[StoreListener] = []
        self._journal: deque[BatchAction] | None = (
            deque(maxlen=journal_limit) if journal else None
        )

    def dispatch(self, action: BatchAction) -> BatchState:
        """Apply an action and notify listeners with the new state map."""
        self._state = batch_reducer(self._state, action)
        if self._journal is not None:
            self._journal.append(action)
        for listener in list(self._listeners):
            try:
                listener(action, self._state)
            except Exception as exc:
                log.error(f"Batch store listener failed for {type(action).__name__}: {exc}")
        return self._state

    def get(self, session_id: str) -> BatchRunState:
        """Return the session's state, or the idle default when none exists."""
        return self._state.get(session_id, DEFAULT_BATCH_STATE)

    def has_state(self, session_id: str) -> bool:
        return session_id in self._state

    def snapshot(self) -> BatchState:
        """Return a shallow copy of the whole state map."""
        return dict(self._state)

    @property
    def journal(self) -> tuple[BatchAction, ...]:
        return tuple(self._journal) if self._journal is not None else ()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def active_session_ids(self) -> list[str]:
        return [session_id for session_id, state in self._state.items() if state.is_running]

    def has_any_active_batch(self) -> bool:
        return any(state.is_running for state in self._state.values())


def replay_actions(
    actions: Iterable[BatchAction],
    initial: Mapping[str, BatchRunState] | None = None,
) -> BatchState:
    """Rebuild a state map by folding actions through the reducer."""
    state: BatchState = dict(initial or {})
    for action in actions:
        state = batch_reducer(state, action)
    return state


__all__ = ["BatchStore", "StoreListener", "replay_actions"]
