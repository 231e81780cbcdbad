"""Batch run driver: one asyncio task per session working through checklist documents."""

from __future__ import annotations

import asyncio
import time
import weakref
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from autorun.debug_log import log, set_log_session
from autorun.errors import BatchAlreadyRunningError, BatchNotPausedError
from autorun.events import (
    BatchCompleted,
    BatchErrorPaused,
    BatchResumed,
    BatchStarted,
    BatchTaskCompleted,
)
from autorun.limits import DEBOUNCE_WINDOW_MS, MAX_CONSECUTIVE_NO_PROGRESS, SHUTDOWN_TIMEOUT
from autorun.services.batch.actions import (
    ClearError,
    CompleteBatch,
    SetError,
    SetErrorPayload,
    SetStopping,
    StartBatch,
    StartBatchPayload,
    UpdateProgress,
    UpdateProgressPayload,
)
from autorun.services.batch.debounce import SessionDebouncer
from autorun.services.batch.documents import (
    count_tasks,
    read_doc_and_count_tasks,
    uncheck_all_tasks,
)
from autorun.services.batch.policy import advance_loop, rescan_remaining_tasks
from autorun.services.batch.processor import TaskProcessorConfig, TaskResult, process_task
from autorun.services.batch.state import AgentError, AgentErrorType
from autorun.services.batch.time_tracker import TimeTracker
from autorun.services.batch.types import BatchCompleteInfo, BatchDocumentEntry, HistoryEntry
from autorun.services.batch.worktree import PRConfig, WorktreeConfig, create_pr, setup_worktree

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from typing import Any

    from autorun.events import DomainEvent, EventBus
    from autorun.services.batch.actions import BatchAction
    from autorun.services.batch.state import BatchRunState, BatchState
    from autorun.services.batch.store import BatchStore
    from autorun.services.batch.types import (
        AgentInvoker,
        DocumentStore,
        GitCapability,
        SynopsisGenerator,
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


class ErrorDecisionKind(StrEnum):
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class ErrorDecision:
    """How a paused run should continue."""

    kind: ErrorDecisionKind
    prompt: str | None = None
    new_session: bool = False


@dataclass(frozen=True, slots=True)
class BatchRunRequest:
    """Everything needed to start one batch run."""

    session_id: str
    folder_path: str
    documents: Sequence[BatchDocumentEntry | str]
    cwd: str
    locked_documents: Sequence[str] = ()
    loop_enabled: bool = False
    max_loops: int | None = None
    custom_prompt: str | None = None
    worktree: WorktreeConfig | None = None

    @property
    def entries(self) -> tuple[BatchDocumentEntry, ...]:
        return tuple(
            BatchDocumentEntry(filename=doc) if isinstance(doc, str) else doc
            for doc in self.documents
        )


@dataclass(slots=True)
class ActiveRun:
    """Driver-side bookkeeping for a live run."""

    request: BatchRunRequest
    entries: tuple[BatchDocumentEntry, ...]
    task: asyncio.Task[BatchCompleteInfo] | None = None
    effective_cwd: str = ""
    worktree_active: bool = False
    worktree_path: str | None = None
    worktree_branch: str | None = None
    custom_prompt: str | None = None
    completed_tasks: int = 0
    total_tasks: int = 0
    loop_iteration: int = 0
    session_ids: list[str] = field(default_factory=list)
    stop_requested: bool = False
    decision: asyncio.Future[ErrorDecision] | None = None

    @property
    def session_id(self) -> str:
        return self.request.session_id


class BatchEngine:
    """Drives batch runs: one asyncio task per session over a shared store.

    The engine is the only writer of the store for the sessions it runs.
    Progress bursts go through a per-session debouncer; every structural
    transition (start, error, loop, completion) is dispatched directly.
    """

    _store: BatchStore
    _agent: AgentInvoker
    _documents: DocumentStore
    _git: GitCapability | None
    _synopsis: SynopsisGenerator | None
    _event_bus: EventBus | None
    _time_tracker: TimeTracker
    _debouncer: SessionDebouncer
    _runs: dict[str, ActiveRun]
    _results: dict[str, BatchCompleteInfo]
    _on_history_entry: Callable[[HistoryEntry], None] | None
    _on_complete: Callable[[BatchCompleteInfo], None] | None

    def __init__(
        self,
        *,
        store: BatchStore,
        agent: AgentInvoker,
        documents: DocumentStore,
        git: GitCapability | None = None,
        synopsis: SynopsisGenerator | None = None,
        event_bus: EventBus | None = None,
        time_tracker: TimeTracker | None = None,
        debounce_ms: int = DEBOUNCE_WINDOW_MS,
        max_consecutive_no_progress: int = MAX_CONSECUTIVE_NO_PROGRESS,
        agent_name: str = "autorun",
        default_prompt: str | None = None,
        on_history_entry: Callable[[HistoryEntry], None] | None = None,
        on_complete: Callable[[BatchCompleteInfo], None] | None = None,
    ) -> None:
        self._store = store
        self._agent = agent
        self._documents = documents
        self._git = git
        self._synopsis = synopsis
        self._event_bus = event_bus
        self._time_tracker = time_tracker or TimeTracker(event_bus)
        self._debouncer = SessionDebouncer(self._apply_progress, delay_ms=debounce_ms)
        self._max_no_progress = max(1, max_consecutive_no_progress)
        self._agent_name = agent_name
        self._default_prompt = default_prompt
        self._on_history_entry = on_history_entry
        self._on_complete = on_complete
        self._runs = {}
        self._results = {}
        self._closed = False
        self._unsubscribe_store = store.subscribe(self._on_store_action)

    @property
    def store(self) -> BatchStore:
        return self._store

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_batch(self, request: BatchRunRequest) -> asyncio.Task[BatchCompleteInfo]:
        """Start a run in the background and return its task.

        Raises:
            ValueError: If the request has no documents.
            BatchAlreadyRunningError: If the session's previous run is still alive.
        """
        if self._closed:
            raise RuntimeError("Batch engine is closed")
        if not request.documents:
            raise ValueError("A batch run needs at least one document")
        session_id = request.session_id
        existing = self._runs.get(session_id)
        if existing is not None and existing.task is not None and not existing.task.done():
            raise BatchAlreadyRunningError(session_id)

        run = ActiveRun(
            request=request,
            entries=request.entries,
            effective_cwd=request.cwd,
            custom_prompt=request.custom_prompt,
        )
        self._runs[session_id] = run
        self._results.pop(session_id, None)
        log.info(f"Starting batch run {session_id} over {len(run.entries)} documents")

        task = asyncio.create_task(self._run(run), name=f"autorun-batch-{session_id}")
        run.task = task
        task.add_done_callback(self._make_done_callback(session_id))
        return task

    async def run_batch(self, request: BatchRunRequest) -> BatchCompleteInfo:
        """Run a batch to completion and return its report."""
        return await self.start_batch(request)

    async def stop_batch(self, session_id: str) -> bool:
        """Request cooperative cancellation. Returns True if a run was live.

        The in-flight task finishes first; a paused run is aborted.
        """
        run = self._runs.get(session_id)
        if run is None or run.task is None or run.task.done():
            return False
        log.info(f"Stop requested for batch run {session_id}")
        run.stop_requested = True
        self._store.dispatch(SetStopping(session_id=session_id))
        if run.decision is not None and not run.decision.done():
            run.decision.set_result(ErrorDecision(kind=ErrorDecisionKind.ABORT))
        return True

    async def clear_error(self, session_id: str) -> bool:
        """Clear a recorded error; a paused run resumes as an unchanged retry."""
        run = self._runs.get(session_id)
        if run is not None and run.decision is not None and not run.decision.done():
            run.decision.set_result(ErrorDecision(kind=ErrorDecisionKind.RETRY))
            return True
        if self._store.has_state(session_id):
            self._store.dispatch(ClearError(session_id=session_id))
        return False

    async def retry_after_error(
        self, session_id: str, *, prompt: str | None = None, new_session: bool = False
    ) -> None:
        """Retry the failed task, optionally with a new prompt or a fresh agent session."""
        self._resolve_decision(
            session_id,
            ErrorDecision(kind=ErrorDecisionKind.RETRY, prompt=prompt, new_session=new_session),
        )

    async def skip_after_error(self, session_id: str) -> None:
        """Abandon the failing document and continue with the next one."""
        self._resolve_decision(session_id, ErrorDecision(kind=ErrorDecisionKind.SKIP))

    async def abort_after_error(self, session_id: str) -> None:
        """Stop the paused run and complete it."""
        self._resolve_decision(session_id, ErrorDecision(kind=ErrorDecisionKind.ABORT))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_batch_state(self, session_id: str) -> BatchRunState:
        return self._store.get(session_id)

    def is_paused(self, session_id: str) -> bool:
        run = self._runs.get(session_id)
        return run is not None and run.decision is not None and not run.decision.done()

    def active_session_ids(self) -> list[str]:
        return [
            session_id
            for session_id, run in self._runs.items()
            if run.task is not None and not run.task.done()
        ]

    def has_any_active_batch(self) -> bool:
        return bool(self.active_session_ids())

    def last_result(self, session_id: str) -> BatchCompleteInfo | None:
        return self._results.get(session_id)

    async def wait_for_completion(self, session_id: str) -> BatchCompleteInfo | None:
        """Wait for the session's run to end and return its report.

        Returns the last report (or None) when no run is live.
        """
        run = self._runs.get(session_id)
        if run is None or run.task is None:
            return self._results.get(session_id)
        task = run.task
        await asyncio.wait({task})
        if task.cancelled():
            return self._results.get(session_id)
        return task.result()

    async def close(self, *, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Stop every run, cancel stragglers, and tear down timers and handlers."""
        if self._closed:
            return
        self._closed = True
        log.info("Closing batch engine")

        pending: list[asyncio.Task[BatchCompleteInfo]] = []
        for session_id, run in list(self._runs.items()):
            if run.task is not None and not run.task.done():
                await self.stop_batch(session_id)
                pending.append(run.task)

        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.wait(still_running)

        self._debouncer.close()
        self._time_tracker.close()
        self._unsubscribe_store()

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------

    async def _run(self, run: ActiveRun) -> BatchCompleteInfo:
        session_id = run.session_id
        set_log_session(session_id)
        request = run.request
        try:
            init_error = await self._initialize(run)
            if init_error is not None:
                return await self._finish_without_start(run, init_error)

            self._store.dispatch(
                StartBatch(
                    session_id=session_id,
                    payload=StartBatchPayload(
                        documents=tuple(entry.filename for entry in run.entries),
                        total_tasks_across_all_docs=run.total_tasks,
                        folder_path=request.folder_path,
                        locked_documents=tuple(request.locked_documents),
                        loop_enabled=request.loop_enabled,
                        max_loops=request.max_loops,
                        worktree_active=run.worktree_active,
                        worktree_path=run.worktree_path,
                        worktree_branch=run.worktree_branch,
                        custom_prompt=request.custom_prompt,
                        start_time=_now_ms(),
                    ),
                )
            )
            if run.stop_requested:
                self._store.dispatch(SetStopping(session_id=session_id))
            self._time_tracker.start_tracking(session_id)
            await self._publish(
                BatchStarted(
                    session_id=session_id,
                    documents=tuple(entry.filename for entry in run.entries),
                    total_tasks=run.total_tasks,
                    worktree_path=run.worktree_path,
                )
            )

            while True:
                pass_completed = await self._run_pass(run)
                if self._should_stop(run):
                    break
                self._debouncer.flush(session_id)
                if not await self._advance_loop(run, pass_completed):
                    break

            return await self._complete(run)
        except asyncio.CancelledError:
            log.info(f"Batch run {session_id} cancelled")
            self._complete_abruptly(run)
            raise
        except Exception as exc:
            import traceback

            log.error(f"Exception in batch run {session_id}: {exc}")
            log.error(f"Traceback:\n{traceback.format_exc()}")
            self._complete_abruptly(run, error=f"Batch run failed: {exc}")
            info = self._results[session_id]
            await self._report(info)
            return info
        finally:
            log.info(f"Batch run loop ended for {session_id}")

    async def _initialize(self, run: ActiveRun) -> str | None:
        """Set up the worktree and count the work. Returns an error message on failure."""
        request = run.request
        worktree = request.worktree or WorktreeConfig()
        if worktree.enabled:
            if self._git is None:
                log.error(f"Worktree requested for {run.session_id} without a git capability")
                return "Git capability is not configured"
            setup = await setup_worktree(worktree, cwd=request.cwd, git=self._git)
            if not setup.success:
                return setup.error or "Failed to set up worktree"
            run.effective_cwd = setup.effective_cwd
            run.worktree_active = setup.worktree_active
            run.worktree_path = setup.worktree_path
            run.worktree_branch = setup.worktree_branch

        try:
            run.total_tasks = await rescan_remaining_tasks(
                self._documents,
                request.folder_path,
                (entry.filename for entry in run.entries),
                locked_documents=request.locked_documents,
            )
        except Exception as exc:
            log.error(f"Initial document scan failed for {run.session_id}: {exc}")
            return f"Failed to read documents: {exc}"
        log.info(f"Batch run {run.session_id} found {run.total_tasks} unfinished tasks")
        return None

    async def _run_pass(self, run: ActiveRun) -> int:
        """Process every non-locked document once. Returns tasks completed."""
        locked = set(run.request.locked_documents)
        completed = 0
        for index, entry in enumerate(run.entries):
            if self._should_stop(run):
                break
            if entry.filename in locked:
                log.debug(f"Skipping locked document {entry.filename}")
                continue
            completed += await self._process_document(run, index, entry)
        return completed

    async def _process_document(self, run: ActiveRun, index: int, entry: BatchDocumentEntry) -> int:
        """Work through one document until it is done, skipped, or the run stops."""
        session_id = run.session_id
        name = entry.filename
        completed_here = 0
        no_progress = 0
        remaining: int | None = None
        resume_agent_session_id: str | None = None

        while not self._should_stop(run):
            if remaining is None:
                try:
                    counts = await read_doc_and_count_tasks(
                        self._documents, run.request.folder_path, name
                    )
                except Exception as exc:
                    log.error(f"Failed to read {name} for {session_id}: {exc}")
                    decision = await self._pause_for_decision(
                        run, index, _document_error(name, exc), name
                    )
                    if decision.kind is ErrorDecisionKind.RETRY:
                        continue
                    break
                remaining = counts.unfinished
                if remaining == 0:
                    break
                log.info(f"Processing {name} ({remaining} unfinished) for {session_id}")
                self._schedule_progress(
                    run,
                    immediate=True,
                    current_document_index=index,
                    current_doc_tasks_total=counts.total,
                    current_doc_tasks_completed=counts.completed,
                )

            if remaining == 0:
                break

            result = await self._attempt_task(run, name, resume_agent_session_id)
            resume_agent_session_id = None
            self._record_history(run, result)

            if not result.success:
                if result.tasks_completed_this_run > 0:
                    self._apply_task_result(run, index, result)
                    completed_here += result.tasks_completed_this_run
                    remaining = result.new_remaining_tasks
                error = result.error or _document_error(name, None)
                decision = await self._pause_for_decision(run, index, error, name)
                if decision.kind is not ErrorDecisionKind.RETRY:
                    break
                if decision.prompt:
                    run.custom_prompt = decision.prompt
                if not decision.new_session:
                    resume_agent_session_id = error.session_id or result.agent_session_id
                continue

            self._apply_task_result(run, index, result)
            completed_here += result.tasks_completed_this_run
            remaining = result.new_remaining_tasks
            await self._publish(
                BatchTaskCompleted(
                    session_id=session_id,
                    document=name,
                    success=True,
                    tasks_completed=result.tasks_completed_this_run,
                    remaining_tasks=result.new_remaining_tasks,
                    agent_session_id=result.agent_session_id,
                )
            )

            if result.tasks_completed_this_run > 0:
                no_progress = 0
                continue
            no_progress += 1
            if no_progress >= self._max_no_progress:
                log.warning(
                    f"Skipping {name} for {session_id}: {no_progress} consecutive runs "
                    "completed no tasks"
                )
                break

        if remaining == 0 and completed_here > 0 and entry.reset_on_completion:
            await self._reset_document(run, name)
        return completed_here

    async def _attempt_task(
        self, run: ActiveRun, name: str, resume_agent_session_id: str | None
    ) -> TaskResult:
        config = TaskProcessorConfig(
            session_id=run.session_id,
            folder_path=run.request.folder_path,
            document=name,
            effective_cwd=run.effective_cwd,
            loop_iteration=run.loop_iteration,
            git_branch=run.worktree_branch,
            custom_prompt=run.custom_prompt or self._default_prompt,
            agent_name=self._agent_name,
            resume_agent_session_id=resume_agent_session_id,
        )
        try:
            return await process_task(
                config, agent=self._agent, documents=self._documents, synopsis=self._synopsis
            )
        except Exception as exc:
            log.error(f"Task processing failed in {name} for {run.session_id}: {exc}")
            error = _document_error(name, exc)
            return TaskResult(
                success=False,
                document=name,
                session_id=run.session_id,
                cwd=run.effective_cwd,
                short_summary=error.message,
                full_synopsis=error.message,
                error=error,
            )

    def _apply_task_result(self, run: ActiveRun, index: int, result: TaskResult) -> None:
        # Tasks the agent appended to the document grow the run's total
        expected_remaining = result.previous_remaining_tasks - result.tasks_completed_this_run
        added = max(0, result.new_remaining_tasks - expected_remaining)
        run.completed_tasks += result.tasks_completed_this_run
        run.total_tasks += added
        if result.agent_session_id and result.agent_session_id not in run.session_ids:
            run.session_ids.append(result.agent_session_id)

        self._schedule_progress(
            run,
            current_document_index=index,
            current_doc_tasks_total=result.new_remaining_tasks + result.new_completed_count,
            current_doc_tasks_completed=result.new_completed_count,
            completed_tasks_across_all_docs=run.completed_tasks,
            total_tasks_across_all_docs=run.total_tasks,
            session_ids=tuple(run.session_ids),
        )

    async def _reset_document(self, run: ActiveRun, name: str) -> None:
        folder = run.request.folder_path
        try:
            content = await self._documents.read_document(folder, name)
            reset = uncheck_all_tasks(content)
            if reset != content:
                await self._documents.write_document(folder, name, reset)
        except Exception as exc:
            log.error(f"Failed to reset {name} for {run.session_id}: {exc}")
            return
        log.info(f"Reset {count_tasks(reset).unfinished} tasks in {name} for {run.session_id}")

    async def _advance_loop(self, run: ActiveRun, pass_completed: int) -> bool:
        try:
            again = await advance_loop(
                self._store,
                run.session_id,
                documents=self._documents,
                tasks_completed_in_pass=pass_completed,
            )
        except Exception as exc:
            log.error(f"Loop re-scan failed for {run.session_id}: {exc}")
            return False
        if again:
            state = self._store.get(run.session_id)
            run.loop_iteration = state.loop_iteration
            run.total_tasks = state.total_tasks_across_all_docs
        return again

    async def _pause_for_decision(
        self, run: ActiveRun, index: int, error: AgentError, task_description: str
    ) -> ErrorDecision:
        session_id = run.session_id
        self._debouncer.flush(session_id)
        self._store.dispatch(
            SetError(
                session_id=session_id,
                payload=SetErrorPayload(
                    error=error, document_index=index, task_description=task_description
                ),
            )
        )
        log.warning(f"Batch run {session_id} paused on {task_description}: {error.message}")
        # Created before publishing so event handlers can resolve it right away
        future: asyncio.Future[ErrorDecision] | None = None
        if not self._should_stop(run):
            future = asyncio.get_running_loop().create_future()
            run.decision = future
        try:
            await self._publish(
                BatchErrorPaused(
                    session_id=session_id, document_index=index, message=error.message
                )
            )
            if future is None:
                decision = ErrorDecision(kind=ErrorDecisionKind.ABORT)
            else:
                decision = await future
        finally:
            run.decision = None

        self._store.dispatch(ClearError(session_id=session_id))
        if decision.kind is ErrorDecisionKind.ABORT:
            run.stop_requested = True
            self._store.dispatch(SetStopping(session_id=session_id))
        log.info(f"Batch run {session_id} resumed with decision {decision.kind}")
        await self._publish(BatchResumed(session_id=session_id, decision=decision.kind.value))
        return decision

    def _on_store_action(self, action: BatchAction, state: BatchState) -> None:
        # A stop dispatched by anyone ends a pending pause
        if not isinstance(action, SetStopping):
            return
        run = self._runs.get(action.session_id)
        if run is None or run.decision is None or run.decision.done():
            return
        log.info(f"Stop dispatched while {action.session_id} was paused, aborting")
        run.stop_requested = True
        run.decision.set_result(ErrorDecision(kind=ErrorDecisionKind.ABORT))

    def _resolve_decision(self, session_id: str, decision: ErrorDecision) -> None:
        run = self._runs.get(session_id)
        if run is None or run.decision is None or run.decision.done():
            raise BatchNotPausedError(session_id)
        run.decision.set_result(decision)

    def _should_stop(self, run: ActiveRun) -> bool:
        return run.stop_requested or self._store.get(run.session_id).is_stopping

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def _finish_without_start(self, run: ActiveRun, error: str) -> BatchCompleteInfo:
        log.error(f"Batch run {run.session_id} failed to initialize: {error}")
        info = BatchCompleteInfo(
            session_id=run.session_id,
            completed_tasks=0,
            total_tasks=run.total_tasks,
            was_stopped=False,
            elapsed_time_ms=0,
            documents=tuple(entry.filename for entry in run.entries),
            error=error,
        )
        await self._report(info)
        return info

    async def _complete(self, run: ActiveRun) -> BatchCompleteInfo:
        session_id = run.session_id
        was_stopped = self._should_stop(run)

        pr_url: str | None = None
        pr_error: str | None = None
        worktree = run.request.worktree
        if (
            worktree is not None
            and worktree.create_pr_on_completion
            and run.worktree_active
            and run.completed_tasks > 0
            and self._git is not None
            and run.worktree_path
            and run.worktree_branch
        ):
            pr = await create_pr(
                PRConfig(
                    worktree_path=run.worktree_path,
                    main_repo_cwd=run.request.cwd,
                    branch_name=run.worktree_branch,
                    documents=tuple(entry.filename for entry in run.entries),
                    completed_tasks=run.completed_tasks,
                    target_branch=worktree.pr_target_branch,
                    draft=worktree.draft_pr,
                    loop_iterations=run.loop_iteration,
                ),
                git=self._git,
            )
            pr_url, pr_error = pr.pr_url, pr.error

        # Deliver the last progress before the state goes idle
        self._debouncer.flush(session_id)
        elapsed = self._time_tracker.stop_tracking(session_id)
        self._store.dispatch(
            CompleteBatch(session_id=session_id, final_session_ids=tuple(run.session_ids))
        )
        info = BatchCompleteInfo(
            session_id=session_id,
            completed_tasks=run.completed_tasks,
            total_tasks=run.total_tasks,
            was_stopped=was_stopped,
            elapsed_time_ms=elapsed,
            loop_iterations=run.loop_iteration,
            session_ids=tuple(run.session_ids),
            documents=tuple(entry.filename for entry in run.entries),
            pr_url=pr_url,
            pr_error=pr_error,
        )
        log.info(
            f"Batch run {session_id} complete: {info.completed_tasks}/{info.total_tasks} tasks, "
            f"stopped={was_stopped}, {elapsed}ms"
        )
        await self._report(info)
        return info

    def _complete_abruptly(self, run: ActiveRun, *, error: str = "Batch run cancelled") -> None:
        session_id = run.session_id
        self._debouncer.cancel(session_id)
        elapsed = self._time_tracker.stop_tracking(session_id)
        if self._store.has_state(session_id):
            self._store.dispatch(
                CompleteBatch(session_id=session_id, final_session_ids=tuple(run.session_ids))
            )
        self._results[session_id] = BatchCompleteInfo(
            session_id=session_id,
            completed_tasks=run.completed_tasks,
            total_tasks=run.total_tasks,
            was_stopped=True,
            elapsed_time_ms=elapsed,
            loop_iterations=run.loop_iteration,
            session_ids=tuple(run.session_ids),
            documents=tuple(entry.filename for entry in run.entries),
            error=error,
        )

    async def _report(self, info: BatchCompleteInfo) -> None:
        self._results[info.session_id] = info
        await self._publish(
            BatchCompleted(
                session_id=info.session_id,
                completed_tasks=info.completed_tasks,
                total_tasks=info.total_tasks,
                was_stopped=info.was_stopped,
                elapsed_ms=info.elapsed_time_ms,
                pr_url=info.pr_url,
                error=info.error,
            )
        )
        if self._on_complete is not None:
            try:
                self._on_complete(info)
            except Exception as exc:
                log.error(f"Completion callback failed for {info.session_id}: {exc}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _schedule_progress(
        self, run: ActiveRun, *, immediate: bool = False, **changes: Any
    ) -> None:
        session_id = run.session_id
        changes["accumulated_elapsed_ms"] = self._time_tracker.get_elapsed_time(session_id)
        changes["last_active_timestamp"] = _now_ms()
        self._debouncer.schedule(session_id, changes, immediate=immediate)

    def _apply_progress(self, session_id: str, update: dict[str, Any]) -> None:
        # An idle session must never be written to again by a late flush
        if not self._store.get(session_id).is_running:
            log.debug(f"Dropping progress for idle session {session_id}")
            return
        self._store.dispatch(
            UpdateProgress(
                session_id=session_id, payload=UpdateProgressPayload.from_changes(update)
            )
        )

    def _record_history(self, run: ActiveRun, result: TaskResult) -> None:
        if self._on_history_entry is None:
            return
        entry = HistoryEntry(
            session_id=run.session_id,
            document=result.document,
            summary=result.short_summary,
            full_response=result.full_synopsis or result.response,
            success=result.success,
            timestamp=_now_ms(),
            loop_iteration=run.loop_iteration,
            project_path=run.effective_cwd,
            agent_session_id=result.agent_session_id,
            usage_stats=result.usage_stats,
            elapsed_time_ms=result.elapsed_ms,
            tasks_completed=result.tasks_completed_this_run,
        )
        try:
            self._on_history_entry(entry)
        except Exception as exc:
            log.error(f"History callback failed for {run.session_id}: {exc}")

    async def _publish(self, event: DomainEvent) -> None:
        """Publish batch events when an event bus is configured."""
        if self._event_bus is None:
            return
        await self._event_bus.publish(event)

    def _handle_run_done(self, session_id: str, task: asyncio.Task[BatchCompleteInfo]) -> None:
        run = self._runs.get(session_id)
        if run is not None and run.task is task:
            del self._runs[session_id]
        if not task.cancelled() and task.exception() is not None:
            log.error(f"Batch run {session_id} crashed: {task.exception()}")

    def _make_done_callback(
        self, session_id: str
    ) -> Callable[[asyncio.Task[BatchCompleteInfo]], None]:
        weak_self = weakref.ref(self)

        def on_done(task: asyncio.Task[BatchCompleteInfo]) -> None:
            engine = weak_self()
            if engine is not None:
                engine._handle_run_done(session_id, task)

        return on_done


def _document_error(name: str, exc: BaseException | None) -> AgentError:
    message = f"Failed to process {name}: {exc}" if exc is not None else f"Failed to process {name}"
    return AgentError(type=AgentErrorType.UNKNOWN, message=message, recoverable=True)


__all__ = [
    "ActiveRun",
    "BatchEngine",
    "BatchRunRequest",
    "ErrorDecision",
    "ErrorDecisionKind",
]
