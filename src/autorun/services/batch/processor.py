"""Single-task execution against the agent capability."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from autorun.debug_log import log
from autorun.services.batch.documents import (
    TaskCounts,
    document_display_name,
    document_filename,
    read_doc_and_count_tasks,
)
from autorun.services.batch.state import AgentError, AgentErrorType
from autorun.services.batch.synopsis import DEFAULT_SUMMARY, parse_synopsis
from autorun.services.batch.templates import (
    DEFAULT_BATCH_PROMPT,
    TemplateContext,
    substitute_template_variables,
)
from autorun.services.batch.types import AgentInvocationResult, AgentSessionContext

if TYPE_CHECKING:
    from autorun.services.batch.types import (
        AgentInvoker,
        DocumentStore,
        SynopsisGenerator,
        UsageStats,
    )


@dataclass(frozen=True, slots=True)
class TaskProcessorConfig:
    """Inputs for one agent round-trip on one document."""

    session_id: str
    folder_path: str
    document: str
    effective_cwd: str
    loop_iteration: int = 0
    git_branch: str | None = None
    custom_prompt: str | None = None
    agent_name: str = "autorun"
    resume_agent_session_id: str | None = None


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of a single agent invocation on a document."""

    success: bool
    document: str
    session_id: str = ""
    cwd: str = ""
    elapsed_ms: int = 0
    agent_session_id: str | None = None
    usage_stats: UsageStats | None = None
    response: str = ""
    previous_remaining_tasks: int = 0
    new_remaining_tasks: int = 0
    new_completed_count: int = 0
    tasks_completed_this_run: int = 0
    document_changed: bool = False
    short_summary: str = ""
    full_synopsis: str = ""
    error: AgentError | None = None


def _template_context(config: TaskProcessorConfig) -> TemplateContext:
    filename = document_filename(config.document)
    return TemplateContext(
        agent_name=config.agent_name,
        agent_path=config.effective_cwd,
        git_branch=config.git_branch or "",
        autorun_folder=config.folder_path,
        loop_number=config.loop_iteration + 1,
        document_name=document_display_name(config.document),
        document_path=os.path.join(config.folder_path, filename),
        session_id=config.session_id,
    )


async def _invoke(
    agent: AgentInvoker, prompt: str, config: TaskProcessorConfig
) -> AgentInvocationResult:
    context = AgentSessionContext(
        session_id=config.session_id,
        document=config.document,
        loop_iteration=config.loop_iteration,
        resume_agent_session_id=config.resume_agent_session_id,
    )
    try:
        return await agent.invoke(prompt, config.effective_cwd, context)
    except Exception as exc:
        log.error(f"Agent invocation raised for {config.session_id}/{config.document}: {exc}")
        return AgentInvocationResult(
            success=False,
            error=AgentError(
                type=AgentErrorType.AGENT_CRASHED,
                message=f"Agent invocation failed: {exc}",
                recoverable=True,
            ),
        )


def _completed_between(before: TaskCounts, after: TaskCounts) -> int:
    # Checked-marker growth still counts when the agent also appended new tasks
    return max(0, after.completed - before.completed, before.unfinished - after.unfinished)


async def process_task(
    config: TaskProcessorConfig,
    *,
    agent: AgentInvoker,
    documents: DocumentStore,
    synopsis: SynopsisGenerator | None = None,
) -> TaskResult:
    """Run the agent once against ``config.document`` and recount its tasks.

    Agent failures come back as ``TaskResult(success=False)``; document I/O
    errors propagate.
    """
    before = await read_doc_and_count_tasks(documents, config.folder_path, config.document)
    template_context = _template_context(config)

    expanded = substitute_template_variables(before.content, template_context)
    if expanded != before.content:
        log.debug(f"Expanded template variables in {config.document}")
        await documents.write_document(config.folder_path, config.document, expanded)

    prompt = substitute_template_variables(
        config.custom_prompt or DEFAULT_BATCH_PROMPT, template_context
    )

    started = time.monotonic()
    invocation = await _invoke(agent, prompt, config)
    elapsed_ms = int((time.monotonic() - started) * 1000)

    if not invocation.success:
        error = invocation.error or AgentError(
            type=AgentErrorType.UNKNOWN,
            message="Agent returned an unsuccessful result",
            session_id=invocation.agent_session_id,
        )
        log.warning(f"Task failed in {config.document} after {elapsed_ms}ms: {error.message}")
        # Boxes checked before the failure still count toward the run
        try:
            after = await read_doc_and_count_tasks(
                documents, config.folder_path, config.document
            )
        except Exception as exc:
            log.error(f"Failed to recount {config.document} after agent failure: {exc}")
            after = replace(before, content=expanded)
        return TaskResult(
            success=False,
            document=config.document,
            session_id=config.session_id,
            cwd=config.effective_cwd,
            elapsed_ms=elapsed_ms,
            agent_session_id=invocation.agent_session_id,
            usage_stats=invocation.usage_stats,
            response=invocation.response,
            previous_remaining_tasks=before.unfinished,
            new_remaining_tasks=after.unfinished,
            new_completed_count=after.completed,
            tasks_completed_this_run=_completed_between(before, after),
            document_changed=after.content != expanded,
            short_summary=error.message,
            full_synopsis=error.message,
            error=error,
        )

    after = await read_doc_and_count_tasks(documents, config.folder_path, config.document)
    tasks_completed = _completed_between(before, after)
    fallback = parse_synopsis(invocation.response) if invocation.response.strip() else None
    result = TaskResult(
        success=True,
        document=config.document,
        session_id=config.session_id,
        cwd=config.effective_cwd,
        elapsed_ms=elapsed_ms,
        agent_session_id=invocation.agent_session_id,
        usage_stats=invocation.usage_stats,
        response=invocation.response,
        previous_remaining_tasks=before.unfinished,
        new_remaining_tasks=after.unfinished,
        new_completed_count=after.completed,
        tasks_completed_this_run=tasks_completed,
        document_changed=after.content != expanded,
        short_summary=fallback.short_summary if fallback else DEFAULT_SUMMARY,
        full_synopsis=fallback.full_synopsis if fallback else DEFAULT_SUMMARY,
    )
    log.info(
        f"Task in {config.document} finished in {elapsed_ms}ms: "
        f"{tasks_completed} completed, {after.unfinished} remaining"
    )

    if synopsis is None or invocation.agent_session_id is None:
        return result

    try:
        raw = await synopsis(result)
    except Exception as exc:
        log.error(f"Synopsis generation failed for {config.document}: {exc}")
        return result
    if not raw:
        return result
    parsed = parse_synopsis(raw)
    return replace(result, short_summary=parsed.short_summary, full_synopsis=parsed.full_synopsis)


__all__ = ["TaskProcessorConfig", "TaskResult", "process_task"]
