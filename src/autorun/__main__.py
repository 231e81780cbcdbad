"""CLI entry point for autorun."""

from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import click

from autorun import __version__
from autorun.errors import AutorunError, BatchNotPausedError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from autorun.bootstrap import AppContext
    from autorun.config import AutorunConfig
    from autorun.services.batch import BatchRunRequest
    from autorun.services.batch.types import BatchCompleteInfo, HistoryEntry

ERROR_CHOICES = ("ask", "retry", "skip", "abort")


def _echo_history(entry: HistoryEntry) -> None:
    icon = click.style("✓", fg="green") if entry.success else click.style("✗", fg="red")
    loop = f" [loop {entry.loop_iteration + 1}]" if entry.loop_iteration else ""
    click.echo(f"  {icon} {entry.document}{loop}: {entry.summary}")


def _echo_summary(info: BatchCompleteInfo) -> None:
    click.echo()
    if info.error:
        click.secho(f"Batch run failed: {info.error}", fg="red", bold=True)
    elif info.was_stopped:
        click.secho("Batch run stopped.", fg="yellow", bold=True)
    else:
        click.secho("Batch run complete.", fg="green", bold=True)
    click.echo(f"  Tasks completed: {info.completed_tasks}/{info.total_tasks}")
    if info.loop_iterations:
        click.echo(f"  Loop iterations: {info.loop_iterations + 1}")
    click.echo(f"  Active time: {info.elapsed_time_ms / 1000:.1f}s")
    if info.pr_url:
        click.echo(f"  Pull request: {click.style(info.pr_url, fg='cyan')}")
    elif info.pr_error:
        click.secho(f"  Pull request failed: {info.pr_error}", fg="yellow")


async def _decide(ctx: AppContext, session_id: str, message: str, on_error: str) -> None:
    """Resolve a paused run according to ``on_error`` (prompting when ``ask``)."""
    click.secho(f"  Paused on error: {message}", fg="red")
    choice = on_error
    if choice == "ask":
        choice = await asyncio.to_thread(
            click.prompt,
            "  Retry, skip this document, or abort?",
            type=click.Choice(ERROR_CHOICES[1:]),
            default="retry",
        )
    orchestrator = ctx.orchestrator
    try:
        if choice == "retry":
            await orchestrator.retry_after_error(session_id)
        elif choice == "skip":
            await orchestrator.skip_after_error(session_id)
        else:
            await orchestrator.abort_after_error(session_id)
    except BatchNotPausedError:
        # The run was stopped while the prompt was open
        click.secho("  Run is no longer paused.", fg="yellow")


async def _drive_batch(
    ctx: AppContext, request: BatchRunRequest, *, on_error: str
) -> BatchCompleteInfo:
    from autorun.events import BatchErrorPaused

    async with ctx.event_bus.subscribe(BatchErrorPaused) as paused:
        task = ctx.orchestrator.start_batch(request)
        while not task.done():
            getter = asyncio.ensure_future(paused.get())
            done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            event = getter.result()
            if isinstance(event, BatchErrorPaused) and event.session_id == request.session_id:
                await _decide(ctx, request.session_id, event.message, on_error)
        return await task


async def _run_batch(
    request: BatchRunRequest,
    *,
    config_path: Path | None,
    on_error: str,
    create_pr: bool | None,
    pr_target: str | None,
) -> BatchCompleteInfo:
    from autorun.bootstrap import bootstrap_app
    from autorun.config import AutorunConfig

    config = AutorunConfig.load(config_path)
    if create_pr is not None:
        config.worktree.create_pr_on_completion = create_pr
    if pr_target:
        config.worktree.pr_target_branch = pr_target
    request = _apply_worktree_settings(request, config)

    async with bootstrap_app(config=config, on_history_entry=_echo_history) as ctx:
        return await _drive_batch(ctx, request, on_error=on_error)


def _apply_worktree_settings(request: BatchRunRequest, config: AutorunConfig) -> BatchRunRequest:
    from dataclasses import replace

    if request.worktree is None or not request.worktree.enabled:
        return request
    settings = config.worktree
    worktree = replace(
        request.worktree,
        branch_name=request.worktree.branch_name
        or f"{settings.branch_prefix}{request.session_id}",
        create_pr_on_completion=settings.create_pr_on_completion,
        pr_target_branch=settings.pr_target_branch,
        draft_pr=settings.draft_pr,
    )
    return replace(request, worktree=worktree)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Work through markdown checklists with a coding agent, one task at a time."""
    if version:
        click.echo(f"autorun {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-d", "--doc", "docs", multiple=True, help="Document to process (repeatable)")
@click.option("--lock", "locked", multiple=True, help="Document to show but not process")
@click.option("--reset", "reset_docs", multiple=True, help="Uncheck this document when done")
@click.option("--loop", "loop_enabled", is_flag=True, help="Re-scan documents after each pass")
@click.option("--max-loops", type=click.IntRange(min=0), default=None, help="Extra passes cap")
@click.option(
    "--prompt-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom prompt template",
)
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Working directory for the agent (defaults to the current directory)",
)
@click.option("--worktree", "worktree_path", default=None, help="Run inside this git worktree")
@click.option("--branch", default=None, help="Branch for the worktree")
@click.option("--create-pr/--no-create-pr", default=None, help="Open a PR when the run ends")
@click.option("--pr-target", default=None, help="Base branch for the PR")
@click.option(
    "--on-error",
    type=click.Choice(ERROR_CHOICES),
    default="ask",
    show_default=True,
    help="What to do when a task fails",
)
@click.option("--session-id", default=None, help="Identifier for this run")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None)
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Export logs")
@click.option("--save-log", is_flag=True, help="Export logs to the default debug log path")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages")
def run(
    folder: Path,
    docs: Sequence[str],
    locked: Sequence[str],
    reset_docs: Sequence[str],
    loop_enabled: bool,
    max_loops: int | None,
    prompt_file: Path | None,
    cwd: Path | None,
    worktree_path: str | None,
    branch: str | None,
    create_pr: bool | None,
    pr_target: str | None,
    on_error: str,
    session_id: str | None,
    config_path: Path | None,
    log_file: str | None,
    save_log: bool,
    verbose: bool,
) -> None:
    """Run a batch over documents in FOLDER."""
    from autorun.adapters.documents import FileDocumentStore
    from autorun.debug_log import export_logs_to_file, setup_debug_logging
    from autorun.paths import ensure_directories, get_debug_log_path
    from autorun.services.batch import BatchDocumentEntry, BatchRunRequest, WorktreeConfig

    setup_debug_logging(logging.DEBUG if verbose else logging.INFO)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    names = list(docs) or asyncio.run(FileDocumentStore().list_documents(str(folder)))
    if not names:
        raise click.UsageError(f"No documents found in {folder}")
    if branch and not worktree_path:
        raise click.UsageError("--branch requires --worktree")

    request = BatchRunRequest(
        session_id=session_id or uuid.uuid4().hex[:8],
        folder_path=str(folder),
        documents=[
            BatchDocumentEntry(filename=name, reset_on_completion=name in reset_docs)
            for name in names
        ],
        cwd=str(cwd or Path.cwd()),
        locked_documents=tuple(locked),
        loop_enabled=loop_enabled,
        max_loops=max_loops,
        custom_prompt=prompt_file.read_text(encoding="utf-8") if prompt_file else None,
        worktree=WorktreeConfig(enabled=True, path=worktree_path, branch_name=branch or "")
        if worktree_path
        else None,
    )

    click.secho(f"autorun {request.session_id}: {len(names)} document(s)", bold=True)
    try:
        info = asyncio.run(
            _run_batch(
                request,
                config_path=config_path,
                on_error=on_error,
                create_pr=create_pr,
                pr_target=pr_target,
            )
        )
    except AutorunError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        if save_log and not log_file:
            ensure_directories()
            log_file = str(get_debug_log_path())
        if log_file:
            count = export_logs_to_file(log_file)
            click.echo(f"Wrote {count} log entries to {log_file}")

    _echo_summary(info)
    if info.error:
        sys.exit(1)


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-d", "--doc", "docs", multiple=True, help="Document to count (repeatable)")
def count(folder: Path, docs: Sequence[str]) -> None:
    """Show unfinished and completed task counts for documents in FOLDER."""
    from autorun.adapters.documents import FileDocumentStore
    from autorun.services.batch.documents import read_doc_and_count_tasks

    store = FileDocumentStore()

    async def _count() -> list[tuple[str, int, int]]:
        names = list(docs) or await store.list_documents(str(folder))
        rows = []
        for name in names:
            counts = await read_doc_and_count_tasks(store, str(folder), name)
            rows.append((name, counts.unfinished, counts.completed))
        return rows

    try:
        rows = asyncio.run(_count())
    except OSError as exc:
        raise click.ClickException(str(exc)) from exc

    width = max((len(name) for name, _, _ in rows), default=8)
    for name, unfinished, completed in rows:
        click.echo(f"{name:<{width}}  {unfinished:>4} open  {completed:>4} done")
    total_open = sum(row[1] for row in rows)
    total_done = sum(row[2] for row in rows)
    click.secho(f"{'total':<{width}}  {total_open:>4} open  {total_done:>4} done", bold=True)


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("doc")
def uncheck(folder: Path, doc: str) -> None:
    """Uncheck every completed task in DOC so it can run again."""
    from autorun.adapters.documents import FileDocumentStore
    from autorun.services.batch.documents import count_checked_tasks, uncheck_all_tasks

    store = FileDocumentStore()

    async def _uncheck() -> int:
        content = await store.read_document(str(folder), doc)
        checked = count_checked_tasks(content)
        if checked:
            await store.write_document(str(folder), doc, uncheck_all_tasks(content))
        return checked

    try:
        checked = asyncio.run(_uncheck())
    except OSError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Unchecked {checked} task(s) in {doc}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
