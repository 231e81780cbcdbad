"""Subprocess helpers shared by the agent and git adapters."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from autorun.debug_log import log

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished child process."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


async def _collect(
    process: asyncio.subprocess.Process,
    label: str,
    *,
    input_data: bytes | None,
    timeout: float | None,
) -> ProcessResult:
    started = time.monotonic()
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(input_data), timeout)
    except (TimeoutError, asyncio.CancelledError):
        # Never leave the child running once nobody waits for it
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(ProcessLookupError):
            await process.wait()
        log.warning(f"Killed {label} after {time.monotonic() - started:.1f}s")
        raise

    returncode = process.returncode if process.returncode is not None else 1
    log.debug(f"{label} exited {returncode} in {time.monotonic() - started:.2f}s")
    return ProcessResult(returncode=returncode, stdout=stdout or b"", stderr=stderr or b"")


async def run_exec(
    executable: str,
    *args: str,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run ``executable`` with ``args`` (no shell) and capture its output.

    Raises:
        TimeoutError: If the process outlives ``timeout`` (it is killed).
        OSError: If the executable cannot be started.
    """
    process = await asyncio.create_subprocess_exec(
        executable,
        *args,
        cwd=None if cwd is None else str(cwd),
        env=None if env is None else dict(env),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    label = f"{executable} {args[0]}" if args else executable
    return await _collect(process, label, input_data=None, timeout=timeout)


async def run_shell(
    command: str,
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run ``command`` through the shell, feeding ``input_text`` on stdin when given."""
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=None if cwd is None else str(cwd),
        env=None if env is None else dict(env),
        stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    input_data = input_text.encode("utf-8") if input_text is not None else None
    label = command.split(maxsplit=1)[0] if command.strip() else "shell"
    return await _collect(process, label, input_data=input_data, timeout=timeout)


__all__ = ["ProcessResult", "run_exec", "run_shell"]
