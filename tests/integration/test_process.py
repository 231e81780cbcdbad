"""Subprocess helpers against real child processes."""

from __future__ import annotations

import os

import pytest

from autorun.adapters.process import run_exec, run_shell

pytestmark = pytest.mark.integration


async def test_run_shell_feeds_stdin() -> None:
    result = await run_shell("cat", input_text="- [ ] task\n")

    assert result.ok
    assert result.stdout_text() == "- [ ] task\n"


async def test_run_exec_captures_failure(tmp_path) -> None:
    result = await run_exec("sh", "-c", "pwd; echo broken >&2; exit 3", cwd=tmp_path)

    assert not result.ok
    assert result.returncode == 3
    assert result.stdout_text().strip() == str(tmp_path.resolve())
    assert result.stderr_text() == "broken\n"


async def test_run_exec_passes_env() -> None:
    result = await run_exec(
        "sh", "-c", "echo $AUTORUN_ENV_CHECK", env={**os.environ, "AUTORUN_ENV_CHECK": "on"}
    )

    assert result.stdout_text() == "on\n"


async def test_timeout_kills_child() -> None:
    with pytest.raises(TimeoutError):
        await run_exec("sleep", "5", timeout=0.1)


async def test_missing_executable_raises_oserror() -> None:
    with pytest.raises(OSError):
        await run_exec("autorun-no-such-binary")
