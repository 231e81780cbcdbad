"""Replace-by-rename file writes for checklist documents and config."""

from __future__ import annotations

import asyncio
import os
import stat
import tempfile
from pathlib import Path

# Applied to files that did not exist before the write
DEFAULT_FILE_MODE = 0o644


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` so readers see the old or new text, never a mix.

    An existing file keeps its permission bits; the agent and the user's
    editor may both hold the document open while a run rewrites it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = DEFAULT_FILE_MODE

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.chmod(mode)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


async def atomic_write_async(path: Path, content: str) -> None:
    await asyncio.to_thread(atomic_write, path, content)
