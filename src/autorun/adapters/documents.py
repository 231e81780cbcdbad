"""Filesystem-backed checklist document store."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiofiles

from autorun.atomic import atomic_write_async
from autorun.services.batch.documents import document_filename


class FileDocumentStore:
    """Reads and writes ``<folder>/<name>.md`` documents.

    Writes go through :func:`atomic_write_async` so an agent reading the document
    concurrently never sees a half-written file.
    """

    def resolve(self, folder: str, name: str) -> Path:
        return Path(folder) / document_filename(name)

    async def read_document(self, folder: str, name: str) -> str:
        async with aiofiles.open(self.resolve(folder, name), encoding="utf-8") as f:
            return await f.read()

    async def write_document(self, folder: str, name: str, content: str) -> None:
        await atomic_write_async(self.resolve(folder, name), content)

    async def list_documents(self, folder: str) -> list[str]:
        """Return document names (without suffix) in ``folder``, sorted."""
        root = Path(folder)
        paths = await asyncio.to_thread(lambda: sorted(root.rglob("*.md")))
        return [path.relative_to(root).with_suffix("").as_posix() for path in paths]


__all__ = ["FileDocumentStore"]
