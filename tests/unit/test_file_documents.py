"""Tests for the filesystem document store."""

from __future__ import annotations

import stat
from typing import TYPE_CHECKING

import pytest

from autorun.adapters.documents import FileDocumentStore
from autorun.atomic import DEFAULT_FILE_MODE

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


async def test_read_and_write_use_markdown_suffix(tmp_path: Path) -> None:
    store = FileDocumentStore()
    (tmp_path / "phase-1.md").write_text("- [ ] build\n", encoding="utf-8")

    assert await store.read_document(str(tmp_path), "phase-1") == "- [ ] build\n"

    await store.write_document(str(tmp_path), "phase-1.md", "- [x] build\n")

    assert (tmp_path / "phase-1.md").read_text(encoding="utf-8") == "- [x] build\n"
    assert not list(tmp_path.glob(".*.tmp"))


async def test_write_creates_nested_folders(tmp_path: Path) -> None:
    store = FileDocumentStore()

    await store.write_document(str(tmp_path), "sub/notes", "- [ ] a\n")

    assert (tmp_path / "sub" / "notes.md").exists()


async def test_missing_document_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await FileDocumentStore().read_document(str(tmp_path), "absent")


async def test_list_documents_is_sorted_and_recursive(tmp_path: Path) -> None:
    (tmp_path / "b.md").write_text("", encoding="utf-8")
    (tmp_path / "a.md").write_text("", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "c.md").write_text("", encoding="utf-8")

    assert await FileDocumentStore().list_documents(str(tmp_path)) == ["a", "b", "sub/c"]


async def test_write_keeps_permissions(tmp_path: Path) -> None:
    store = FileDocumentStore()
    existing = tmp_path / "private.md"
    existing.write_text("- [ ] secret\n", encoding="utf-8")
    existing.chmod(0o600)

    await store.write_document(str(tmp_path), "private", "- [x] secret\n")
    await store.write_document(str(tmp_path), "fresh", "- [ ] new\n")

    assert stat.S_IMODE(existing.stat().st_mode) == 0o600
    assert stat.S_IMODE((tmp_path / "fresh.md").stat().st_mode) == DEFAULT_FILE_MODE
