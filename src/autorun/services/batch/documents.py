"""Checklist task counting for batch documents."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autorun.services.batch.types import DocumentStore

# - [ ] task  /  * [ ] task
UNCHECKED_TASK_RE = re.compile(r"^[ \t]*[-*][ \t]*\[[ \t]*\][ \t]*\S.*$", re.MULTILINE)
# - [x] task  /  - [X] task  /  - [✓] task
CHECKED_TASK_RE = re.compile(r"^[ \t]*[-*][ \t]*\[[xX✓✔]\][ \t]*\S.*$", re.MULTILINE)
_CHECKED_MARKER_RE = re.compile(r"^([ \t]*[-*][ \t]*)\[[xX✓✔]\]", re.MULTILINE)

DOCUMENT_SUFFIX = ".md"


def count_unfinished_tasks(content: str) -> int:
    """Count unchecked checklist items in markdown content."""
    return len(UNCHECKED_TASK_RE.findall(content))


def count_checked_tasks(content: str) -> int:
    """Count checked checklist items in markdown content."""
    return len(CHECKED_TASK_RE.findall(content))


def uncheck_all_tasks(content: str) -> str:
    """Turn every checked item back into an unchecked one."""
    return _CHECKED_MARKER_RE.sub(r"\1[ ]", content)


def document_filename(name: str) -> str:
    """Return the on-disk filename for a document name."""
    return name if name.endswith(DOCUMENT_SUFFIX) else f"{name}{DOCUMENT_SUFFIX}"


def document_display_name(name: str) -> str:
    """Return a document name without its markdown suffix."""
    return name.removesuffix(DOCUMENT_SUFFIX)


@dataclass(frozen=True, slots=True)
class TaskCounts:
    unfinished: int
    completed: int
    content: str

    @property
    def total(self) -> int:
        return self.unfinished + self.completed


def count_tasks(content: str) -> TaskCounts:
    return TaskCounts(
        unfinished=count_unfinished_tasks(content),
        completed=count_checked_tasks(content),
        content=content,
    )


async def read_doc_and_count_tasks(documents: DocumentStore, folder: str, name: str) -> TaskCounts:
    """Read a document and count its checklist markers.

    Read failures from the document store propagate to the caller.
    """
    content = await documents.read_document(folder, name)
    return count_tasks(content)


__all__ = [
    "TaskCounts",
    "count_checked_tasks",
    "count_tasks",
    "count_unfinished_tasks",
    "document_display_name",
    "document_filename",
    "read_doc_and_count_tasks",
    "uncheck_all_tasks",
]
