"""Pytest fixtures for autorun tests."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from autorun.debug_log import clear_log_buffer
from autorun.services.batch import BatchEngine, BatchStore
from tests.helpers.fakes import FakeAgent, FakeGit, MemoryDocumentStore

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="autorun-tests-"))
os.environ["AUTORUN_DATA_DIR"] = str(_TEST_BASE_DIR / "data")
os.environ["AUTORUN_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture(autouse=True, scope="session")
def _remove_test_base_dir() -> Generator[None, None, None]:
    yield
    shutil.rmtree(_TEST_BASE_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def _fresh_log_buffer() -> None:
    clear_log_buffer()


@pytest.fixture
def documents() -> MemoryDocumentStore:
    return MemoryDocumentStore(
        {
            "phase-1": "# Phase 1\n\n- [ ] first\n- [ ] second\n",
            "phase-2": "# Phase 2\n\n- [x] done already\n- [ ] third\n",
        }
    )


@pytest.fixture
def agent(documents: MemoryDocumentStore) -> FakeAgent:
    return FakeAgent(documents)


@pytest.fixture
def git() -> FakeGit:
    return FakeGit()


@pytest.fixture
async def engine(
    documents: MemoryDocumentStore, agent: FakeAgent, git: FakeGit
) -> AsyncGenerator[BatchEngine, None]:
    """A BatchEngine over in-memory collaborators with debouncing disabled."""
    batch_engine = BatchEngine(
        store=BatchStore(journal=True),
        agent=agent,
        documents=documents,
        git=git,
        debounce_ms=0,
    )
    yield batch_engine
    await batch_engine.close(timeout=1.0)
