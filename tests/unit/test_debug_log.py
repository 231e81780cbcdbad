"""Unit tests for debug logging."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from autorun.debug_log import (
    TRUNCATION_SUFFIX,
    AutorunLogger,
    DebugLogHandler,
    LogSource,
    current_log_session,
    export_logs_to_file,
    log_buffer,
    session_entries,
    set_log_session,
    setup_debug_logging,
)
from autorun.limits import MAX_LOG_MESSAGE_LENGTH

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


class TestLogTruncation:
    def test_log_truncates_oversized_messages(self) -> None:
        AutorunLogger().info("x" * 10000)

        assert len(log_buffer) == 1
        message = log_buffer[0].message
        assert len(message) == MAX_LOG_MESSAGE_LENGTH + len(TRUNCATION_SUFFIX)
        assert message.endswith(TRUNCATION_SUFFIX)

    def test_log_keeps_message_at_exact_limit(self) -> None:
        exact_message = "y" * MAX_LOG_MESSAGE_LENGTH

        AutorunLogger().info(exact_message)

        assert log_buffer[0].message == exact_message

    def test_third_party_records_are_truncated_too(self) -> None:
        record = logging.LogRecord(
            "asyncio", logging.INFO, __file__, 1, "z" * (MAX_LOG_MESSAGE_LENGTH + 1), None, None
        )

        DebugLogHandler().emit(record)

        assert log_buffer[0].message.endswith(TRUNCATION_SUFFIX)


class TestLogEntries:
    def test_levels_and_keyword_values_are_recorded(self) -> None:
        AutorunLogger().error("Batch failed", session="s1", count=2)

        entry = log_buffer[0]
        assert entry.level == "ERROR"
        assert entry.source is LogSource.AUTORUN
        assert entry.message == "Batch failed session='s1' count=2"

    def test_calling_logger_logs_at_info(self) -> None:
        AutorunLogger()("hello")

        assert log_buffer[0].level == "INFO"

    def test_entries_are_forwarded_to_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="autorun"):
            AutorunLogger().warning("disk almost full")

        assert caplog.records[-1].getMessage() == "disk almost full"
        assert caplog.records[-1].levelno == logging.WARNING


class TestSessionTagging:
    async def test_entries_carry_the_session_of_their_task(self) -> None:
        logger = AutorunLogger()

        async def run(session_id: str) -> None:
            set_log_session(session_id)
            logger.info(f"working in {session_id}")
            await asyncio.sleep(0)
            logger.info(f"done in {session_id}")

        await asyncio.gather(run("s1"), run("s2"))
        logger.info("outside any run")

        assert [entry.message for entry in session_entries("s1")] == ["working in s1", "done in s1"]
        assert [entry.message for entry in session_entries("s2")] == ["working in s2", "done in s2"]
        assert log_buffer[-1].session_id is None
        assert current_log_session() is None

    def test_handler_tags_third_party_records(self) -> None:
        record = logging.LogRecord("asyncio", logging.WARNING, __file__, 1, "slow", None, None)

        async def emit() -> None:
            set_log_session("s9")
            DebugLogHandler().emit(record)

        asyncio.run(emit())

        assert log_buffer[0].source is LogSource.LOGGING
        assert log_buffer[0].session_id == "s9"


def test_handler_ignores_own_records() -> None:
    handler = DebugLogHandler()
    for name in ("autorun", "autorun.services"):
        handler.emit(logging.LogRecord(name, logging.INFO, __file__, 1, "dup", None, None))

    assert len(log_buffer) == 0


def test_setup_installs_one_handler() -> None:
    setup_debug_logging(logging.DEBUG)
    setup_debug_logging(logging.INFO)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, DebugLogHandler)]
    assert len(handlers) == 1
    assert logging.getLogger("autorun").level == logging.INFO


class TestExport:
    async def _log_two_sessions(self) -> None:
        logger = AutorunLogger()

        async def run(session_id: str) -> None:
            set_log_session(session_id)
            logger.info(f"task in {session_id}")

        await asyncio.gather(run("s1"), run("s2"))
        logger.error("engine closed")

    async def test_export_all_entries(self, tmp_path: Path) -> None:
        await self._log_two_sessions()
        target = tmp_path / "nested" / "debug.log"

        written = export_logs_to_file(target)

        assert written == 3
        lines = target.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "# autorun debug log (all sessions), 3 entries"
        assert lines[2].endswith("[AR] [INFO] (s1) task in s1")
        assert lines[4].endswith("[AR] [ERROR] engine closed")

    async def test_export_one_session(self, tmp_path: Path) -> None:
        await self._log_two_sessions()
        target = tmp_path / "s2.log"

        assert export_logs_to_file(target, session_id="s2") == 1
        text = target.read_text(encoding="utf-8")
        assert "task in s2" in text
        assert "task in s1" not in text
