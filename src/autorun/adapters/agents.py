"""Default agent capability: a configured CLI command fed the prompt on stdin."""

from __future__ import annotations

import json
import re
import shlex
from typing import TYPE_CHECKING, Any

from autorun.adapters.process import run_shell
from autorun.debug_log import log
from autorun.limits import RESPONSE_TAIL_CHARS
from autorun.services.batch.state import AgentError, AgentErrorType
from autorun.services.batch.synopsis import SYNOPSIS_PROMPT
from autorun.services.batch.types import (
    AgentInvocationResult,
    AgentSessionContext,
    UsageStats,
)

if TYPE_CHECKING:
    from autorun.config import AgentCommandConfig
    from autorun.services.batch.processor import TaskResult
    from autorun.services.batch.types import AgentInvoker

# Ordered: the first matching category wins
_ERROR_PATTERNS: tuple[tuple[AgentErrorType, re.Pattern[str]], ...] = (
    (
        AgentErrorType.AUTH_EXPIRED,
        re.compile(
            r"unauthori[sz]ed|authentication|invalid api key|not logged in|please log ?in|\b401\b",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorType.TOKEN_EXHAUSTION,
        re.compile(
            r"context (length|window)|prompt is too long|maximum context|too many tokens",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorType.RATE_LIMITED,
        re.compile(r"rate.?limit|too many requests|overloaded|quota|\b429\b", re.IGNORECASE),
    ),
    (
        AgentErrorType.NETWORK_ERROR,
        re.compile(
            r"ECONNREFUSED|ECONNRESET|ETIMEDOUT|ENOTFOUND|network error|connection (reset|refused)",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorType.PERMISSION_DENIED,
        re.compile(r"permission denied|EACCES|operation not permitted", re.IGNORECASE),
    ),
)

_UNRECOVERABLE = frozenset({AgentErrorType.AUTH_EXPIRED, AgentErrorType.PERMISSION_DENIED})


def classify_agent_error(text: str, *, exited_abnormally: bool) -> AgentErrorType:
    """Map agent output to an error category."""
    for error_type, pattern in _ERROR_PATTERNS:
        if pattern.search(text):
            return error_type
    return AgentErrorType.AGENT_CRASHED if exited_abnormally else AgentErrorType.UNKNOWN


def parse_agent_output(stdout: str) -> dict[str, Any] | None:
    """Extract the JSON result object printed by the agent, if any.

    Accepts a single JSON document or JSON lines, in which case the last
    ``"type": "result"`` line (or the last object) wins.
    """
    text = stdout.strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict):
        return payload

    last_object: dict[str, Any] | None = None
    for line in reversed(text.splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            candidate = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(candidate, dict):
            continue
        if candidate.get("type") == "result":
            return candidate
        if last_object is None:
            last_object = candidate
    return last_object


def parse_usage(payload: dict[str, Any]) -> UsageStats | None:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None

    def _int(key: str) -> int:
        value = usage.get(key, 0)
        return value if isinstance(value, int) else 0

    cost = payload.get("total_cost_usd", usage.get("total_cost_usd", 0.0))
    return UsageStats(
        input_tokens=_int("input_tokens"),
        output_tokens=_int("output_tokens"),
        cache_read_input_tokens=_int("cache_read_input_tokens"),
        cache_creation_input_tokens=_int("cache_creation_input_tokens"),
        total_cost_usd=float(cost) if isinstance(cost, int | float) else 0.0,
    )


class CommandAgentInvoker:
    """Runs the configured agent command once per invocation."""

    def __init__(self, config: AgentCommandConfig, *, timeout: float | None = None) -> None:
        self._config = config
        self._timeout = timeout

    def build_command(self, context: AgentSessionContext) -> str:
        command = self._config.command
        if context.read_only and self._config.read_only_command:
            command = self._config.read_only_command
        resume_id = context.resume_agent_session_id
        if resume_id and self._config.resume_args:
            resume = self._config.resume_args.format(session_id=shlex.quote(resume_id))
            command = f"{command} {resume}"
        return command

    async def invoke(
        self, prompt: str, cwd: str, context: AgentSessionContext
    ) -> AgentInvocationResult:
        command = self.build_command(context)
        log.info(f"Invoking agent for {context.session_id}/{context.document} in {cwd}")
        try:
            result = await run_shell(command, cwd=cwd, input_text=prompt, timeout=self._timeout)
        except TimeoutError:
            return self._failure(
                AgentErrorType.AGENT_CRASHED,
                f"Agent timed out after {self._timeout}s",
                session_id=context.resume_agent_session_id,
            )
        except OSError as exc:
            return self._failure(
                AgentErrorType.AGENT_CRASHED,
                f"Failed to start agent: {exc}",
                session_id=context.resume_agent_session_id,
            )

        stdout = result.stdout_text()
        stderr = result.stderr_text()
        payload = parse_agent_output(stdout)
        agent_session_id = None
        usage = None
        response = stdout.strip()
        is_error = False
        if payload is not None:
            raw_session = payload.get("session_id")
            agent_session_id = raw_session if isinstance(raw_session, str) else None
            usage = parse_usage(payload)
            raw_result = payload.get("result")
            if isinstance(raw_result, str):
                response = raw_result
            is_error = bool(payload.get("is_error", False))

        if result.ok and not is_error:
            return AgentInvocationResult(
                success=True,
                agent_session_id=agent_session_id,
                usage_stats=usage,
                response=response,
            )

        detail = (stderr.strip() or response)[-RESPONSE_TAIL_CHARS:]
        error_type = classify_agent_error(
            f"{stderr}\n{response}", exited_abnormally=not result.ok
        )
        message = detail or f"Agent exited with code {result.returncode}"
        log.warning(f"Agent failed ({error_type}) for {context.session_id}: {message[:200]}")
        return AgentInvocationResult(
            success=False,
            agent_session_id=agent_session_id,
            usage_stats=usage,
            response=response,
            error=AgentError(
                type=error_type,
                message=message,
                recoverable=error_type not in _UNRECOVERABLE,
                agent_id=self._config.identity,
                session_id=agent_session_id or context.resume_agent_session_id,
                raw={"returncode": result.returncode, "stderr": stderr[-RESPONSE_TAIL_CHARS:]},
            ),
        )

    def _failure(
        self, error_type: AgentErrorType, message: str, *, session_id: str | None
    ) -> AgentInvocationResult:
        log.error(message)
        return AgentInvocationResult(
            success=False,
            error=AgentError(
                type=error_type,
                message=message,
                agent_id=self._config.identity,
                session_id=session_id,
            ),
        )


class AgentSynopsisGenerator:
    """Asks the agent that ran a task to summarize it, resuming its session."""

    def __init__(self, agent: AgentInvoker) -> None:
        self._agent = agent

    async def __call__(self, result: TaskResult) -> str | None:
        if not result.agent_session_id:
            return None
        context = AgentSessionContext(
            session_id=result.session_id,
            document=result.document,
            loop_iteration=0,
            resume_agent_session_id=result.agent_session_id,
            read_only=True,
        )
        synopsis = await self._agent.invoke(SYNOPSIS_PROMPT, result.cwd, context)
        if not synopsis.success:
            log.warning(f"Synopsis request failed for {result.document}")
            return None
        return synopsis.response or None


__all__ = [
    "AgentSynopsisGenerator",
    "CommandAgentInvoker",
    "classify_agent_error",
    "parse_agent_output",
    "parse_usage",
]
