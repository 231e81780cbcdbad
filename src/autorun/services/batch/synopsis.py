"""Synopsis prompt and parsing for per-task run history."""

from __future__ import annotations

import re
from dataclasses import dataclass

SYNOPSIS_PROMPT = """Give a brief synopsis of what you just accomplished, in exactly this format:

**Summary:** [1-2 sentences describing the key outcome]

**Details:** [One paragraph with specifics: what changed, which files, why]

Rules:
- Describe what was actually done, not what was attempted.
- Skip filler such as "the task is complete" or "everything works".
- If nothing meaningful was done, reply with only: **Summary:** No changes made."""

DEFAULT_SUMMARY = "Task completed"

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
_BOX_RULE_RE = re.compile(r"─+")
_BOX_CHARS_RE = re.compile(r"[│┌┐└┘├┤┬┴┼]")
_SUMMARY_RE = re.compile(
    r"\*\*Summary:\*\*\s*(.+?)(?=\*\*Details:\*\*|$)", re.IGNORECASE | re.DOTALL
)
_DETAILS_RE = re.compile(r"\*\*Details:\*\*\s*(.+?)$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True, slots=True)
class ParsedSynopsis:
    short_summary: str
    full_synopsis: str


def strip_ansi_codes(text: str) -> str:
    return _ANSI_RE.sub("", text)


def parse_synopsis(response: str) -> ParsedSynopsis:
    """Split an agent synopsis into a short summary and the full text.

    Falls back to the first line when the ``**Summary:**`` marker is missing.
    """
    clean = strip_ansi_codes(response)
    clean = _BOX_CHARS_RE.sub("", _BOX_RULE_RE.sub("", clean)).strip()

    summary_match = _SUMMARY_RE.search(clean)
    details_match = _DETAILS_RE.search(clean)

    short_summary = summary_match.group(1).strip() if summary_match else ""
    if not short_summary:
        first_line = clean.split("\n", 1)[0].strip()
        short_summary = first_line or DEFAULT_SUMMARY
    details = details_match.group(1).strip() if details_match else ""

    full_synopsis = f"{short_summary}\n\n{details}" if details else short_summary
    return ParsedSynopsis(short_summary=short_summary, full_synopsis=full_synopsis)


__all__ = [
    "DEFAULT_SUMMARY",
    "SYNOPSIS_PROMPT",
    "ParsedSynopsis",
    "parse_synopsis",
    "strip_ansi_codes",
]
