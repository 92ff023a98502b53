"""Strip tool-call artifacts the agent model sometimes leaks into its text."""

from __future__ import annotations

import re

_FLAGS = re.IGNORECASE

_REMOVALS: tuple[re.Pattern[str], ...] = (
    re.compile(r"```\s*tool_[a-z0-9_]+[\s\S]*?```", _FLAGS),
    re.compile(r"```[^\n`]*tool_[a-z0-9_][^\n`]*\n[\s\S]*?```", _FLAGS),
    re.compile(r"tool_outputs\s*\{[\s\S]*?\}", _FLAGS),
    re.compile(r"```[\s\S]*?web_search\.search\([\s\S]*?```", _FLAGS),
    re.compile(r"print\s*\(\s*web_search\.search\([\s\S]*?\)\s*\)", _FLAGS),
    re.compile(r"web_search\.search\([\s\S]*?\)", _FLAGS),
)
_TOOL_LINE = re.compile(r"\btool_code\b|\btool_outputs\b|\btool_result\b", _FLAGS)
_BLANK_RUN = re.compile(r"\n{3,}")


def sanitize_agent_text(text: str | None) -> str:
    """Return ``text`` without fenced tool blocks and tool-output markers."""
    cleaned = text or ""
    for pattern in _REMOVALS:
        cleaned = pattern.sub("", cleaned).strip()

    lines = [
        line
        for line in cleaned.split("\n")
        if not _TOOL_LINE.search(line) and line.strip() != "```"
    ]
    cleaned = "\n".join(lines).strip()
    return _BLANK_RUN.sub("\n\n", cleaned)


__all__ = ["sanitize_agent_text"]
