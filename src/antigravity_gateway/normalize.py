"""Finish-reason mapping and best-effort token estimation."""

import math
import re

FINISH_REASON_MAP = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "OTHER": "stop",
    "FINISH_REASON_UNSPECIFIED": "stop",
}

_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")


def convert_finish_reason(upstream_reason: str | None) -> str:
    if not upstream_reason:
        return "stop"
    return FINISH_REASON_MAP.get(upstream_reason, "stop")


def resolve_finish_reason(finish_reason: str | None, had_tool_calls: bool) -> str:
    # tool-call presence wins over whatever upstream reported
    if had_tool_calls:
        return "tool_calls"
    return finish_reason or "stop"


def estimate_tokens(text: str) -> int:
    """Rough token count: ~1.5 chars per CJK token, ~4 chars otherwise."""
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk / 1.5 + other / 4)
