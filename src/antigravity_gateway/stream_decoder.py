"""Incremental decoder for the CloudCode ``streamGenerateContent`` SSE stream.

The decoder is fed decoded text as it arrives and hands back typed events:

* thought parts become :class:`ThinkingEvent` values framed by an open and a
  close marker, so every thinking span is closed before answer text or the end
  of the stream;
* text parts become :class:`TextEvent` values;
* function calls are held back and released together as one
  :class:`ToolCallsEvent` once the candidate reports a finish reason;
* :meth:`StreamDecoder.close` ends the turn with a :class:`FinishEvent`.

Lines that are not valid JSON are dropped; one bad event never aborts an
otherwise healthy stream.
"""

import json
import logging
from typing import Any, Callable

from .events import (
    THINKING_CLOSE,
    THINKING_OPEN,
    FinishEvent,
    StreamEvent,
    TextEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallsEvent,
    TurnMetadata,
    TurnUsage,
)
from .ids import generate_tool_call_id
from .normalize import convert_finish_reason, estimate_tokens

DATA_PREFIX = "data:"

logger = logging.getLogger(__name__)


class StreamDecoder:
    def __init__(
        self,
        prompt_tokens: int = 0,
        tool_call_id_factory: Callable[[], str] = generate_tool_call_id,
    ) -> None:
        self._tool_call_id_factory = tool_call_id_factory
        self._buffer = ""
        self._thinking_open = False
        self._pending_tool_calls: list[ToolCall] = []
        self._had_tool_calls = False
        self._finish_reason: str | None = None
        self._prompt_tokens = prompt_tokens
        self._completion_tokens = 0
        self._content: list[str] = []
        self._closed = False
        self.skipped_lines = 0

    def feed(self, text: str) -> list[StreamEvent]:
        """Consume a piece of the body; a trailing partial line is kept for later."""
        if self._closed:
            raise RuntimeError("decoder already closed")
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        events: list[StreamEvent] = []
        for line in lines:
            events.extend(self.feed_line(line))
        return events

    def feed_line(self, line: str) -> list[StreamEvent]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return []
        raw = line[len(DATA_PREFIX):]
        if raw.startswith(" "):
            raw = raw[1:]
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            self.skipped_lines += 1
            logger.debug("skipping undecodable stream line (%d bytes)", len(raw))
            return []
        if not isinstance(payload, dict):
            return []
        return self._handle_payload(payload)

    def close(self) -> list[StreamEvent]:
        """Flush whatever is left and finish the turn."""
        events: list[StreamEvent] = []
        if self._buffer:
            events.extend(self.feed_line(self._buffer))
            self._buffer = ""
        self._closed = True

        events.extend(self._close_thinking())
        if self._pending_tool_calls:
            events.extend(self._flush_tool_calls())

        finish_reason = self._finish_reason
        if finish_reason is None:
            finish_reason = "tool_calls" if self._had_tool_calls else "stop"

        completion_tokens = self._completion_tokens
        if completion_tokens == 0 and self._content:
            completion_tokens = estimate_tokens("".join(self._content))

        metadata = TurnMetadata(
            finish_reason=finish_reason,
            usage=TurnUsage(prompt_tokens=self._prompt_tokens, completion_tokens=completion_tokens),
            had_tool_calls=self._had_tool_calls,
        )
        events.append(FinishEvent(metadata))
        return events

    def _handle_payload(self, payload: dict[str, Any]) -> list[StreamEvent]:
        response = payload.get("response")
        if not isinstance(response, dict):
            return []

        self._record_usage(response.get("usageMetadata"))

        candidates = response.get("candidates")
        candidate = candidates[0] if isinstance(candidates, list) and candidates else None
        if not isinstance(candidate, dict):
            return []

        upstream_reason = candidate.get("finishReason")
        if upstream_reason and self._finish_reason is None:
            self._finish_reason = convert_finish_reason(upstream_reason)

        events: list[StreamEvent] = []
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list):
            for part in parts:
                if isinstance(part, dict):
                    events.extend(self._handle_part(part))

        if upstream_reason and self._pending_tool_calls:
            events.extend(self._close_thinking())
            events.extend(self._flush_tool_calls())
        return events

    def _record_usage(self, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        prompt_tokens = usage.get("promptTokenCount")
        if isinstance(prompt_tokens, int) and prompt_tokens:
            self._prompt_tokens = prompt_tokens
        completion_tokens = usage.get("candidatesTokenCount")
        if isinstance(completion_tokens, int) and completion_tokens:
            self._completion_tokens = completion_tokens

    def _handle_part(self, part: dict[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if part.get("thought") is True:
            if not self._thinking_open:
                self._thinking_open = True
                events.append(ThinkingEvent(THINKING_OPEN))
            text = part.get("text")
            if isinstance(text, str) and text:
                events.append(ThinkingEvent(text))
        elif "text" in part:
            events.extend(self._close_thinking())
            text = part.get("text")
            if isinstance(text, str) and text:
                self._content.append(text)
                events.append(TextEvent(text))
        elif isinstance(part.get("functionCall"), dict):
            self._had_tool_calls = True
            self._pending_tool_calls.append(
                ToolCall.from_function_call(part["functionCall"], self._tool_call_id_factory)
            )
        return events

    def _close_thinking(self) -> list[StreamEvent]:
        if not self._thinking_open:
            return []
        self._thinking_open = False
        return [ThinkingEvent(THINKING_CLOSE)]

    def _flush_tool_calls(self) -> list[StreamEvent]:
        batch = ToolCallsEvent(tuple(self._pending_tool_calls))
        self._pending_tool_calls = []
        return [batch]
