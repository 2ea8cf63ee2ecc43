"""Rendering of stream events as OpenAI chat completions.

Thinking text has no OpenAI field to travel in, so it is dropped from both
the streamed and the aggregated output.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable

from .events import FinishEvent, StreamEvent, TextEvent, ThinkingEvent, ToolCall, ToolCallsEvent
from .ids import generate_completion_id
from .normalize import resolve_finish_reason

DONE_FRAME = "data: [DONE]\n\n"

logger = logging.getLogger(__name__)


def format_sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


@dataclass(frozen=True)
class Completion:
    """Identity shared by every chunk of one response."""

    model: str
    id: str = field(default_factory=generate_completion_id)
    created: int = field(default_factory=lambda: int(time.time()))

    def chunk(self, delta: dict[str, Any], finish_reason: str | None = None) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {"index": 0, "delta": delta, "finish_reason": finish_reason, "logprobs": None}
            ],
        }


async def render_stream(
    events: AsyncGenerator[StreamEvent, None],
    completion: Completion,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames; stops reading ``events`` once the client is gone."""
    had_tool_calls = False
    try:
        async for event in events:
            if is_disconnected is not None and await is_disconnected():
                logger.info("client disconnected, abandoning upstream stream")
                return
            if isinstance(event, TextEvent):
                yield format_sse(completion.chunk({"content": event.text}))
            elif isinstance(event, ThinkingEvent):
                continue
            elif isinstance(event, ToolCallsEvent):
                had_tool_calls = True
                tool_calls = [call.to_openai() for call in event.tool_calls]
                yield format_sse(completion.chunk({"tool_calls": tool_calls}))
            elif isinstance(event, FinishEvent):
                metadata = event.metadata
                final = completion.chunk(
                    {},
                    resolve_finish_reason(
                        metadata.finish_reason, had_tool_calls or metadata.had_tool_calls
                    ),
                )
                final["usage"] = metadata.usage.to_dict()
                yield format_sse(final)
                yield DONE_FRAME
                return
            else:
                raise TypeError(f"unknown stream event: {event!r}")
    finally:
        await events.aclose()
    # upstream iterator ended without a FinishEvent
    yield format_sse(completion.chunk({}, "tool_calls" if had_tool_calls else "stop"))
    yield DONE_FRAME


def render_error_stream(message: str, completion: Completion) -> list[str]:
    return [
        format_sse(completion.chunk({"content": f"Error: {message}"})),
        format_sse(completion.chunk({}, "stop")),
        DONE_FRAME,
    ]


async def collect_completion(
    events: AsyncGenerator[StreamEvent, None], completion: Completion
) -> dict[str, Any]:
    content: list[str] = []
    tool_calls: list[ToolCall] = []
    metadata = None
    try:
        async for event in events:
            if isinstance(event, TextEvent):
                content.append(event.text)
            elif isinstance(event, ThinkingEvent):
                continue
            elif isinstance(event, ToolCallsEvent):
                tool_calls.extend(event.tool_calls)
            elif isinstance(event, FinishEvent):
                metadata = event.metadata
            else:
                raise TypeError(f"unknown stream event: {event!r}")
    finally:
        await events.aclose()

    message: dict[str, Any] = {"role": "assistant", "content": "".join(content)}
    if tool_calls:
        message["tool_calls"] = [call.to_openai() for call in tool_calls]

    response: dict[str, Any] = {
        "id": completion.id,
        "object": "chat.completion",
        "created": completion.created,
        "model": completion.model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": resolve_finish_reason(
                    metadata.finish_reason if metadata else None, bool(tool_calls)
                ),
                "logprobs": None,
            }
        ],
        "system_fingerprint": None,
    }
    if metadata is not None:
        response["usage"] = metadata.usage.to_dict()
    return response
