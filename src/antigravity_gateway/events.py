"""Typed events reconstructed from the upstream generation stream."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Union

THINKING_OPEN = "<think>\n"
THINKING_CLOSE = "\n</think>\n"


@dataclass(frozen=True)
class TurnUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class TurnMetadata:
    finish_reason: str
    usage: TurnUsage = field(default_factory=TurnUsage)
    had_tool_calls: bool = False


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_function_call(
        cls, function_call: dict[str, Any], id_factory: Callable[[], str]
    ) -> "ToolCall":
        args = function_call.get("args")
        return cls(
            id=function_call.get("id") or id_factory(),
            name=function_call.get("name") or "",
            arguments=json.dumps(args if args is not None else {}, ensure_ascii=False),
        )


@dataclass(frozen=True)
class ThinkingEvent:
    """Reasoning text, including the open/close markers of a thinking span."""

    text: str

    @property
    def is_open_marker(self) -> bool:
        return self.text == THINKING_OPEN

    @property
    def is_close_marker(self) -> bool:
        return self.text == THINKING_CLOSE


@dataclass(frozen=True)
class TextEvent:
    text: str


@dataclass(frozen=True)
class ToolCallsEvent:
    """All tool calls gathered since the previous finish signal."""

    tool_calls: tuple[ToolCall, ...]


@dataclass(frozen=True)
class FinishEvent:
    """Always the last event of a turn."""

    metadata: TurnMetadata

    @property
    def reason(self) -> str:
        return self.metadata.finish_reason


StreamEvent = Union[ThinkingEvent, TextEvent, ToolCallsEvent, FinishEvent]
