"""Translation of OpenAI chat requests into the CloudCode request envelope.

Everything here is a pure function of its arguments; the random identifiers
are the only source of nondeterminism.
"""

from typing import Any

from .ids import generate_project_id, generate_request_id, generate_session_id
from .schemas import ChatMessage, SamplingParams
from .settings import Settings

THINKING_SUFFIX = "-thinking"
THINKING_MODELS = frozenset({"gemini-2.5-pro", "rev19-uic3-1p", "gpt-oss-120b-medium"})
THINKING_PREFIXES = ("gemini-3-pro-",)
THINKING_BUDGET = 1024
# upstream rejects topP together with thinking for these
TOP_P_UNSUPPORTED_WITH_THINKING = "claude"

STOP_SEQUENCES = (
    "<|user|>",
    "<|bot|>",
    "<|context_request|>",
    "<|endoftext|>",
    "<|end_of_turn|>",
)

_ROLE_MAP = {"user": "user", "system": "user", "assistant": "model"}


def resolve_model(model_name: str) -> tuple[str, bool]:
    """Return the model name to forward upstream and whether thinking is on."""
    enable_thinking = (
        model_name.endswith(THINKING_SUFFIX)
        or model_name in THINKING_MODELS
        or model_name.startswith(THINKING_PREFIXES)
    )
    if model_name.endswith(THINKING_SUFFIX):
        model_name = model_name[: -len(THINKING_SUFFIX)]
    return model_name, enable_thinking


def convert_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    return [
        {"role": _ROLE_MAP[message.role], "parts": [{"text": message.content}]}
        for message in messages
    ]


def convert_tools(tools: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    declarations = []
    for tool in tools or []:
        function = tool.get("function") if isinstance(tool, dict) else None
        if not isinstance(function, dict) or not function.get("name"):
            continue
        declaration = {"name": function["name"]}
        if function.get("description"):
            declaration["description"] = function["description"]
        if function.get("parameters"):
            declaration["parameters"] = function["parameters"]
        declarations.append(declaration)
    if not declarations:
        return []
    return [{"functionDeclarations": declarations}]


def build_generation_config(
    params: SamplingParams,
    settings: Settings,
    enable_thinking: bool,
    actual_model: str,
) -> dict[str, Any]:
    config: dict[str, Any] = {
        "topP": params.top_p if params.top_p is not None else settings.default_top_p,
        "topK": params.top_k if params.top_k is not None else settings.default_top_k,
        "temperature": (
            params.temperature if params.temperature is not None else settings.default_temperature
        ),
        "candidateCount": 1,
        "maxOutputTokens": (
            params.max_tokens if params.max_tokens is not None else settings.default_max_tokens
        ),
        "stopSequences": list(STOP_SEQUENCES),
        "thinkingConfig": {
            "includeThoughts": enable_thinking,
            "thinkingBudget": THINKING_BUDGET if enable_thinking else 0,
        },
    }
    if enable_thinking and TOP_P_UNSUPPORTED_WITH_THINKING in actual_model:
        del config["topP"]
    return config


def build_request_body(
    messages: list[ChatMessage],
    model_name: str,
    params: SamplingParams,
    settings: Settings,
    tools: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    actual_model, enable_thinking = resolve_model(model_name)
    return {
        "project": generate_project_id(),
        "requestId": generate_request_id(),
        "request": {
            "contents": convert_messages(messages),
            "systemInstruction": {
                "role": "user",
                "parts": [{"text": settings.system_instruction}],
            },
            "tools": convert_tools(tools),
            "toolConfig": {"functionCallingConfig": {"mode": "VALIDATED"}},
            "generationConfig": build_generation_config(
                params, settings, enable_thinking, actual_model
            ),
            "sessionId": generate_session_id(),
        },
        "model": actual_model,
        "userAgent": "antigravity",
    }
