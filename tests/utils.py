import json

from antigravity_gateway.events import TurnMetadata, TurnUsage, FinishEvent


def data_line(response: dict) -> str:
    return f"data: {json.dumps({'response': response}, ensure_ascii=False)}\n"


def parts_line(*parts: dict, finish_reason: str | None = None, usage: dict | None = None) -> str:
    candidate: dict = {"content": {"role": "model", "parts": list(parts)}}
    if finish_reason:
        candidate["finishReason"] = finish_reason
    response: dict = {"candidates": [candidate]}
    if usage:
        response["usageMetadata"] = usage
    return data_line(response)


def parse_sse(text: str) -> list:
    frames = []
    for block in text.split("\n\n"):
        block = block.strip()
        if not block:
            continue
        assert block.startswith("data: ")
        data = block[len("data: "):]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


def finish(reason: str = "stop", prompt: int = 3, completion: int = 5, tools: bool = False):
    return FinishEvent(
        TurnMetadata(
            finish_reason=reason,
            usage=TurnUsage(prompt_tokens=prompt, completion_tokens=completion),
            had_tool_calls=tools,
        )
    )


class FakeTokens:
    def __init__(self, token=None):
        self.token = token
        self.disabled = []

    async def get_token(self):
        return self.token

    async def disable_current_token(self, token):
        self.disabled.append(token)
