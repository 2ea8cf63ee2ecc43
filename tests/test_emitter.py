import pytest

from antigravity_gateway.emitter import (
    DONE_FRAME,
    Completion,
    collect_completion,
    render_error_stream,
    render_stream,
)
from antigravity_gateway.events import (
    THINKING_CLOSE,
    THINKING_OPEN,
    TextEvent,
    ThinkingEvent,
    ToolCall,
    ToolCallsEvent,
)

from .utils import finish, parse_sse


async def _events(*items, closed: list | None = None):
    try:
        for item in items:
            yield item
    finally:
        if closed is not None:
            closed.append(True)


async def _render(events, completion, is_disconnected=None):
    return "".join([frame async for frame in render_stream(events, completion, is_disconnected)])


async def test_stream_renders_text_chunks_and_terminal_frame():
    completion = Completion(model="gemini-2.5-flash")
    text = await _render(
        _events(
            ThinkingEvent(THINKING_OPEN),
            ThinkingEvent("hidden"),
            ThinkingEvent(THINKING_CLOSE),
            TextEvent("Hel"),
            TextEvent("lo"),
            finish("stop", prompt=3, completion=5),
        ),
        completion,
    )

    frames = parse_sse(text)
    assert frames[-1] == "[DONE]"
    chunks = frames[:-1]
    assert [c["choices"][0]["delta"] for c in chunks] == [{"content": "Hel"}, {"content": "lo"}, {}]
    assert {c["id"] for c in chunks} == {completion.id}
    assert {c["created"] for c in chunks} == {completion.created}
    assert all(c["object"] == "chat.completion.chunk" for c in chunks)
    assert all(c["model"] == "gemini-2.5-flash" for c in chunks)
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
    assert chunks[-1]["usage"] == {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8}
    assert "hidden" not in text


async def test_stream_tool_calls_force_tool_calls_finish_reason():
    call = ToolCall(id="call_1", name="lookup", arguments='{"q": "x"}')
    frames = parse_sse(
        await _render(
            _events(ToolCallsEvent((call,)), finish("length", tools=True)),
            Completion(model="m"),
        )
    )

    assert frames[0]["choices"][0]["delta"] == {
        "tool_calls": [
            {"id": "call_1", "type": "function", "function": {"name": "lookup", "arguments": '{"q": "x"}'}}
        ]
    }
    assert frames[1]["choices"][0]["finish_reason"] == "tool_calls"
    assert frames[2] == "[DONE]"


async def test_stream_stops_reading_upstream_after_disconnect():
    closed: list = []
    consumed: list = []

    async def upstream():
        try:
            for text in ("a", "b", "c"):
                consumed.append(text)
                yield TextEvent(text)
            yield finish()
        finally:
            closed.append(True)

    checks = iter([False, True])

    async def is_disconnected():
        return next(checks, True)

    frames = parse_sse(await _render(upstream(), Completion(model="m"), is_disconnected))

    assert [f["choices"][0]["delta"] for f in frames] == [{"content": "a"}]
    assert consumed == ["a", "b"]
    assert closed == [True]


async def test_stream_without_finish_event_still_terminates():
    text = await _render(_events(TextEvent("x")), Completion(model="m"))
    frames = parse_sse(text)
    assert frames[-2]["choices"][0]["finish_reason"] == "stop"
    assert text.endswith(DONE_FRAME)


async def test_stream_closes_upstream_when_it_raises():
    closed: list = []

    async def failing():
        try:
            yield TextEvent("partial")
            raise RuntimeError("read failed")
        finally:
            closed.append(True)

    frames = []
    with pytest.raises(RuntimeError):
        async for frame in render_stream(failing(), Completion(model="m")):
            frames.append(frame)

    assert len(frames) == 1
    assert closed == [True]


def test_error_stream_has_inline_message_and_terminator():
    completion = Completion(model="m")
    frames = parse_sse("".join(render_error_stream("no token", completion)))

    assert frames[0]["choices"][0]["delta"] == {"content": "Error: no token"}
    assert frames[1]["choices"][0]["finish_reason"] == "stop"
    assert frames[2] == "[DONE]"
    assert frames[0]["id"] == frames[1]["id"] == completion.id


async def test_collect_completion_aggregates_text_and_tool_batches():
    first = ToolCall(id="call_1", name="a", arguments="{}")
    second = ToolCall(id="call_2", name="b", arguments="{}")
    completion = Completion(model="m")

    response = await collect_completion(
        _events(
            ThinkingEvent(THINKING_OPEN),
            ThinkingEvent("hmm"),
            ThinkingEvent(THINKING_CLOSE),
            TextEvent("Hello "),
            ToolCallsEvent((first,)),
            TextEvent("world"),
            ToolCallsEvent((second,)),
            finish("stop", prompt=2, completion=4, tools=True),
        ),
        completion,
    )

    assert response["id"] == completion.id
    assert response["object"] == "chat.completion"
    choice = response["choices"][0]
    assert choice["message"]["role"] == "assistant"
    assert choice["message"]["content"] == "Hello world"
    assert [c["id"] for c in choice["message"]["tool_calls"]] == ["call_1", "call_2"]
    assert choice["finish_reason"] == "tool_calls"
    assert response["usage"]["total_tokens"] == 6
    assert response["system_fingerprint"] is None


async def test_collect_completion_without_tools_uses_mapped_reason():
    response = await collect_completion(
        _events(TextEvent("cut"), finish("length")), Completion(model="m")
    )
    choice = response["choices"][0]
    assert choice["finish_reason"] == "length"
    assert "tool_calls" not in choice["message"]


def test_completion_ids_are_unique():
    assert Completion(model="m").id != Completion(model="m").id
