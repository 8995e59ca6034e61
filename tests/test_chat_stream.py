"""Tests for the generation stream controller."""

import asyncio
import json
from typing import List

import pytest

from interviewmate.core.chat_stream import GenerationStreamController, StreamState
from interviewmate.core.context_assembler import AssembledContext
from interviewmate.core.conversation import ChatTurn
from interviewmate.core.errors import CONNECTION_MESSAGE, OVERLOADED_MESSAGE
from interviewmate.core.llm import GenerationParams

CONTEXT = AssembledContext(system="You are Ada.", turns=[ChatTurn.user("hi")])
PARAMS = GenerationParams(model="claude-test")


class _OverloadedError(Exception):
    status_code = 529


class APIConnectionError(Exception):
    pass


class _Backend:
    """Backend yielding scripted tokens, optionally failing or stalling."""

    def __init__(self, tokens, error=None, delay=0.0):
        self.tokens = tokens
        self.error = error
        self.delay = delay
        self.closed = False

    async def stream_text(self, system, turns, params):
        try:
            for token in self.tokens:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield token
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class _Recorder:
    def __init__(self):
        self.calls: List[str] = []

    async def __call__(self, text: str) -> None:
        self.calls.append(text)


def parse_sse_events(chunks: List[str]) -> List[dict]:
    """Parse SSE chunks into a list of event dicts."""
    return [json.loads(chunk[len("data: "):].strip()) for chunk in chunks]


async def _collect(controller) -> List[dict]:
    return parse_sse_events([chunk async for chunk in controller.stream()])


@pytest.mark.asyncio
async def test_successful_stream_persists_once():
    recorder = _Recorder()
    backend = _Backend(["Hel", "lo", "!"])
    controller = GenerationStreamController(backend, CONTEXT, PARAMS, on_complete=recorder)

    events = await _collect(controller)

    assert [e["type"] for e in events] == ["text", "text", "text", "done"]
    assert "".join(e["content"] for e in events if e["type"] == "text") == "Hello!"
    assert recorder.calls == ["Hello!"]
    assert controller.state is StreamState.COMPLETED
    assert backend.closed


@pytest.mark.asyncio
async def test_mid_stream_failure_persists_nothing():
    recorder = _Recorder()
    backend = _Backend(["Hel"], error=_OverloadedError("overloaded"))
    controller = GenerationStreamController(backend, CONTEXT, PARAMS, on_complete=recorder)

    events = await _collect(controller)

    assert events[0] == {"type": "text", "content": "Hel"}
    assert events[-1] == {"type": "error", "message": OVERLOADED_MESSAGE}
    assert recorder.calls == []
    assert controller.state is StreamState.FAILED
    assert controller.full_text == ""


@pytest.mark.asyncio
async def test_connection_failure_message():
    controller = GenerationStreamController(
        _Backend([], error=APIConnectionError("reset")), CONTEXT, PARAMS, on_complete=_Recorder()
    )

    events = await _collect(controller)

    assert events == [{"type": "error", "message": CONNECTION_MESSAGE}]


@pytest.mark.asyncio
async def test_timeout_fails_stream():
    recorder = _Recorder()
    backend = _Backend(["a", "b"], delay=0.2)
    controller = GenerationStreamController(
        backend, CONTEXT, PARAMS, on_complete=recorder, timeout_seconds=0.05
    )

    events = await _collect(controller)

    assert events[-1]["type"] == "error"
    assert recorder.calls == []
    assert controller.state is StreamState.FAILED
    assert isinstance(controller.error, TimeoutError)


@pytest.mark.asyncio
async def test_client_disconnect_discards_reply():
    recorder = _Recorder()
    backend = _Backend(["one", "two", "three"])
    controller = GenerationStreamController(backend, CONTEXT, PARAMS, on_complete=recorder)

    stream = controller.stream()
    first = await stream.__anext__()
    await stream.aclose()

    assert json.loads(first[len("data: "):]) == {"type": "text", "content": "one"}
    assert recorder.calls == []
    assert controller.state is StreamState.FAILED
    assert backend.closed


@pytest.mark.asyncio
async def test_empty_completion_is_not_persisted():
    recorder = _Recorder()
    controller = GenerationStreamController(_Backend([]), CONTEXT, PARAMS, on_complete=recorder)

    events = await _collect(controller)

    assert events == [{"type": "done"}]
    assert recorder.calls == []
    assert controller.state is StreamState.COMPLETED


@pytest.mark.asyncio
async def test_persistence_failure_does_not_break_stream():
    async def failing(text):
        raise RuntimeError("queue closed")

    controller = GenerationStreamController(_Backend(["ok"]), CONTEXT, PARAMS, on_complete=failing)

    events = await _collect(controller)

    assert events[-1] == {"type": "done"}


@pytest.mark.asyncio
async def test_controller_is_single_use():
    controller = GenerationStreamController(_Backend(["ok"]), CONTEXT, PARAMS, on_complete=_Recorder())
    await _collect(controller)

    with pytest.raises(RuntimeError):
        await controller.stream().__anext__()
