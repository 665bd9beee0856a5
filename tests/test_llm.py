"""Tests for rpg_forge.llm — HttpLLM streaming and EchoLLM."""

import asyncio
import json

import httpx
import pytest

from rpg_forge.errors import GenerationCancelled
from rpg_forge.llm import EchoLLM, HttpLLM, LLMError, flatten_messages, llm_from_config

MESSAGES = [
    {"role": "system", "content": "Eres un asistente."},
    {"role": "user", "content": "Hola"},
]


def _sse(*events: object) -> str:
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines)


def _openai_event(content: str) -> dict:
    return {"choices": [{"delta": {"content": content}}]}


class Recorder:
    """MockTransport handler that records requests and replays a fixed body."""

    def __init__(self, body: str = "", status: int = 200, exc: Exception | None = None) -> None:
        self.body = body
        self.status = status
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status, text=self.body)


def _llm(handler: Recorder, **kwargs) -> HttpLLM:
    return HttpLLM(
        provider_url="http://localhost:5001/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# OpenAI-compatible format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    async def test_streams_tokens(self) -> None:
        handler = Recorder(_sse(_openai_event("Hola"), _openai_event(" mundo"), "[DONE]"))
        tokens: list[str] = []
        result = await _llm(handler).generate(MESSAGES, on_token=tokens.append)
        assert result == "Hola mundo"
        assert tokens == ["Hola", " mundo"]

    async def test_request_shape(self) -> None:
        handler = Recorder(_sse("[DONE]"))
        await _llm(handler, api_key="secret", model="qwen").generate(MESSAGES)
        request = handler.requests[0]
        assert str(request.url) == "http://localhost:5001/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body == {"messages": MESSAGES, "stream": True, "model": "qwen"}

    async def test_no_auth_header_without_key(self) -> None:
        handler = Recorder(_sse("[DONE]"))
        await _llm(handler).generate(MESSAGES)
        assert "Authorization" not in handler.requests[0].headers

    async def test_ignores_comments_and_empty_deltas(self) -> None:
        body = ": keep-alive\n\n" + _sse({"choices": [{"delta": {}}]}, _openai_event("ok"), "[DONE]")
        assert await _llm(Recorder(body)).generate(MESSAGES) == "ok"

    async def test_stops_at_done(self) -> None:
        body = _sse(_openai_event("a"), "[DONE]", _openai_event("b"))
        assert await _llm(Recorder(body)).generate(MESSAGES) == "a"

    async def test_unexpected_event(self) -> None:
        with pytest.raises(LLMError, match="Unexpected event"):
            await _llm(Recorder(_sse({"error": "overloaded"}))).generate(MESSAGES)

    async def test_invalid_json(self) -> None:
        with pytest.raises(LLMError, match="Invalid event"):
            await _llm(Recorder("data: {not json\n\n")).generate(MESSAGES)


# ---------------------------------------------------------------------------
# KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpLLMKoboldCpp:
    async def test_streams_tokens(self) -> None:
        handler = Recorder(_sse({"token": "El "}, {"token": "dragón"}))
        result = await _llm(handler, provider_format="koboldcpp").generate(MESSAGES)
        assert result == "El dragón"

    async def test_request_shape(self) -> None:
        handler = Recorder(_sse({"token": "x"}))
        await _llm(handler, provider_format="koboldcpp").generate(MESSAGES)
        request = handler.requests[0]
        assert str(request.url) == "http://localhost:5001/api/extra/generate/stream"
        assert json.loads(request.content) == {"prompt": flatten_messages(MESSAGES)}

    async def test_unexpected_event(self) -> None:
        with pytest.raises(LLMError, match="KoboldCpp"):
            await _llm(Recorder(_sse({"text": "x"})), provider_format="koboldcpp").generate(MESSAGES)


# ---------------------------------------------------------------------------
# Failures and cancellation
# ---------------------------------------------------------------------------

class TestHttpLLMErrors:
    async def test_http_error_status(self) -> None:
        with pytest.raises(LLMError, match="HTTP 503"):
            await _llm(Recorder(status=503)).generate(MESSAGES)

    async def test_connect_error(self) -> None:
        handler = Recorder(exc=httpx.ConnectError("refused"))
        with pytest.raises(LLMError, match="Cannot connect"):
            await _llm(handler).generate(MESSAGES)

    async def test_timeout(self) -> None:
        handler = Recorder(exc=httpx.ReadTimeout("slow"))
        with pytest.raises(LLMError, match="timed out"):
            await _llm(handler).generate(MESSAGES)

    async def test_cancel(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        tokens: list[str] = []
        handler = Recorder(_sse(_openai_event("nunca")))
        with pytest.raises(GenerationCancelled):
            await _llm(handler).generate(MESSAGES, on_token=tokens.append, cancel=cancel)
        assert tokens == []


# ---------------------------------------------------------------------------
# EchoLLM and helpers
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_echoes_last_user_message(self) -> None:
        tokens: list[str] = []
        result = await EchoLLM().generate(MESSAGES + [{"role": "user", "content": "dos palabras"}],
                                          on_token=tokens.append)
        assert result == "dos palabras"
        assert "".join(tokens) == "dos palabras"

    async def test_cancel(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(GenerationCancelled):
            await EchoLLM().generate(MESSAGES, cancel=cancel)


def test_flatten_messages():
    assert flatten_messages(MESSAGES) == "Eres un asistente.\n\nUser: Hola\n\nAssistant:"


def test_llm_from_config():
    assert isinstance(llm_from_config({"llm": {"provider_url": ""}}), EchoLLM)
    assert isinstance(llm_from_config({"llm": {"provider_url": "http://x"}}), HttpLLM)
