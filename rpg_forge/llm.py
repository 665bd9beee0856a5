"""LLM client — streaming HTTP connection to a text-generation backend.

The orchestrator injects a generator matching the protocol:

    async def generate(self, messages, on_token=None, cancel=None) -> str: ...

`messages` is an ordered list of {"role": ..., "content": ...} dicts. Every
token is passed to `on_token` as it arrives; the full text is returned at the
end. Setting the `cancel` event stops generation with GenerationCancelled.

Implementations:

    HttpLLM   — real HTTP client, streams from KoboldCpp or OpenAI-compatible
                 chat backends. Selected by provider_format.
    EchoLLM   — streams the last user message back word by word. Useful for
                 smoke-testing the wiring without a running model.

Production code constructs an HttpLLM from config and hands it to the
orchestrator. Tests use StubLLM (defined in conftest.py) instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from typing import Any, Literal, Protocol

import httpx

from rpg_forge.errors import GenerationCancelled, GenerationFailure

logger = logging.getLogger(__name__)

ChatTurn = dict[str, str]
TokenCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Generator protocol, injected into the orchestrator
# ---------------------------------------------------------------------------

class TextGenerator(Protocol):
    async def generate(
        self,
        messages: list[ChatTurn],
        on_token: TokenCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: streaming chat over HTTP
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpLLM:
    """Async streaming client for text-generation backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions  {"messages": [...], "stream": true}
                     Events: data: {"choices": [{"delta": {"content": "..."}}]}
                             data: [DONE]
      "koboldcpp"  — POST /api/extra/generate/stream  {"prompt": ...}
                     Events: data: {"token": "..."}

    Args:
        provider_url:    Server root without the endpoint path.
        api_key:         Sent as a Bearer token when non-empty.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         Seconds before the request is abandoned.
        transport:       Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, messages: list[ChatTurn]) -> tuple[str, dict[str, Any]]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict[str, Any] = {"messages": messages, "stream": True}
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/extra/generate/stream"
        return url, {"prompt": flatten_messages(messages)}

    def _parse_event(self, data: dict[str, Any]) -> str:
        """Extract the token text from one streamed event."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices:
                raise LLMError("Unexpected event format from OpenAI-compatible backend")
            return (choices[0].get("delta") or {}).get("content") or ""

        # koboldcpp
        if "token" not in data:
            raise LLMError("Unexpected event format from KoboldCpp backend")
        return data["token"] or ""

    async def generate(
        self,
        messages: list[ChatTurn],
        on_token: TokenCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        url, body = self._build_request(messages)
        logger.debug("llm call url=%s messages=%d", url, len(messages))

        parts: list[str] = []
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if cancel is not None and cancel.is_set():
                            raise GenerationCancelled("Generation cancelled")
                        if not line.startswith("data:"):
                            continue
                        payload = line[len("data:"):].strip()
                        if payload == "[DONE]":
                            break
                        try:
                            event = json.loads(payload)
                        except json.JSONDecodeError as e:
                            raise LLMError(f"Invalid event from LLM backend: {payload!r}") from e
                        token = self._parse_event(event)
                        if token:
                            parts.append(token)
                            if on_token is not None:
                                on_token(token)
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM backend connection failed: {e}") from e

        text = "".join(parts)
        logger.debug("llm response len=%d", len(text))
        return text


def flatten_messages(messages: list[ChatTurn]) -> str:
    """Render chat turns as one completion prompt for non-chat backends."""
    lines = []
    for msg in messages:
        if msg["role"] == "system":
            lines.append(msg["content"])
        else:
            lines.append(f"{msg['role'].capitalize()}: {msg['content']}")
        lines.append("")
    lines.append("Assistant:")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# EchoLLM — streams the user's words back; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the last user message, streamed one word at a time. No network calls."""

    async def generate(
        self,
        messages: list[ChatTurn],
        on_token: TokenCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        text = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        logger.debug("EchoLLM messages=%d len=%d", len(messages), len(text))
        for token in re.split(r"(\s+)", text):
            if cancel is not None and cancel.is_set():
                raise GenerationCancelled("Generation cancelled")
            if token and on_token is not None:
                on_token(token)
        return text


def llm_from_config(config: dict[str, Any]) -> TextGenerator:
    """HttpLLM for the configured backend, or EchoLLM when no URL is set."""
    llm_cfg = config.get("llm") or {}
    if not llm_cfg.get("provider_url"):
        logger.info("no LLM provider configured, using EchoLLM")
        return EchoLLM()
    return HttpLLM(
        provider_url=llm_cfg["provider_url"],
        api_key=llm_cfg.get("api_key", ""),
        provider_format=llm_cfg.get("provider_format", "openai"),
        model=llm_cfg.get("model", ""),
        timeout=float(llm_cfg.get("timeout", 120.0)),
    )


# ---------------------------------------------------------------------------
# LLMError: the generation failure HttpLLM surfaces
# ---------------------------------------------------------------------------

class LLMError(GenerationFailure):
    """Raised when the LLM backend cannot be reached or returns an error."""
