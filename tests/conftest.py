"""Pytest configuration and shared fixtures."""
import asyncio
import json
import os
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from blompie.config import GameSettings
from blompie.llm import (
    BackendEndpoint,
    BackendError,
    BackendKind,
    ChatMessage,
    ChatResponse,
    LLMBackend,
    OllamaBackend,
    StreamingResponse,
)


class FakeBackend(LLMBackend):
    """In-memory backend that replays scripted replies."""

    def __init__(
        self,
        kind: BackendKind = BackendKind.OLLAMA,
        models: list[str] | None = None,
        replies: list[str | BackendError] | None = None,
        fail_with: BackendError | None = None,
        probe_delay: float = 0.0,
        eval_count: int | None = 50,
        eval_duration: int | None = 2_000_000_000,
    ):
        super().__init__(resource_timeout=None)
        self._kind = kind
        self._models = models if models is not None else ["mistral"]
        self.replies = list(replies or [])
        self.fail_with = fail_with
        self.probe_delay = probe_delay
        self.eval_count = eval_count
        self.eval_duration = eval_duration
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    @property
    def kind(self) -> BackendKind:
        return self._kind

    @property
    def model(self) -> str:
        return "mistral"

    async def fetch_available_models(self) -> list[str]:
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.fail_with is not None:
            raise self.fail_with
        return list(self._models)

    def _next_reply(self, messages: list[ChatMessage], **request: Any) -> str:
        self.requests.append({"messages": list(messages), **request})
        reply = self.replies.pop(0) if self.replies else "Nothing happens.\nACTIONS: Wait"
        if isinstance(reply, BackendError):
            raise reply
        return reply

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> ChatResponse:
        text = self._next_reply(
            messages, model=model, temperature=temperature, max_tokens=max_tokens, stream=False
        )
        return ChatResponse(
            message=ChatMessage(role="assistant", content=text),
            done=True,
            eval_count=self.eval_count,
            eval_duration=self.eval_duration,
        )

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        text = self._next_reply(
            messages, model=model, temperature=temperature, max_tokens=max_tokens, stream=True
        )
        final = ChatResponse(
            message=ChatMessage(role="assistant", content=""),
            done=True,
            eval_count=self.eval_count,
            eval_duration=self.eval_duration,
        )

        async def _chunks() -> AsyncIterator[str]:
            for line in text.splitlines(keepends=True):
                yield line
            response.set_final(final)

        response = StreamingResponse(_chunks())
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep BLOMPIE_* variables from the shell out of every test."""
    for name in list(os.environ):
        if name.upper().startswith("BLOMPIE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def fake_backend_cls():
    """Return the FakeBackend class so tests can script their own instances."""
    return FakeBackend


@pytest.fixture
def settings():
    """Return settings with a configured host and deterministic options."""
    return GameSettings(server_host="localhost", streaming=False, temperature=0.8)


@pytest.fixture
def mock_backend() -> Callable[..., OllamaBackend]:
    """Build an OllamaBackend whose HTTP traffic goes to a handler function."""
    def _build(
        handler: Callable[[httpx.Request], httpx.Response],
        kind: BackendKind = BackendKind.OLLAMA,
        host: str = "localhost",
        port: int = 11434,
        **kwargs: Any
    ) -> OllamaBackend:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        endpoint = BackendEndpoint(host=host, port=port, kind=kind)
        return OllamaBackend(endpoint, http_client=client, **kwargs)

    return _build


def ndjson(*lines: dict[str, Any] | str) -> bytes:
    """Encode stream lines as newline-delimited JSON (strings are sent verbatim)."""
    return "".join(
        (line if isinstance(line, str) else json.dumps(line)) + "\n" for line in lines
    ).encode()


@pytest.fixture
def stream_body() -> Callable[..., bytes]:
    return ndjson


@pytest.fixture
def sample_response():
    """Return a model reply with narrative, a numbered list and trackable elements."""
    return (
        "You enter the Misty Forest. You greet Gideon by the fire.\n"
        "You pick up the silver key from the mossy stump.\n"
        "What do you do?\n"
        "1. Talk to Gideon\n"
        "2. **Follow the path**\n"
        "3. Examine the key: it glows faintly\n"
    )
