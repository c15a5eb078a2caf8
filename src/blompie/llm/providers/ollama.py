import json
import logging
import re
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
from pydantic import ValidationError

from ..base import DEFAULT_REQUEST_TIMEOUT, DEFAULT_RESOURCE_TIMEOUT, LLMBackend
from ..errors import (
    DecodingError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
    NoServerConfiguredError,
)
from ..models import (
    BackendEndpoint,
    BackendKind,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    StreamingResponse,
    parse_model_listing,
)

logger = logging.getLogger(__name__)

MODELS_PATHS = {
    BackendKind.OLLAMA: "/api/tags",
    BackendKind.OPENWEBUI: "/api/models",
}

CHAT_PATHS = {
    BackendKind.OLLAMA: "/api/chat",
    BackendKind.OPENWEBUI: "/api/chat/completions",
}

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9._\-]+$|^\[[0-9A-Fa-f:.]+\]$")


def decode_stream_line(line: str) -> ChatResponse | None:
    """Decode one line of a streamed body, or return None if it carries nothing usable.

    Accepts bare NDJSON (Ollama) as well as ``data:``-prefixed lines and the
    ``[DONE]`` sentinel some OpenWebUI deployments send.
    """
    text = line.strip()
    if text.startswith("data:"):
        text = text[len("data:"):].strip()
    if not text or text == "[DONE]":
        return None
    try:
        return ChatResponse.model_validate_json(text)
    except ValidationError as e:
        logger.warning("Dropping undecodable stream line (%d chars): %s", len(text), e.errors()[0]["msg"])
        return None


class OllamaBackend(LLMBackend):
    """Backend for Ollama and OpenWebUI servers over plain HTTP.

    Hidden design decisions:
    - Endpoint paths per server kind
    - NDJSON line framing of streamed bodies
    - Two-phase timeout policy (per-phase httpx timeout, whole-call deadline)
    - Mapping of httpx failures onto the BackendError taxonomy
    """

    def __init__(
        self,
        endpoint: BackendEndpoint | None,
        model: str = "mistral",
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        resource_timeout: float | None = DEFAULT_RESOURCE_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the backend.

        Args:
            endpoint: Server address; None means nothing is configured yet
            model: Default model to use
            request_timeout: Timeout for each connect/read/write phase in seconds
            resource_timeout: Deadline for a whole call in seconds (None disables it)
            http_client: Optional pre-built client (tests inject a mock transport)
        """
        super().__init__(resource_timeout=resource_timeout)
        if endpoint is not None and endpoint.kind not in CHAT_PATHS:
            raise ValueError(f"OllamaBackend does not support {endpoint.kind.value} endpoints")
        self._endpoint = endpoint
        self._model = model
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(request_timeout))

    @property
    def kind(self) -> BackendKind:
        if self._endpoint is None:
            return BackendKind.OLLAMA
        return self._endpoint.kind

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    @property
    def endpoint(self) -> BackendEndpoint | None:
        return self._endpoint

    def _url(self, paths: dict[BackendKind, str]) -> httpx.URL:
        if self._endpoint is None or not self._endpoint.is_configured:
            raise NoServerConfiguredError()
        raw = f"{self._endpoint.base_url}{paths[self.kind]}"
        if not _HOST_PATTERN.match(self._endpoint.host) or not 0 < self._endpoint.port < 65536:
            raise InvalidURLError(raw)
        try:
            url = httpx.URL(raw)
        except httpx.InvalidURL as e:
            raise InvalidURLError(raw) from e
        if not url.host:
            raise InvalidURLError(raw)
        return url

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_success:
            raise HTTPStatusError(response.status_code, response.text or None)

    async def fetch_available_models(self) -> list[str]:
        """List installed models via /api/tags (Ollama) or /api/models (OpenWebUI)."""
        url = self._url(MODELS_PATHS)
        logger.debug("GET %s", url)
        try:
            response = await self._client.get(url)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        self._raise_for_status(response)
        try:
            return parse_model_listing(json.loads(response.text), self.kind)
        except (json.JSONDecodeError, ValidationError) as e:
            raise DecodingError(str(e), response.text) from e

    def _build_request(
        self,
        messages: list[ChatMessage],
        model: str | None,
        temperature: float,
        max_tokens: int | None,
        stream: bool,
    ) -> dict[str, Any]:
        return ChatRequest(
            model=model or self._model,
            messages=messages,
            stream=stream,
            options=ChatOptions(temperature=temperature, max_output_tokens=max_tokens),
        ).to_payload()

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> ChatResponse:
        """POST the whole conversation and decode a single JSON response.

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Sent as options.num_predict when set
            **kwargs: Extra top-level request fields

        Returns:
            ChatResponse with the assistant message
        """
        url = self._url(CHAT_PATHS)
        payload = {**self._build_request(messages, model, temperature, max_tokens, stream=False), **kwargs}
        logger.debug("POST %s model=%s messages=%d", url, payload["model"], len(messages))

        try:
            response = await self._client.post(url, json=payload)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        self._raise_for_status(response)
        try:
            return ChatResponse.model_validate_json(response.text)
        except ValidationError as e:
            raise DecodingError(str(e), response.text) from e

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """POST with stream=true and yield content as NDJSON lines arrive.

        Lines that fail to decode are dropped; the stream carries on.

        Returns:
            StreamingResponse yielding non-empty content chunks in order
        """
        url = self._url(CHAT_PATHS)
        payload = {**self._build_request(messages, model, temperature, max_tokens, stream=True), **kwargs}
        logger.debug("POST %s (stream) model=%s messages=%d", url, payload["model"], len(messages))

        response = StreamingResponse(
            self._chat_stream_generator(url, payload, lambda chunk: response.set_final(chunk))
        )
        return response

    async def _chat_stream_generator(
        self,
        url: httpx.URL,
        payload: dict[str, Any],
        on_line: Callable[[ChatResponse], None],
    ) -> AsyncIterator[str]:
        """Internal generator reading the body line by line."""
        try:
            async with self._client.stream("POST", url, json=payload) as http_response:
                if not http_response.is_success:
                    body = (await http_response.aread()).decode("utf-8", errors="replace")
                    raise HTTPStatusError(http_response.status_code, body or None)

                async for line in http_response.aiter_lines():
                    chunk = decode_stream_line(line)
                    if chunk is None:
                        continue
                    on_line(chunk)
                    if chunk.content:
                        yield chunk.content
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
