import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from .errors import BackendError, NetworkError, NoServerConfiguredError
from .models import (
    BackendKind,
    ChatMessage,
    ChatResponse,
    ChunkCallback,
    CompletionCallback,
    ConnectionStatus,
    StreamingResponse,
)

logger = logging.getLogger(__name__)

# Local inference can take minutes before the first token arrives.
DEFAULT_REQUEST_TIMEOUT = 300.0
DEFAULT_RESOURCE_TIMEOUT = 600.0


class LLMBackend(ABC):
    """Abstract base class for local LLM backends.

    This module hides the design decision of which server flavour is used.
    Implementations must handle backend-specific details like:
    - Endpoint paths per server kind
    - Request/response format conversion
    - Mapping transport failures to the BackendError taxonomy

    Supports async context manager protocol for proper resource cleanup:
        async with backend:
            text = await backend.send_chat(messages)
        # Automatically cleaned up
    """

    def __init__(self, resource_timeout: float | None = DEFAULT_RESOURCE_TIMEOUT):
        self.resource_timeout = resource_timeout
        self.is_connected = False
        self.connection_status = "Not configured"

    @property
    @abstractmethod
    def kind(self) -> BackendKind:
        """Server kind this backend talks to."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Default model name used when a call does not name one."""

    @abstractmethod
    async def fetch_available_models(self) -> list[str]:
        """List the model identifiers installed on the server.

        Raises:
            NoServerConfiguredError, InvalidURLError, NetworkError,
            HTTPStatusError, DecodingError
        """

    @abstractmethod
    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> ChatResponse:
        """Generate a buffered chat completion.

        Args:
            messages: Conversation history, oldest first
            model: Model to use (None uses the backend's default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Backend-specific parameters

        Returns:
            ChatResponse with the assistant message and token metrics
        """

    @abstractmethod
    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Generate a streaming chat completion.

        Returns:
            StreamingResponse that yields text chunks in arrival order.
            After iteration, the last decoded line is available via
            stream_response.final
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        streaming: bool = False,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> str:
        """Send the conversation and return the assistant's full reply.

        In streaming mode on_chunk receives each piece of content in arrival
        order. on_complete is called exactly once with tokens/second (None
        when the server did not report usable metrics), after the last chunk.

        Raises:
            BackendError: Any failure, with timeouts reported as NetworkError
        """
        try:
            async with asyncio.timeout(self.resource_timeout):
                if not streaming:
                    response = await self.chat_completion(
                        messages, model=model, temperature=temperature, max_tokens=max_tokens
                    )
                    text = response.content
                    tokens_per_second = response.tokens_per_second
                else:
                    stream = await self.chat_completion_stream(
                        messages, model=model, temperature=temperature, max_tokens=max_tokens
                    )
                    parts: list[str] = []
                    async for chunk in stream:
                        parts.append(chunk)
                        if on_chunk is not None:
                            on_chunk(chunk)
                    text = "".join(parts)
                    tokens_per_second = stream.tokens_per_second
        except TimeoutError as e:
            raise NetworkError(f"request timed out after {self.resource_timeout}s") from e

        if on_complete is not None:
            on_complete(tokens_per_second)
        return text

    async def check_connection(self) -> ConnectionStatus:
        """Probe the server by listing its models. Never raises."""
        try:
            await self.fetch_available_models()
        except NoServerConfiguredError:
            self.is_connected = False
            self.connection_status = "Not configured"
        except BackendError as e:
            logger.debug("Connection check against %s failed: %s", self.kind.display_name, e)
            self.is_connected = False
            self.connection_status = "Connection failed"
        else:
            self.is_connected = True
            self.connection_status = f"Connected to {self.kind.display_name}"
        return ConnectionStatus(is_connected=self.is_connected, status=self.connection_status)

    async def __aenter__(self) -> "LLMBackend":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
