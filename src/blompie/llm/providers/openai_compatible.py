import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..base import DEFAULT_REQUEST_TIMEOUT, DEFAULT_RESOURCE_TIMEOUT, LLMBackend
from ..errors import (
    BackendError,
    DecodingError,
    HTTPStatusError,
    NetworkError,
    NoServerConfiguredError,
)
from ..models import (
    BackendEndpoint,
    BackendKind,
    ChatMessage,
    ChatResponse,
    StreamingResponse,
)

logger = logging.getLogger(__name__)

# Local OpenAI-compatible servers accept any key, but the SDK insists on one.
PLACEHOLDER_API_KEY = "sk-no-key-required"


# A 200 reply that is not the expected JSON surfaces from the SDK as one of these.
_PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def _translate_error(e: openai.OpenAIError) -> BackendError:
    if isinstance(e, openai.APIStatusError):
        return HTTPStatusError(e.status_code, e.response.text or None)
    if isinstance(e, openai.APIConnectionError):
        return NetworkError(str(e) or type(e).__name__)
    return DecodingError(str(e))


class OpenAICompatibleBackend(LLMBackend):
    """Backend for OpenAI-compatible local servers such as TinyLLM.

    Hidden design decisions:
    - API client initialization (via OpenAI SDK, pointed at {base}/v1)
    - Message format conversion
    - Mapping SDK exceptions onto the BackendError taxonomy
    """

    def __init__(
        self,
        endpoint: BackendEndpoint | None,
        model: str = "mistral",
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        resource_timeout: float | None = DEFAULT_RESOURCE_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize the backend.

        Args:
            endpoint: Server address; None means nothing is configured yet
            model: Default model to use
            request_timeout: Timeout for each request phase in seconds
            resource_timeout: Deadline for a whole call in seconds
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        super().__init__(resource_timeout=resource_timeout)
        self._endpoint = endpoint
        self._model = model
        self._client: AsyncOpenAI | None = None
        if endpoint is not None and endpoint.is_configured:
            self._client = AsyncOpenAI(
                api_key=PLACEHOLDER_API_KEY,
                base_url=f"{endpoint.base_url}/v1",
                timeout=httpx.Timeout(request_timeout),
                max_retries=0,
                **client_kwargs
            )

    @property
    def kind(self) -> BackendKind:
        return BackendKind.TINYLLM

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise NoServerConfiguredError()
        return self._client

    async def fetch_available_models(self) -> list[str]:
        """List models via GET /v1/models."""
        client = self._require_client()
        try:
            page = await client.models.list()
            return [model.id for model in page.data]
        except openai.OpenAIError as e:
            raise _translate_error(e) from e
        except _PARSE_ERRORS as e:
            raise DecodingError(f"unexpected model listing: {e}") from e

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> ChatResponse:
        """Generate a chat completion via /v1/chat/completions."""
        client = self._require_client()
        request_params: dict[str, Any] = {
            "model": model or self._model,
            "messages": [msg.to_payload() for msg in messages],
            "temperature": temperature,
            **kwargs
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens
        logger.debug("POST /v1/chat/completions model=%s messages=%d", request_params["model"], len(messages))

        try:
            completion = await client.chat.completions.create(**request_params)
            if not completion.choices:
                raise DecodingError("response contained no choices", completion.model_dump_json())
            return ChatResponse(
                message=ChatMessage(role="assistant", content=completion.choices[0].message.content or ""),
                done=True,
                eval_count=completion.usage.completion_tokens if completion.usage else None,
                prompt_eval_count=completion.usage.prompt_tokens if completion.usage else None,
            )
        except openai.OpenAIError as e:
            raise _translate_error(e) from e
        except _PARSE_ERRORS as e:
            raise DecodingError(f"unexpected chat completion: {e}") from e

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Generate a streaming chat completion via /v1/chat/completions."""
        client = self._require_client()
        request_params: dict[str, Any] = {
            "model": model or self._model,
            "messages": [msg.to_payload() for msg in messages],
            "temperature": temperature,
            "stream": True,
            **kwargs,
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens

        response = StreamingResponse(
            self._chat_stream_generator(client, request_params, lambda chunk: response.set_final(chunk))
        )
        return response

    async def _chat_stream_generator(
        self,
        client: AsyncOpenAI,
        request_params: dict[str, Any],
        on_final: Callable[[ChatResponse], None],
    ) -> AsyncIterator[str]:
        """Internal generator for Chat Completions streaming."""
        try:
            stream = await client.chat.completions.create(**request_params)
            async for chunk in stream:
                content = chunk.choices[0].delta.content if chunk.choices else None
                on_final(ChatResponse(
                    message=ChatMessage(role="assistant", content=content or ""),
                    done=bool(chunk.choices and chunk.choices[0].finish_reason),
                    eval_count=chunk.usage.completion_tokens if chunk.usage else None,
                ))
                if content:
                    yield content
        except openai.OpenAIError as e:
            raise _translate_error(e) from e
        except _PARSE_ERRORS as e:
            raise DecodingError(f"unexpected stream chunk: {e}") from e

    async def close(self) -> None:
        """Close the OpenAI client."""
        if self._client is not None:
            await self._client.close()
