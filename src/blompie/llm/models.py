from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BackendKind(str, Enum):
    """Kinds of local LLM servers the client can talk to."""

    OLLAMA = "ollama"
    TINYLLM = "tinyllm"
    OPENWEBUI = "openwebui"

    @property
    def display_name(self) -> str:
        return {
            BackendKind.OLLAMA: "Ollama",
            BackendKind.TINYLLM: "TinyLLM",
            BackendKind.OPENWEBUI: "OpenWebUI",
        }[self]


DEFAULT_PORTS = {
    BackendKind.OLLAMA: 11434,
    BackendKind.TINYLLM: 8000,
    BackendKind.OPENWEBUI: 8080,
}


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Represents a chat message in a conversation."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: ChatRole = Field(description="Role of the message sender: 'user', 'assistant', or 'system'")
    content: str = Field(description="Content of the message")

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatOptions(BaseModel):
    """Sampling options sent with every chat request."""

    model_config = ConfigDict(frozen=True)

    temperature: float = 0.7
    max_output_tokens: int | None = Field(default=None, ge=1)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"temperature": self.temperature}
        if self.max_output_tokens is not None:
            payload["num_predict"] = self.max_output_tokens
        return payload


class ChatRequest(BaseModel):
    """Body of a chat request against an Ollama-compatible API."""

    model: str
    messages: list[ChatMessage]
    stream: bool = False
    options: ChatOptions = Field(default_factory=ChatOptions)

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [msg.to_payload() for msg in self.messages],
            "stream": self.stream,
            "options": self.options.to_payload(),
        }


class ChatResponse(BaseModel):
    """A complete response, or one partial line of a streamed response.

    Ollama sends ``{message, done, eval_count, eval_duration, ...}``.
    OpenWebUI and OpenAI-compatible servers answer with ``choices``; those
    payloads are folded into the same shape before validation.
    """

    message: ChatMessage
    done: bool = False
    eval_count: int | None = None
    eval_duration: int | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "message" in data:
            return data
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return data

        choice = choices[0] if isinstance(choices[0], dict) else {}
        body = choice.get("message") or choice.get("delta") or {}
        if not isinstance(body, dict):
            # Left without a message so validation reports it.
            return data
        normalized = dict(data)
        normalized["message"] = {
            "role": body.get("role") or ChatRole.ASSISTANT.value,
            "content": body.get("content") or "",
        }
        normalized.setdefault("done", choice.get("finish_reason") is not None)
        usage = data.get("usage")
        if isinstance(usage, dict):
            normalized.setdefault("eval_count", usage.get("completion_tokens"))
            normalized.setdefault("prompt_eval_count", usage.get("prompt_tokens"))
        return normalized

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def tokens_per_second(self) -> float | None:
        """Generation speed, or None when the duration is missing or not positive."""
        if self.eval_count is None or self.eval_duration is None or self.eval_duration <= 0:
            return None
        return self.eval_count / (self.eval_duration / 1_000_000_000)


class OllamaModel(BaseModel):
    name: str
    size: int | None = None
    modified_at: str | None = None


class OllamaModelsResponse(BaseModel):
    models: list[OllamaModel]


class OpenWebUIModel(BaseModel):
    id: str
    name: str | None = None
    owned_by: str | None = None


class OpenWebUIModelsResponse(BaseModel):
    data: list[OpenWebUIModel] | None = None
    models: list[OpenWebUIModel] | None = None

    @property
    def all_models(self) -> list[OpenWebUIModel]:
        return self.data or self.models or []


def parse_model_listing(payload: Any, kind: BackendKind) -> list[str]:
    """Flatten a provider-specific model listing into model identifiers.

    Raises:
        pydantic.ValidationError: If the payload does not have the expected shape
    """
    if kind is BackendKind.OLLAMA:
        return [model.name for model in OllamaModelsResponse.model_validate(payload).models]
    return [model.id for model in OpenWebUIModelsResponse.model_validate(payload).all_models]


class BackendEndpoint(BaseModel):
    """Address of a backend server. Two endpoints are equal when host and port match."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    kind: BackendKind = BackendKind.OLLAMA

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BackendEndpoint):
            return NotImplemented
        return (self.host, self.port) == (other.host, other.port)

    def __hash__(self) -> int:
        return hash((self.host, self.port))

    @property
    def is_configured(self) -> bool:
        return bool(self.host.strip())

    @property
    def base_url(self) -> str:
        if not self.is_configured:
            return ""
        return f"http://{self.host}:{self.port}"


class ConnectionStatus(BaseModel):
    """Outcome of a connection probe."""

    model_config = ConfigDict(frozen=True)

    is_connected: bool
    status: str


class StreamingResponse:
    """Wrapper for streaming responses that captures the final chunk.

    Acts as an async iterator for text chunks while storing the last decoded
    response line, which carries the token metrics once the stream ends.

    Usage:
        stream = await backend.chat_completion_stream(messages)
        async for chunk in stream:
            print(chunk, end="")
        # After iteration, metrics are available
        print(stream.tokens_per_second)
    """

    def __init__(self, async_iter: AsyncIterator[str]):
        """Initialize with an async iterator of text chunks.

        Args:
            async_iter: Async iterator yielding text chunks
        """
        self._iter = async_iter
        self._final: ChatResponse | None = None

    @property
    def final(self) -> ChatResponse | None:
        """Last successfully decoded response line (available after iteration)."""
        return self._final

    @property
    def tokens_per_second(self) -> float | None:
        return self._final.tokens_per_second if self._final is not None else None

    def set_final(self, response: ChatResponse) -> None:
        """Record the latest decoded line (called by the backend while streaming)."""
        self._final = response

    def __aiter__(self) -> "StreamingResponse":
        """Return self as async iterator."""
        return self

    async def __anext__(self) -> str:
        """Get next chunk from the underlying iterator."""
        return await self._iter.__anext__()


ChunkCallback = Callable[[str], None]
CompletionCallback = Callable[[float | None], None]
