from .base import LLMBackend
from .errors import (
    BackendError,
    DecodingError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
    NoBackendAvailableError,
    NoServerConfiguredError,
)
from .factory import create_backend
from .manager import AUTO_PRIORITY, BackendManager, BackendSelection
from .models import (
    DEFAULT_PORTS,
    BackendEndpoint,
    BackendKind,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    ChatRole,
    ConnectionStatus,
    StreamingResponse,
)
from .providers import OllamaBackend, OpenAICompatibleBackend

__all__ = [
    "AUTO_PRIORITY",
    "DEFAULT_PORTS",
    "BackendEndpoint",
    "BackendError",
    "BackendKind",
    "BackendManager",
    "BackendSelection",
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "ConnectionStatus",
    "DecodingError",
    "HTTPStatusError",
    "InvalidURLError",
    "LLMBackend",
    "NetworkError",
    "NoBackendAvailableError",
    "NoServerConfiguredError",
    "OllamaBackend",
    "OpenAICompatibleBackend",
    "StreamingResponse",
    "create_backend",
]
