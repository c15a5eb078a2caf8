from typing import Any

from .base import LLMBackend
from .models import BackendEndpoint, BackendKind
from .providers import OllamaBackend, OpenAICompatibleBackend


def create_backend(kind: BackendKind | str, **config: Any) -> LLMBackend:
    """Create a backend instance.

    This factory function hides the instantiation logic for different server kinds.

    Args:
        kind: Backend kind ('ollama', 'openwebui', 'tinyllm')
        **config: Backend configuration
            Common:
                - host: str (required; may be empty for "not configured")
                - port: int (required)
                - model: str (default: 'mistral')
                - request_timeout: float (default: 300)
                - resource_timeout: float | None (default: 600)
            For Ollama / OpenWebUI:
                - http_client: httpx.AsyncClient | None

    Returns:
        Initialized backend instance

    Raises:
        ValueError: If the backend kind is not supported
        TypeError: If host or port is missing

    Examples:
        >>> backend = create_backend("ollama", host="localhost", port=11434)

        >>> backend = create_backend(
        ...     "openwebui",
        ...     host="192.168.1.20",
        ...     port=8080,
        ...     model="llama3.2"
        ... )
    """
    try:
        backend_kind = BackendKind(kind.lower() if isinstance(kind, str) else kind)
    except ValueError:
        raise ValueError(
            f"Unsupported backend: {kind}. "
            f"Supported backends: 'ollama', 'tinyllm', 'openwebui'"
        ) from None

    if "host" not in config or "port" not in config:
        raise TypeError(f"{backend_kind.display_name} backend requires 'host' and 'port' in config")

    endpoint = BackendEndpoint(host=config.pop("host"), port=config.pop("port"), kind=backend_kind)

    if backend_kind is BackendKind.TINYLLM:
        return OpenAICompatibleBackend(endpoint, **config)
    return OllamaBackend(endpoint, **config)
