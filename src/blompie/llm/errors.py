"""Backend client error taxonomy.

Every failure a backend can surface derives from BackendError, so the game
loop can catch a single type at the turn boundary and show the message to the
player.
"""


class BackendError(Exception):
    """Base class for backend client errors."""


class InvalidURLError(BackendError):
    """The configured server address does not form a valid URL."""

    def __init__(self, url: str = ""):
        self.url = url
        super().__init__(f"Invalid server URL: {url}" if url else "Invalid server URL")


class NetworkError(BackendError):
    """Transport failure: connection refused, DNS failure, timeout."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Network error: {reason}")


class HTTPStatusError(BackendError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Invalid response (HTTP {status_code}): {body or 'No details'}")


class DecodingError(BackendError):
    """The response body was not the JSON we expected."""

    def __init__(self, reason: str, body: str | None = None):
        self.reason = reason
        self.body = body
        super().__init__(f"Failed to decode response: {reason}\nResponse: {body or 'Unknown'}")


class NoServerConfiguredError(BackendError):
    def __init__(self) -> None:
        super().__init__(
            "No AI server configured. Set BLOMPIE_SERVER_HOST to your Ollama or OpenWebUI server."
        )


class NoBackendAvailableError(BackendError):
    def __init__(self) -> None:
        super().__init__(
            "No AI backend available. Check that Ollama, TinyLLM, or OpenWebUI is running."
        )
