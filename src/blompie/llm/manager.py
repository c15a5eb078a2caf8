"""Multi-backend selection and fallback.

Holds one backend per server kind and decides which one serves generation
requests. In auto mode every configured backend is probed concurrently and
the first available one in priority order wins.
"""

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum

from .base import LLMBackend
from .errors import BackendError, NoBackendAvailableError
from .models import BackendKind, ChatMessage, ChunkCallback, CompletionCallback

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0

# Order matters: auto mode picks the first reachable kind.
AUTO_PRIORITY = (BackendKind.OLLAMA, BackendKind.TINYLLM, BackendKind.OPENWEBUI)


class BackendSelection(str, Enum):
    """Which backend the user asked for."""

    AUTO = "auto"
    OLLAMA = "ollama"
    TINYLLM = "tinyllm"
    OPENWEBUI = "openwebui"

    @property
    def kind(self) -> BackendKind | None:
        if self is BackendSelection.AUTO:
            return None
        return BackendKind(self.value)


class BackendManager:
    """Routes chat requests to the active backend.

    Hidden design decisions:
    - Probe strategy (concurrent model listing with a per-probe deadline)
    - Priority order used in auto mode
    - Which backend is active after a probe round
    """

    def __init__(
        self,
        backends: Mapping[BackendKind, LLMBackend],
        selection: BackendSelection = BackendSelection.AUTO,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        """Initialize the manager.

        Args:
            backends: One backend per server kind to consider
            selection: Explicit backend or auto
            probe_timeout: Seconds each availability probe may take
        """
        self._backends = dict(backends)
        self.selection = selection
        self.probe_timeout = probe_timeout
        self.availability: dict[BackendKind, bool] = {kind: False for kind in self._backends}
        self.models: dict[BackendKind, list[str]] = {kind: [] for kind in self._backends}
        self.active_kind: BackendKind | None = None

    @property
    def backends(self) -> dict[BackendKind, LLMBackend]:
        return dict(self._backends)

    @property
    def active_backend(self) -> LLMBackend | None:
        if self.active_kind is None:
            return None
        return self._backends[self.active_kind]

    async def _probe(self, backend: LLMBackend) -> tuple[bool, list[str]]:
        try:
            async with asyncio.timeout(self.probe_timeout):
                models = await backend.fetch_available_models()
        except (BackendError, TimeoutError) as e:
            logger.debug("%s probe failed: %s", backend.kind.display_name, e or "timed out")
            return False, []
        except Exception:
            # One misbehaving server must not hide the others.
            logger.debug("%s probe failed unexpectedly", backend.kind.display_name, exc_info=True)
            return False, []
        return True, models

    async def check_backend_availability(self) -> dict[BackendKind, bool]:
        """Probe every backend concurrently, then pick the active one.

        Returns:
            Availability per backend kind
        """
        kinds = list(self._backends)
        results = await asyncio.gather(*(self._probe(self._backends[kind]) for kind in kinds))

        for kind, (available, models) in zip(kinds, results):
            self.availability[kind] = available
            self.models[kind] = models

        self.active_kind = self._determine_active_backend()
        if self.active_kind is None:
            logger.warning("No AI backend available (selection=%s)", self.selection.value)
        else:
            logger.info("Active backend: %s", self.active_kind.display_name)
        return dict(self.availability)

    def _determine_active_backend(self) -> BackendKind | None:
        wanted = self.selection.kind
        if wanted is not None:
            return wanted if self.availability.get(wanted) else None

        for kind in AUTO_PRIORITY:
            if self.availability.get(kind):
                return kind
        return None

    def require_backend(self) -> LLMBackend:
        """Return the active backend.

        Raises:
            NoBackendAvailableError: If no probe round found a usable backend
        """
        backend = self.active_backend
        if backend is None:
            raise NoBackendAvailableError()
        return backend

    async def fetch_available_models(self) -> list[str]:
        return await self.require_backend().fetch_available_models()

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
        """Send a conversation to the active backend (see LLMBackend.send_chat)."""
        return await self.require_backend().send_chat(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            streaming=streaming,
            on_chunk=on_chunk,
            on_complete=on_complete,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = 2048,
    ) -> str:
        """One-shot generation from a single prompt and optional system prompt."""
        messages = []
        if system_prompt is not None:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))
        return await self.send_chat(
            messages, model=model, temperature=temperature, max_tokens=max_tokens
        )

    async def close(self) -> None:
        """Close every managed backend."""
        for backend in self._backends.values():
            await backend.close()
