"""Runtime configuration.

Settings come from ``BLOMPIE_*`` environment variables and an optional
``.env`` file, read by pydantic-settings. Every field has a default so the
game can start with nothing configured; backend calls then fail with
NoServerConfiguredError.
"""

import logging
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .llm.base import DEFAULT_REQUEST_TIMEOUT, DEFAULT_RESOURCE_TIMEOUT
from .llm.manager import DEFAULT_PROBE_TIMEOUT, BackendSelection
from .llm.models import DEFAULT_PORTS, BackendEndpoint, BackendKind
from .prompts import DetailLevel, ToneStyle

ENV_PREFIX = "BLOMPIE_"

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class GameSettings(BaseSettings):
    """Everything the client needs to reach a server and run a game.

    Each field reads ``BLOMPIE_<FIELD>``; empty variables keep the default.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    server_host: str = Field(default="", description="Host running the LLM server(s)")
    backend: BackendSelection = BackendSelection.AUTO
    ollama_port: int = Field(default=DEFAULT_PORTS[BackendKind.OLLAMA], ge=1, le=65535)
    tinyllm_port: int = Field(default=DEFAULT_PORTS[BackendKind.TINYLLM], ge=1, le=65535)
    openwebui_port: int = Field(default=DEFAULT_PORTS[BackendKind.OPENWEBUI], ge=1, le=65535)

    model: str = "mistral"
    temperature: float = Field(default=1.3, ge=0.1, le=2.0)
    streaming: bool = True
    max_tokens: int | None = Field(default=None, ge=1, description="Per-turn token cap")

    detail_level: DetailLevel = DetailLevel.NORMAL
    tone_style: ToneStyle = ToneStyle.BALANCED
    random_model_mode: bool = False
    actions_until_model_switch: int = Field(default=5, ge=1)

    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    resource_timeout: float = Field(default=DEFAULT_RESOURCE_TIMEOUT, gt=0)
    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)

    log_level: str = "warning"

    @field_validator("backend", "detail_level", "tone_style", "log_level", mode="before")
    @classmethod
    def _fold_case(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    def port_for(self, kind: BackendKind) -> int:
        return {
            BackendKind.OLLAMA: self.ollama_port,
            BackendKind.TINYLLM: self.tinyllm_port,
            BackendKind.OPENWEBUI: self.openwebui_port,
        }[kind]

    def endpoint_for(self, kind: BackendKind) -> BackendEndpoint:
        return BackendEndpoint(host=self.server_host, port=self.port_for(kind), kind=kind)


def load_settings(dotenv: bool = True) -> GameSettings:
    """Build settings from environment variables.

    Args:
        dotenv: Also read a .env file from the working directory

    Returns:
        Validated settings

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value

    Environment variables:
        BLOMPIE_SERVER_HOST, BLOMPIE_BACKEND (auto, ollama, tinyllm, openwebui),
        BLOMPIE_OLLAMA_PORT, BLOMPIE_TINYLLM_PORT, BLOMPIE_OPENWEBUI_PORT,
        BLOMPIE_MODEL, BLOMPIE_TEMPERATURE, BLOMPIE_STREAMING, BLOMPIE_MAX_TOKENS,
        BLOMPIE_DETAIL_LEVEL, BLOMPIE_TONE_STYLE, BLOMPIE_RANDOM_MODEL_MODE,
        BLOMPIE_ACTIONS_UNTIL_MODEL_SWITCH, BLOMPIE_REQUEST_TIMEOUT,
        BLOMPIE_RESOURCE_TIMEOUT, BLOMPIE_PROBE_TIMEOUT, BLOMPIE_LOG_LEVEL
    """
    if dotenv:
        return GameSettings()
    return GameSettings(_env_file=None)


def configure_logging(level: str = "warning") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
    )
