"""
Blompie: a Zork-style text adventure narrated by a self-hosted language model.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .config import GameSettings, load_settings
from .game import GameSession, ParsedTurn, TurnResult, parse_response
from .llm import (
    BackendError,
    BackendKind,
    BackendManager,
    BackendSelection,
    LLMBackend,
    create_backend,
)

__all__ = [
    "BackendError",
    "BackendKind",
    "BackendManager",
    "BackendSelection",
    "GameSession",
    "GameSettings",
    "LLMBackend",
    "ParsedTurn",
    "TurnResult",
    "create_backend",
    "load_settings",
    "parse_response",
]
