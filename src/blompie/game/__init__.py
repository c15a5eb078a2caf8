from .achievements import DEFAULT_ACHIEVEMENTS, AchievementBook
from .interpreter import ACTIONS_MARKER, FALLBACK_ACTIONS, parse_response
from .models import (
    Achievement,
    GameMessage,
    GameSnapshot,
    ParsedTurn,
    TrackedElements,
    TurnResult,
    TurnState,
)
from .session import FALLBACK_MODELS, GameSession, TurnInProgressError
from .tracking import ElementTracker

__all__ = [
    "ACTIONS_MARKER",
    "DEFAULT_ACHIEVEMENTS",
    "FALLBACK_ACTIONS",
    "FALLBACK_MODELS",
    "Achievement",
    "AchievementBook",
    "ElementTracker",
    "GameMessage",
    "GameSession",
    "GameSnapshot",
    "ParsedTurn",
    "TrackedElements",
    "TurnInProgressError",
    "TurnResult",
    "TurnState",
    "parse_response",
]
