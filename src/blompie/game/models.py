"""Data models for the game loop.

These models are transient: a session owns them in memory and hands them to
whatever presentation layer drives it.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..llm.models import ChatMessage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class ParsedTurn(BaseModel):
    """A model response split into narrative prose and next actions."""

    model_config = ConfigDict(frozen=True)

    narrative: str = Field(description="Narrative lines in original order, joined by newlines")
    actions: list[str] = Field(description="Actions the player can choose next")
    used_fallback: bool = Field(default=False, description="True when no actions were found")


class TrackedElements(BaseModel):
    """NPCs, items and places picked out of the narrative."""

    npcs: list[str] = Field(default_factory=list)
    inventory: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.npcs or self.inventory or self.locations)


class GameMessage(BaseModel):
    """One line of the game transcript."""

    model_config = ConfigDict(frozen=True)

    text: str
    id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=_utcnow)


class GameSnapshot(BaseModel):
    """State captured just before an action is applied, for undo."""

    model_config = ConfigDict(frozen=True)

    messages: list[GameMessage]
    conversation: list[ChatMessage]
    actions: list[str]


class Achievement(BaseModel):
    """A milestone unlocked when a gameplay counter reaches its threshold."""

    id: str
    title: str
    description: str
    metric: str = Field(description="Counter name: actions, locations, npcs or items")
    threshold: int = Field(ge=1)
    unlocked_at: datetime | None = None

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None


class TurnResult(BaseModel):
    """Everything a presentation layer needs after one turn resolves."""

    turn: ParsedTurn | None = None
    tokens_per_second: float | None = None
    discovered: TrackedElements = Field(default_factory=TrackedElements)
    unlocked: list[Achievement] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
