"""Turn cycle for a single game.

A session owns the transcript, the conversation sent to the model and the
current action list. It talks to any chat client exposing ``send_chat`` and
``fetch_available_models`` (a single LLMBackend or a BackendManager) and
returns a TurnResult per turn instead of pushing UI updates.
"""

import logging
import random
from collections import deque
from datetime import datetime, timezone
from typing import Protocol

from ..config import GameSettings
from ..llm.errors import BackendError
from ..llm.models import ChatMessage, ChunkCallback, CompletionCallback
from ..prompts import OPENING_PROMPT, build_system_prompt
from .achievements import AchievementBook
from .interpreter import parse_response
from .models import GameMessage, GameSnapshot, TurnResult, TurnState
from .tracking import ElementTracker

logger = logging.getLogger(__name__)

MAX_SNAPSHOTS = 20
MAX_ACTION_HISTORY = 10

FALLBACK_MODELS = ("mistral", "llama3.2", "llama3.1", "codellama", "phi")

TITLE_LINES = (
    "=== BLOMPIE ===",
    "A Text Adventure Powered by AI",
    "",
    "Initializing game world...",
    "",
)


class ChatClient(Protocol):
    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        streaming: bool = False,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> str: ...

    async def fetch_available_models(self) -> list[str]: ...


class TurnInProgressError(RuntimeError):
    """Raised when an action is submitted while a turn is still awaiting its response."""

    def __init__(self) -> None:
        super().__init__("A turn is already in progress; wait for it to finish.")


class GameSession:
    """Runs the Idle -> AwaitingResponse -> Idle turn cycle.

    Hidden design decisions:
    - Conversation bookkeeping (system prompt, user/assistant turns)
    - Snapshot-based undo with a bounded history
    - Conversion of backend failures into transcript text
    """

    def __init__(
        self,
        client: ChatClient,
        settings: GameSettings | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the session.

        Args:
            client: Backend or BackendManager that answers chat requests
            settings: Game settings (defaults are used when omitted)
            rng: Random source for model rotation
        """
        self._client = client
        self.settings = settings or GameSettings()
        self._rng = rng or random.Random()

        self.model = self.settings.model
        self.available_models: list[str] = list(FALLBACK_MODELS)
        self.state = TurnState.IDLE

        self.messages: list[GameMessage] = []
        self.conversation: list[ChatMessage] = []
        self.current_actions: list[str] = []
        self.action_history: list[str] = []
        self.total_actions = 0
        self.snapshots: deque[GameSnapshot] = deque(maxlen=MAX_SNAPSHOTS)
        self.last_tokens_per_second: float | None = None

        self.tracker = ElementTracker()
        self.achievements = AchievementBook()
        self._actions_since_model_switch = 0

    @property
    def is_busy(self) -> bool:
        return self.state is TurnState.AWAITING_RESPONSE

    def add_message(self, text: str) -> None:
        self.messages.append(GameMessage(text=text))

    async def refresh_available_models(self) -> list[str]:
        """Ask the server for installed models, falling back to a fixed list."""
        try:
            models = await self._client.fetch_available_models()
        except BackendError as e:
            logger.info("Could not list models, using defaults: %s", e)
            models = []
        self.available_models = models or list(FALLBACK_MODELS)
        return self.available_models

    async def start_new_game(self, on_chunk: ChunkCallback | None = None) -> TurnResult:
        """Reset all state and generate the opening scene."""
        self._ensure_idle()
        self.messages = []
        self.conversation = []
        self.current_actions = []
        self.action_history = []
        self.total_actions = 0
        self.snapshots.clear()
        self.tracker.reset()
        self.achievements = AchievementBook()
        self._actions_since_model_switch = 0

        for line in TITLE_LINES:
            self.add_message(line)

        self.conversation.append(ChatMessage(
            role="system",
            content=build_system_prompt(self.settings.detail_level, self.settings.tone_style),
        ))
        self.conversation.append(ChatMessage(role="user", content=OPENING_PROMPT))
        return await self._run_turn(on_chunk)

    async def perform_action(self, action: str, on_chunk: ChunkCallback | None = None) -> TurnResult:
        """Apply a player action and wait for the model's answer.

        Raises:
            TurnInProgressError: If the previous turn has not resolved yet
        """
        self._ensure_idle()
        self._save_snapshot()

        self.action_history.append(action)
        del self.action_history[:-MAX_ACTION_HISTORY]
        self.total_actions += 1

        if self.settings.random_model_mode:
            self._actions_since_model_switch += 1
            if self._actions_since_model_switch >= self.settings.actions_until_model_switch:
                self._switch_to_random_model()
                self._actions_since_model_switch = 0

        self.add_message(f"> {action}")
        self.add_message("")
        self.conversation.append(ChatMessage(role="user", content=action))
        return await self._run_turn(on_chunk)

    def undo_last_action(self) -> bool:
        """Restore the state from before the most recent action.

        Returns:
            False when there is nothing to undo
        """
        if self.is_busy or not self.snapshots:
            return False

        snapshot = self.snapshots.pop()
        self.messages = list(snapshot.messages)
        self.conversation = list(snapshot.conversation)
        self.current_actions = list(snapshot.actions)
        if self.action_history:
            self.action_history.pop()
        return True

    def stats(self) -> dict[str, str]:
        known = self.tracker.known
        achievements = self.achievements.achievements
        return {
            "Total Actions": str(self.total_actions),
            "NPCs Met": str(len(known.npcs)),
            "Items Collected": str(len(known.inventory)),
            "Locations Visited": str(len(known.locations)),
            "Achievements": f"{len(self.achievements.unlocked)}/{len(achievements)}",
            "Current Model": self.model,
            "Last Token/sec": (
                f"{self.last_tokens_per_second:.1f}"
                if self.last_tokens_per_second is not None else "N/A"
            ),
            "Messages": str(len(self.messages)),
        }

    def export_transcript(self, now: datetime | None = None) -> str:
        exported = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S %Z")
        lines = [
            "=== BLOMPIE GAME TRANSCRIPT ===",
            f"Exported: {exported}",
            f"Model: {self.model}",
            f"Total Messages: {len(self.messages)}",
            "",
            "=" * 50,
            "",
        ]
        lines.extend(message.text for message in self.messages)
        return "\n".join(lines) + "\n"

    def _ensure_idle(self) -> None:
        if self.is_busy:
            raise TurnInProgressError()

    def _save_snapshot(self) -> None:
        self.snapshots.append(GameSnapshot(
            messages=list(self.messages),
            conversation=list(self.conversation),
            actions=list(self.current_actions),
        ))

    def _switch_to_random_model(self) -> None:
        others = [model for model in self.available_models if model != self.model]
        if not others:
            return
        self.model = self._rng.choice(others)
        logger.info("Switched to model %s", self.model)
        self.add_message("")
        self.add_message(f"Switched to model: {self.model}")
        self.add_message("")

    def _counters(self) -> dict[str, int]:
        known = self.tracker.known
        return {
            "actions": self.total_actions,
            "locations": len(known.locations),
            "npcs": len(known.npcs),
            "items": len(known.inventory),
        }

    async def _run_turn(self, on_chunk: ChunkCallback | None) -> TurnResult:
        self.state = TurnState.AWAITING_RESPONSE
        speeds: list[float | None] = []
        try:
            reply = await self._client.send_chat(
                list(self.conversation),
                model=self.model,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
                streaming=self.settings.streaming,
                on_chunk=on_chunk,
                on_complete=speeds.append,
            )
        except BackendError as e:
            logger.warning("Turn failed: %s", e)
            self._report_error(e)
            return TurnResult(error=str(e))
        finally:
            self.state = TurnState.IDLE

        turn_speed = speeds[0] if speeds else None
        if turn_speed is not None:
            self.last_tokens_per_second = turn_speed

        self.conversation.append(ChatMessage(role="assistant", content=reply))
        turn = parse_response(reply)
        if turn.narrative:
            self.add_message(turn.narrative)
            self.add_message("")
        self.current_actions = list(turn.actions)

        discovered = self.tracker.scan(reply)
        unlocked = self.achievements.check(self._counters())
        for achievement in unlocked:
            self.add_message("")
            self.add_message(f"Achievement Unlocked: {achievement.title}")
            self.add_message("")

        return TurnResult(
            turn=turn,
            tokens_per_second=turn_speed,
            discovered=discovered,
            unlocked=unlocked,
        )

    def _report_error(self, error: BackendError) -> None:
        for line in (
            "=== ERROR ===",
            str(error),
            "",
            "Troubleshooting:",
            "1. Check BLOMPIE_SERVER_HOST and the backend ports",
            "2. Make sure Ollama, TinyLLM or OpenWebUI is running",
            f"3. Verify the {self.model} model is installed",
        ):
            self.add_message(line)
