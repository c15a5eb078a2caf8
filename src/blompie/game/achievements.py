from collections.abc import Mapping
from datetime import datetime, timezone

from .models import Achievement

DEFAULT_ACHIEVEMENTS = (
    Achievement(id="first_step", title="First Steps", description="Take your first action", metric="actions", threshold=1),
    Achievement(id="explorer", title="Explorer", description="Visit 5 different locations", metric="locations", threshold=5),
    Achievement(id="world_traveler", title="World Traveler", description="Visit 20 different locations", metric="locations", threshold=20),
    Achievement(id="social", title="Social Butterfly", description="Meet 5 NPCs", metric="npcs", threshold=5),
    Achievement(id="diplomat", title="Diplomat", description="Meet 15 NPCs", metric="npcs", threshold=15),
    Achievement(id="collector", title="Collector", description="Acquire 5 items", metric="items", threshold=5),
    Achievement(id="hoarder", title="Hoarder", description="Acquire 15 items", metric="items", threshold=15),
    Achievement(id="conversationalist", title="Conversationalist", description="Take 50 actions", metric="actions", threshold=50),
    Achievement(id="veteran", title="Veteran Adventurer", description="Take 200 actions", metric="actions", threshold=200),
)


class AchievementBook:
    """Tracks which achievements are unlocked for a session."""

    def __init__(self, achievements: tuple[Achievement, ...] = DEFAULT_ACHIEVEMENTS):
        self._achievements = [achievement.model_copy() for achievement in achievements]

    @property
    def achievements(self) -> list[Achievement]:
        return list(self._achievements)

    @property
    def unlocked(self) -> list[Achievement]:
        return [a for a in self._achievements if a.is_unlocked]

    def check(self, counters: Mapping[str, int], now: datetime | None = None) -> list[Achievement]:
        """Unlock every achievement whose counter reached its threshold.

        Args:
            counters: Current value per metric name
            now: Unlock timestamp (defaults to the current UTC time)

        Returns:
            Achievements unlocked by this call
        """
        timestamp = now or datetime.now(timezone.utc)
        newly_unlocked = []
        for achievement in self._achievements:
            if achievement.is_unlocked:
                continue
            if counters.get(achievement.metric, 0) >= achievement.threshold:
                achievement.unlocked_at = timestamp
                newly_unlocked.append(achievement)
        return newly_unlocked
