"""Best-effort tracking of NPCs, inventory and locations.

This is keyword guessing over free-form prose, not a parser: it misses things
and occasionally records nonsense (``enter`` also fires on "you enter a daze").
Callers should treat the results as annotations for stats and achievements.
"""

import logging
import re
import string

from .models import TrackedElements

logger = logging.getLogger(__name__)

NPC_KEYWORDS = (
    "meets",
    "encounter",
    "greet",
    "merchant",
    "traveler",
    "guide",
    "sprite",
    "elder",
    "adventurer",
    "wizard",
    "gnome",
    "shopkeeper",
)

INVENTORY_PHRASES = ("pick up", "take the", "receive", "acquire", "find a", "grab")
INVENTORY_WORDS = 3

LOCATION_PHRASES = ("enter", "arrive at", "you're in", "standing in", "you find yourself")
LOCATION_WORDS = 4

_PUNCTUATION = string.punctuation + "‘’“”…"
_SENTENCE_END = re.compile(r"[.!?;]")


def _strip_punctuation(text: str) -> str:
    return text.strip(_PUNCTUATION)


def _contains_casefold(entries: list[str], candidate: str) -> bool:
    folded = candidate.casefold()
    return any(entry.casefold() == folded for entry in entries)


def _phrase_tail(text: str, phrase: str, word_count: int) -> str:
    """Return up to word_count words following the first occurrence of phrase."""
    match = re.search(r"\b" + re.escape(phrase) + r"\w*", text, re.IGNORECASE)
    if match is None:
        return ""
    words = text[match.end():].split()[:word_count]
    # Stay inside the sentence the phrase appeared in.
    tail = _SENTENCE_END.split(" ".join(words), maxsplit=1)[0]
    return _strip_punctuation(tail).strip()


class ElementTracker:
    """Accumulates game elements across turns without duplicates."""

    def __init__(self, known: TrackedElements | None = None):
        self.known = known.model_copy(deep=True) if known is not None else TrackedElements()

    def reset(self) -> None:
        self.known = TrackedElements()

    def scan(self, response: str) -> TrackedElements:
        """Scan a response and record anything new.

        Args:
            response: Raw model response text

        Returns:
            Only the entries first seen in this response
        """
        found = TrackedElements()
        words = response.split()

        for index, word in enumerate(words[:-1]):
            if _strip_punctuation(word).lower() not in NPC_KEYWORDS:
                continue
            name = _strip_punctuation(words[index + 1])
            if name[:1].isupper():
                self._record(self.known.npcs, found.npcs, name)

        for phrase in INVENTORY_PHRASES:
            self._record(self.known.inventory, found.inventory, _phrase_tail(response, phrase, INVENTORY_WORDS))

        for phrase in LOCATION_PHRASES:
            self._record(self.known.locations, found.locations, _phrase_tail(response, phrase, LOCATION_WORDS))

        if not found.is_empty():
            logger.debug(
                "Tracked %d npcs, %d items, %d locations",
                len(found.npcs), len(found.inventory), len(found.locations),
            )
        return found

    @staticmethod
    def _record(known: list[str], found: list[str], candidate: str) -> None:
        if candidate and not _contains_casefold(known, candidate):
            known.append(candidate)
            found.append(candidate)
