"""Split a model response into narrative and a list of next actions.

Models are asked to end with ``ACTIONS: a | b | c`` but often answer with a
numbered list instead, sometimes with bold items or a "What do you do?"
header. Each line is classified by the first heuristic that matches.
"""

import re
import string

from .models import ParsedTurn

ACTIONS_MARKER = "ACTIONS:"
ACTION_MAX_LENGTH = 80

FALLBACK_ACTIONS = ("Look around", "Continue", "Go back", "Examine surroundings")

LIST_HEADER_PHRASES = ("possible actions", "what do you do", "your options", "you can:")

# Fragments of the game-master prompt that small models sometimes echo back.
PROMPT_LEAKAGE_PHRASES = (
    "You are the game master",
    "Your role is to:",
    "CRITICAL FORMAT REQUIREMENT",
    "CRITICAL - ACTIONS MUST",
    "Example response format:",
    "Always end your response",
    "Keep descriptions concise",
    "Create an immersive",
    "Respond to player actions",
    "Present 2-4 possible actions",
    "Be creative and surprising",
    "Track inventory",
    "Make the world feel alive",
    "Populate the world with NPCs",
    "Include friendly characters",
    "IMPORTANT: Balance exploration",
    "These can be:",
    "Friendly travelers with useful",
    "Eccentric shopkeepers",
    "Magical creatures who speak",
    "Prioritize interactive actions",
    "When a player takes an action",
    "PROGRESS IS MANDATORY",
    "NEVER re-describe the same",
    "BAD (stuck):",
    "GOOD (progress):",
    "MAKE THINGS HAPPEN",
    "But ALWAYS prioritize story",
)

_BOLD_NUMBERED = re.compile(r"^\d+\.\s*\*\*")
_NUMBERED = re.compile(r"^\d+\.")
_NUMBER_PREFIX = re.compile(r"^\d+\.\s*")

_EDGE_CHARS = string.punctuation + string.whitespace


def _is_usable_action(action: str) -> bool:
    return bool(action) and len(action) < ACTION_MAX_LENGTH


def _clean_numbered_item(line: str) -> str:
    # "3. Ask the elder (she may know): about the crown" -> "Ask the elder"
    without_number = _NUMBER_PREFIX.sub("", line, count=1)
    action = without_number.split("(", 1)[0].strip()
    return action.split(":", 1)[0].strip(_EDGE_CHARS)


def _is_prompt_leakage(line: str) -> bool:
    return any(phrase in line for phrase in PROMPT_LEAKAGE_PHRASES)


def parse_response(text: str) -> ParsedTurn:
    """Interpret a raw model response.

    Args:
        text: Full response text as returned by the backend

    Returns:
        ParsedTurn with the narrative and at least one action
    """
    narrative_lines: list[str] = []
    listed_actions: list[str] = []
    marker_actions: list[str] | None = None
    in_actions_list = False

    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue

        if trimmed.startswith(ACTIONS_MARKER):
            remainder = trimmed[len(ACTIONS_MARKER):]
            marker_actions = [part.strip() for part in remainder.split("|")]
            in_actions_list = False
        elif _BOLD_NUMBERED.match(trimmed):
            in_actions_list = True
            parts = trimmed.split("**")
            if len(parts) >= 3:
                action = parts[1].strip()
                if _is_usable_action(action):
                    listed_actions.append(action)
        elif _NUMBERED.match(trimmed):
            action = _clean_numbered_item(trimmed)
            if _is_usable_action(action):
                listed_actions.append(action)
                in_actions_list = True
        elif any(phrase in trimmed.lower() for phrase in LIST_HEADER_PHRASES):
            in_actions_list = True
        elif not in_actions_list and not _is_prompt_leakage(trimmed):
            narrative_lines.append(line)

    actions = marker_actions if marker_actions is not None else listed_actions
    actions = [action for action in actions if action]

    if not actions:
        return ParsedTurn(
            narrative="\n".join(narrative_lines),
            actions=list(FALLBACK_ACTIONS),
            used_fallback=True,
        )
    return ParsedTurn(narrative="\n".join(narrative_lines), actions=actions)
