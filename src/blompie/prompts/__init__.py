"""Prompt management module.

Externalizes prompts to text files for easy customization.
Prompts can be overridden by placing files in the working directory.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

# Default prompts directory (package location)
_PROMPTS_DIR = Path(__file__).parent


class DetailLevel(str, Enum):
    BRIEF = "brief"
    NORMAL = "normal"
    DETAILED = "detailed"


class ToneStyle(str, Enum):
    SERIOUS = "serious"
    BALANCED = "balanced"
    WHIMSICAL = "whimsical"


OPENING_PROMPT = (
    "Start a new text adventure. Describe the opening scene and provide the first set of actions."
)

DETAIL_INSTRUCTIONS = {
    DetailLevel.BRIEF: "Keep descriptions VERY brief (1-2 sentences maximum). Focus on action over description.",
    DetailLevel.NORMAL: "Keep descriptions concise but evocative (2-4 sentences).",
    DetailLevel.DETAILED: "Provide rich, detailed descriptions (4-6 sentences). Paint a vivid picture with sensory details.",
}

TONE_INSTRUCTIONS = {
    ToneStyle.SERIOUS: "Maintain a serious, dramatic tone. The world is mysterious and consequential.",
    ToneStyle.BALANCED: "Balance seriousness with occasional lightness. The world can be both mysterious and charming.",
    ToneStyle.WHIMSICAL: "Embrace whimsy and humor. The world is playful, quirky, and delightfully strange.",
}


@lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """Load a prompt from file.

    Search order:
    1. Current working directory: ./prompts/{name}.txt
    2. Package prompts directory: blompie/prompts/{name}.txt

    Args:
        name: Prompt name (without .txt extension)

    Returns:
        Prompt text content

    Raises:
        FileNotFoundError: If prompt file not found in any location
    """
    filename = f"{name}.txt"

    # Check working directory first (allows user overrides)
    local_path = Path.cwd() / "prompts" / filename
    if local_path.exists():
        return local_path.read_text(encoding="utf-8")

    # Fall back to package prompts
    package_path = _PROMPTS_DIR / filename
    if package_path.exists():
        return package_path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"Prompt '{name}' not found. Searched:\n"
        f"  - {local_path}\n"
        f"  - {package_path}"
    )


def build_system_prompt(
    detail_level: DetailLevel = DetailLevel.NORMAL,
    tone_style: ToneStyle = ToneStyle.BALANCED,
) -> str:
    """Render the game-master system prompt for the chosen detail level and tone."""
    template = load_prompt("game_master")
    return template.format(
        detail_instruction=DETAIL_INSTRUCTIONS[detail_level],
        tone_instruction=TONE_INSTRUCTIONS[tone_style],
    ).strip()


def clear_cache() -> None:
    """Clear the prompt cache (useful after modifying prompt files)."""
    load_prompt.cache_clear()


__all__ = [
    "DetailLevel",
    "OPENING_PROMPT",
    "ToneStyle",
    "build_system_prompt",
    "clear_cache",
    "load_prompt",
]
