"""UI display state."""
from __future__ import annotations

from enum import Enum


class DisplayStyle(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


def display_choices() -> list[tuple[str, str]]:
    return [(style.value.capitalize(), style.value) for style in DisplayStyle]


def output_visibility(style: str | DisplayStyle) -> tuple[bool, bool]:
    """Return (plain visible, markdown visible) for a display style."""
    plain = DisplayStyle(style) is DisplayStyle.PLAIN
    return plain, not plain
