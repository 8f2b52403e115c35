"""
peak_server/intent_classifier.py

Keyword and command-prefix intent detection.

The caller sends a mode with every request, but the query text wins: a
leading ``/image`` or a phrase like "generate an image" switches the request
to image generation no matter what mode the UI had selected.

Adding a new mode:
    1. Add the token to ``Mode`` below.
    2. Give it a provider chain in ``orchestrator.py``.
    3. Optionally add prefixes/phrases to ``_INTENT_RULES``.
"""

from __future__ import annotations

import logging
import re
from enum import StrEnum
from typing import Any, Final

logger = logging.getLogger("peak-server.intent")


class Mode(StrEnum):
    """Processing modes understood by the orchestrator."""

    CHAT = "chat"
    FLASH = "flash"
    THINK = "think"
    CODE = "code"
    PRO = "pro"
    ANALYZE = "analyze"
    IMAGE = "image"
    VISUALIZE = "visualize"
    VIDEO = "video"


TEXT_MODES: Final[frozenset[str]] = frozenset(
    {Mode.CHAT, Mode.FLASH, Mode.THINK, Mode.CODE, Mode.PRO, Mode.ANALYZE}
)
IMAGE_MODES: Final[frozenset[str]] = frozenset({Mode.IMAGE, Mode.VISUALIZE})
SEARCH_MODES: Final[frozenset[str]] = frozenset({Mode.PRO, Mode.ANALYZE})

# (mode, command prefixes, free-text phrases) in precedence order.
_INTENT_RULES: Final[tuple[tuple[Mode, tuple[str, ...], tuple[str, ...]], ...]] = (
    (
        Mode.IMAGE,
        ("/image", "/draw"),
        ("generate an image", "create an image", "draw a picture", "visualize"),
    ),
    (
        Mode.CODE,
        ("/code",),
        ("write code", "write a function", "function to"),
    ),
    (
        Mode.VIDEO,
        ("/video", "/animate"),
        ("make a video", "generate a video", "animate"),
    ),
)

_COMMAND_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^\s*/(?:image|draw|code|video|animate)\b\s*",
    re.IGNORECASE,
)


def detect_intent(query: str) -> Mode | None:
    """Return the mode implied by the query text, if any.

    Image intent is checked before code intent, and code before video.

    Args:
        query: Raw user query.

    Returns:
        The first matching :class:`Mode`, or ``None``.
    """
    lowered = query.lower().strip()
    for mode, prefixes, phrases in _INTENT_RULES:
        if lowered.startswith(prefixes) or any(p in lowered for p in phrases):
            logger.info("Intent classifier resolved mode: %s", mode)
            return mode
    return None


def resolve_mode(query: str, requested: str | None) -> str:
    """Return the effective mode: detected intent, else the caller's mode.

    The requested mode is returned exactly as given, without case or
    whitespace folding. Unknown modes reach the orchestrator, which
    sends them to the default text provider.
    """
    detected = detect_intent(query)
    if detected is not None:
        if requested and requested != detected:
            logger.info("Overriding requested mode %r with %r", requested, detected.value)
        return detected.value
    return requested or Mode.CHAT.value


def strip_command(query: str) -> str:
    """Drop a leading command token such as ``/image`` from the query."""
    return _COMMAND_PATTERN.sub("", query, count=1).strip()


def content_text(val: None | str | list[Any]) -> str:
    """Normalise a chat message ``content`` value to plain text.

    Structured content (a list of parts) contributes the ``text`` of each
    part, joined by single spaces.  Non-text parts such as image references
    are ignored.
    """
    if val is None:
        return ""
    if isinstance(val, str):
        return val
    if isinstance(val, list):
        parts: list[str] = []
        for item in val:
            if isinstance(item, dict):
                text = item.get("text")
                if text:
                    parts.append(str(text))
            elif isinstance(item, str):
                parts.append(item)
        return " ".join(parts)
    return str(val)
