from __future__ import annotations

import re
from typing import Final

from .errors import InvalidArgument

ALLOWED_OBSERVATION_TYPES: Final[tuple[str, ...]] = (
    "decision",
    "bugfix",
    "feature",
    "learning",
    "preference",
    "context",
    "general",
)

DEFAULT_OBSERVATION_TYPE: Final[str] = "general"

# First match wins.
_TYPE_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (re.compile(r"decided|decision|chose|choice", re.IGNORECASE), "decision"),
    (re.compile(r"fix(?:ed)?|bug|error|issue|resolved", re.IGNORECASE), "bugfix"),
    (re.compile(r"implement(?:ed)?|feature|add(?:ed)?|new", re.IGNORECASE), "feature"),
    (re.compile(r"learn(?:ed)?|\bTIL\b|found out|discovered", re.IGNORECASE), "learning"),
    (re.compile(r"prefer|like|want|always|never", re.IGNORECASE), "preference"),
    (re.compile(r"context|background|note", re.IGNORECASE), "context"),
)


def validate_observation_type(value: object) -> str:
    if not isinstance(value, str) or value not in ALLOWED_OBSERVATION_TYPES:
        raise InvalidArgument(
            f"Invalid observation type {value!r}. "
            f"Allowed types: {', '.join(ALLOWED_OBSERVATION_TYPES)}"
        )
    return value


def classify_observation_type(text: str) -> str:
    """Guess an observation type from free text using keyword heuristics."""
    if not text or not text.strip():
        return DEFAULT_OBSERVATION_TYPE
    for pattern, observation_type in _TYPE_PATTERNS:
        if pattern.search(text):
            return observation_type
    return DEFAULT_OBSERVATION_TYPE
