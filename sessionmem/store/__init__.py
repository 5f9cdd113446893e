from __future__ import annotations

from ._store import DEFAULT_SESSION_TITLE, MemoryStore
from .types import Message, MessageMatch, Observation, ObservationMatch, Session

__all__ = [
    "DEFAULT_SESSION_TITLE",
    "MemoryStore",
    "Message",
    "MessageMatch",
    "Observation",
    "ObservationMatch",
    "Session",
]
