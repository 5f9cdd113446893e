from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Literal

from .. import db

SearchLayer = Literal["exact", "indexed", "fuzzy"]


@dataclass(frozen=True)
class Session:
    id: int
    title: str
    workspace_id: int | None
    started_at: str
    ended_at: str | None
    summary: str | None

    @property
    def active(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Session:
        return cls(
            id=int(row["id"]),
            title=str(row["title"]),
            workspace_id=row["workspace_id"],
            started_at=str(row["started_at"]),
            ended_at=row["ended_at"],
            summary=row["summary"],
        )


@dataclass(frozen=True)
class Observation:
    id: int
    session_id: int
    type: str
    content: str
    tags: list[str] = field(default_factory=list)
    source: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Observation:
        return cls(
            id=int(row["id"]),
            session_id=int(row["session_id"]),
            type=str(row["type"]),
            content=str(row["content"]),
            tags=db.from_json_list(row["tags"]),
            source=row["source"],
            created_at=str(row["created_at"]),
        )


@dataclass(frozen=True)
class ObservationMatch(Observation):
    layer: SearchLayer = "exact"
    score: float = 0.0

    @classmethod
    def from_observation(
        cls, observation: Observation, layer: SearchLayer, score: float = 0.0
    ) -> ObservationMatch:
        return cls(
            id=observation.id,
            session_id=observation.session_id,
            type=observation.type,
            content=observation.content,
            tags=list(observation.tags),
            source=observation.source,
            created_at=observation.created_at,
            layer=layer,
            score=score,
        )


@dataclass(frozen=True)
class Message:
    id: int
    conversation_id: int
    role: str
    content: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Message:
        return cls(
            id=int(row["id"]),
            conversation_id=int(row["conversation_id"]),
            role=str(row["role"]),
            content=str(row["content"]),
            created_at=str(row["created_at"]),
        )


@dataclass(frozen=True)
class MessageMatch(Message):
    conversation_title: str = ""
    score: float = 0.0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> MessageMatch:
        message = Message.from_row(row)
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            role=message.role,
            content=message.content,
            created_at=message.created_at,
            conversation_title=str(row["conversation_title"] or ""),
            score=float(row["score"] or 0.0),
        )
