from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, NamedTuple

from .observation_types import ALLOWED_OBSERVATION_TYPES

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".sessionmem" / "memory.sqlite"
BUSY_TIMEOUT_MS = 5000

_TYPE_CHECK = ", ".join(f"'{value}'" for value in ALLOWED_OBSERVATION_TYPES)


class Migration(NamedTuple):
    version: int
    description: str
    statements: list[str]


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="sessions and observations",
        statements=[
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL DEFAULT 'Untitled Session',
                workspace_id INTEGER,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                summary TEXT,
                CHECK (ended_at IS NULL OR ended_at >= started_at)
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS observations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL REFERENCES sessions(id),
                type TEXT NOT NULL CHECK (type IN ({_TYPE_CHECK})),
                content TEXT NOT NULL CHECK (length(trim(content)) > 0),
                tags TEXT NOT NULL DEFAULT '[]',
                source TEXT,
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS observations_fts USING fts5(
                content,
                tags,
                content='observations',
                content_rowid='id',
                tokenize='porter unicode61'
            )
            """,
            """
            CREATE TRIGGER IF NOT EXISTS observations_ai AFTER INSERT ON observations BEGIN
                INSERT INTO observations_fts(rowid, content, tags)
                VALUES (new.id, new.content, new.tags);
            END
            """,
            """
            CREATE TRIGGER IF NOT EXISTS observations_ad AFTER DELETE ON observations BEGIN
                INSERT INTO observations_fts(observations_fts, rowid, content, tags)
                VALUES ('delete', old.id, old.content, old.tags);
            END
            """,
            """
            CREATE TRIGGER IF NOT EXISTS observations_au AFTER UPDATE ON observations BEGIN
                INSERT INTO observations_fts(observations_fts, rowid, content, tags)
                VALUES ('delete', old.id, old.content, old.tags);
                INSERT INTO observations_fts(rowid, content, tags)
                VALUES (new.id, new.content, new.tags);
            END
            """,
            "CREATE INDEX IF NOT EXISTS idx_observations_session ON observations(session_id)",
            "CREATE INDEX IF NOT EXISTS idx_observations_type ON observations(type)",
            "CREATE INDEX IF NOT EXISTS idx_observations_created ON observations(created_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_sessions_workspace ON sessions(workspace_id)",
            "CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at DESC)",
        ],
    ),
    Migration(
        version=2,
        description="conversation transcripts",
        statements=[
            """
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL DEFAULT 'New Conversation',
                workspace_id INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
                content TEXT NOT NULL,
                tokens_used INTEGER,
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
                content,
                content='messages',
                content_rowid='id',
                tokenize='porter unicode61'
            )
            """,
            """
            CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
                INSERT INTO messages_fts(rowid, content) VALUES (new.id, new.content);
            END
            """,
            """
            CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, content)
                VALUES ('delete', old.id, old.content);
            END
            """,
            """
            CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE ON messages BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, content)
                VALUES ('delete', old.id, old.content);
                INSERT INTO messages_fts(rowid, content) VALUES (new.id, new.content);
            END
            """,
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)",
        ],
    ),
]

SCHEMA_VERSION = MIGRATIONS[-1].version


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    if str(db_path) == ":memory:":
        conn = sqlite3.connect(":memory:", check_same_thread=check_same_thread)
    else:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    # Transactions are opened explicitly with BEGIN IMMEDIATE.
    conn.isolation_level = None
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    try:
        row = conn.execute("PRAGMA journal_mode = WAL").fetchone()
    except sqlite3.OperationalError:
        row = conn.execute("PRAGMA journal_mode = DELETE").fetchone()
    if row is not None and str(row[0]).lower() != "wal":
        logger.debug("WAL unavailable for %s, using %s journal", db_path, row[0])
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def get_schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def initialize_schema(conn: sqlite3.Connection) -> int:
    """Apply pending migrations and return the resulting schema version.

    Each migration runs in its own transaction and bumps ``user_version``
    only when all of its statements succeed, so a failed migration is retried
    on the next open.
    """
    current = get_schema_version(conn)
    for migration in MIGRATIONS:
        if migration.version <= current:
            continue
        conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(f"PRAGMA user_version = {int(migration.version)}")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
        current = migration.version
        logger.info("applied migration %s: %s", migration.version, migration.description)
    return current


def to_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


def from_json_list(text: str | None) -> list[str]:
    if not text:
        return []
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]
