from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .. import db
from ..config import SessionMemConfig, load_config
from ..errors import InvalidArgument, NotFound, StorageFailure
from ..observation_types import validate_observation_type
from . import search as store_search
from .types import MessageMatch, Observation, ObservationMatch, Session

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "Untitled Session"


class MemoryStore:
    """Durable store for sessions, observations and their full-text index.

    One connection is shared by every caller and guarded by a re-entrant
    lock. Writes run in ``BEGIN IMMEDIATE`` transactions, so a row and the
    FTS entry its trigger produces commit or roll back together.
    """

    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        check_same_thread: bool = False,
        config: SessionMemConfig | None = None,
    ):
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()
        self.config = config or load_config()
        self._lock = threading.RLock()
        try:
            self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
            self.schema_version = db.initialize_schema(self.conn)
        except sqlite3.Error as exc:
            raise StorageFailure(f"failed to open store at {self.db_path}: {exc}") from exc

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _now_iso() -> str:
        return dt.datetime.now(dt.UTC).isoformat()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageFailure(f"could not begin transaction: {exc}") from exc
            try:
                yield self.conn
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageFailure(f"transaction aborted: {exc}") from exc
            except BaseException:
                self._rollback()
                raise
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageFailure(f"commit failed: {exc}") from exc

    def _rollback(self) -> None:
        # SQLite has already rolled back after errors such as SQLITE_FULL.
        if not self.conn.in_transaction:
            return
        try:
            self.conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.warning("rollback failed", exc_info=True)

    def query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                raise StorageFailure(f"query failed: {exc}") from exc

    def create_session(self, title: str | None = None, workspace_id: int | None = None) -> int:
        title = (title or "").strip() or DEFAULT_SESSION_TITLE
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO sessions(title, workspace_id, started_at) VALUES (?, ?, ?)",
                (title, workspace_id, self._now_iso()),
            )
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise StorageFailure("Failed to create session")
        logger.info("created session %s (%s)", lastrowid, title)
        return int(lastrowid)

    def end_session(self, session_id: int, summary: str | None = None) -> None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT started_at FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None:
                raise NotFound(f"session {session_id} does not exist")
            # Never let a clock step move the end before the start.
            ended_at = max(self._now_iso(), str(row["started_at"]))
            conn.execute(
                "UPDATE sessions SET ended_at = ?, summary = ? WHERE id = ?",
                (ended_at, summary, session_id),
            )
        logger.info("ended session %s", session_id)

    def get_session(self, session_id: int) -> Session | None:
        rows = self.query("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return Session.from_row(rows[0]) if rows else None

    def list_sessions(self, limit: int = 50, *, active_only: bool = False) -> list[Session]:
        where = "WHERE ended_at IS NULL" if active_only else ""
        rows = self.query(
            f"SELECT * FROM sessions {where} ORDER BY started_at DESC, id DESC LIMIT ?",
            (max(int(limit), 0),),
        )
        return [Session.from_row(row) for row in rows]

    def save_observation(
        self,
        session_id: int,
        type: str,
        content: str,
        tags: Iterable[str] | None = None,
        source: str | None = None,
    ) -> int:
        observation_type = validate_observation_type(type)
        if not isinstance(content, str) or not content.strip():
            raise InvalidArgument("observation content must be a non-empty string")
        tag_list = sorted({str(tag).strip() for tag in (tags or []) if str(tag).strip()})
        source = (source or "").strip() or None
        with self.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if exists is None:
                raise NotFound(f"session {session_id} does not exist")
            cur = conn.execute(
                """
                INSERT INTO observations(session_id, type, content, tags, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    observation_type,
                    content,
                    db.to_json(tag_list),
                    source,
                    self._now_iso(),
                ),
            )
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise StorageFailure("Failed to save observation")
        return int(lastrowid)

    def get_observation(self, observation_id: int) -> Observation | None:
        rows = self.query("SELECT * FROM observations WHERE id = ?", (observation_id,))
        return Observation.from_row(rows[0]) if rows else None

    def get_observations(self, session_id: int) -> list[Observation]:
        rows = self.query(
            """
            SELECT * FROM observations
            WHERE session_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (session_id,),
        )
        return [Observation.from_row(row) for row in rows]

    def search(self, query: str, limit: int | None = None) -> list[ObservationMatch]:
        if limit is None:
            limit = self.config.search_limit
        return store_search.search(self, query, limit=limit)

    def search_messages(self, query: str, limit: int | None = None) -> list[MessageMatch]:
        if limit is None:
            limit = self.config.search_limit
        return store_search.search_messages(self, query, limit=limit)

    def stats(self) -> dict[str, Any]:
        sessions = self.query(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(CASE WHEN ended_at IS NULL THEN 1 ELSE 0 END), 0) AS active
            FROM sessions
            """
        )[0]
        by_type = self.query(
            "SELECT type, COUNT(*) AS count FROM observations GROUP BY type ORDER BY type"
        )
        messages = self.query("SELECT COUNT(*) AS total FROM messages")[0]
        observations = {row["type"]: int(row["count"]) for row in by_type}
        return {
            "database": {
                "path": str(self.db_path),
                "schema_version": self.schema_version,
            },
            "sessions": {"total": int(sessions["total"]), "active": int(sessions["active"])},
            "observations": {"total": sum(observations.values()), "by_type": observations},
            "messages": {"total": int(messages["total"])},
        }

    def close(self) -> None:
        with self._lock:
            self.conn.close()
