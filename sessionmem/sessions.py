from __future__ import annotations

import logging

from .errors import StorageFailure
from .store import MemoryStore, Session

logger = logging.getLogger(__name__)


class SessionManager:
    """Session lifecycle on top of a :class:`MemoryStore`."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def create_session(self, title: str | None = None, workspace_id: int | None = None) -> int:
        return self.store.create_session(title, workspace_id)

    def end_session(self, session_id: int, summary: str | None = None) -> None:
        self.store.end_session(session_id, summary)

    def get_session(self, session_id: int) -> Session | None:
        return self.store.get_session(session_id)

    def get_active_sessions(self) -> list[Session]:
        try:
            return self.store.list_sessions(
                limit=self.store.config.max_session_list, active_only=True
            )
        except StorageFailure:
            logger.warning("listing active sessions failed", exc_info=True)
            return []

    def get_all_sessions(self, limit: int | None = None) -> list[Session]:
        if limit is None:
            limit = self.store.config.session_list_limit
        limit = max(0, min(int(limit), self.store.config.max_session_list))
        try:
            return self.store.list_sessions(limit=limit)
        except StorageFailure:
            logger.warning("listing sessions failed", exc_info=True)
            return []
