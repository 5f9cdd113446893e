from __future__ import annotations

from dataclasses import asdict

from rich import print
from rich.markup import escape

from ..sessions import SessionManager
from .common import open_store, print_json


def session_start_cmd(
    *, store_from_path, db_path: str | None, title: str | None, workspace_id: int | None
) -> None:
    """Start a session and print its id."""

    with open_store(store_from_path, db_path) as store:
        session_id = SessionManager(store).create_session(title, workspace_id)
        print(f"Started session {session_id}")


def session_end_cmd(
    *, store_from_path, db_path: str | None, session_id: int, summary: str | None
) -> None:
    """End a session."""

    with open_store(store_from_path, db_path) as store:
        SessionManager(store).end_session(session_id, summary)
        print(f"Ended session {session_id}")


def sessions_cmd(
    *, store_from_path, db_path: str | None, limit: int | None, active: bool, as_json: bool
) -> None:
    """List sessions, newest first."""

    with open_store(store_from_path, db_path) as store:
        manager = SessionManager(store)
        sessions = manager.get_active_sessions() if active else manager.get_all_sessions(limit)
        if as_json:
            print_json([asdict(s) for s in sessions])
            return
        if not sessions:
            print("[dim]No sessions[/dim]")
            return
        for session in sessions:
            state = "active" if session.active else f"ended {session.ended_at}"
            title = escape(session.title)
            print(f"[{session.id}] {title} ({state}) started {session.started_at}")
            if session.summary:
                print(f"    {escape(session.summary)}")
