from __future__ import annotations

from dataclasses import asdict

from rich import print
from rich.markup import escape

from ..context import ContextInjector
from ..observation_types import classify_observation_type
from .common import compact, open_store, print_json


def init_db_cmd(*, store_from_path, db_path: str | None) -> None:
    """Create the SQLite database (no-op if it already exists)."""

    with open_store(store_from_path, db_path) as store:
        print(f"Initialized database at {store.db_path} (schema v{store.schema_version})")


def remember_cmd(
    *,
    store_from_path,
    db_path: str | None,
    session_id: int,
    content: str,
    observation_type: str | None,
    tags: list[str] | None,
    source: str | None,
) -> None:
    """Save an observation to a session."""

    with open_store(store_from_path, db_path) as store:
        resolved_type = observation_type or classify_observation_type(content)
        observation_id = store.save_observation(
            session_id, resolved_type, content, tags=tags, source=source
        )
        print(f"Stored observation {observation_id} ({resolved_type})")


def observations_cmd(
    *, store_from_path, db_path: str | None, session_id: int, as_json: bool
) -> None:
    """List a session's observations, newest first."""

    with open_store(store_from_path, db_path) as store:
        items = store.get_observations(session_id)
        if as_json:
            print_json([asdict(item) for item in items])
            return
        for item in items:
            tags = f" #{' #'.join(item.tags)}" if item.tags else ""
            print(f"[{item.id}] ({item.type}) {escape(compact(item.content))}{escape(tags)}")


def search_cmd(
    *, store_from_path, db_path: str | None, query: str, limit: int | None, as_json: bool
) -> None:
    """Search observations: exact matches first, then full-text matches."""

    with open_store(store_from_path, db_path) as store:
        results = store.search(query, limit)
        if as_json:
            print_json([asdict(item) for item in results])
            return
        for item in results:
            print(
                f"[{item.id}] ({item.type}) {escape(compact(item.content))}\n"
                f"layer={item.layer} score={item.score:.2f} created={item.created_at}\n"
            )


def search_messages_cmd(
    *, store_from_path, db_path: str | None, query: str, limit: int | None, as_json: bool
) -> None:
    """Full-text search over conversation transcripts."""

    with open_store(store_from_path, db_path) as store:
        results = store.search_messages(query, limit)
        if as_json:
            print_json([asdict(item) for item in results])
            return
        for item in results:
            print(
                f"[{item.id}] {escape(item.conversation_title)} ({item.role})\n"
                f"{escape(compact(item.content))}\n"
            )


def inject_cmd(*, store_from_path, db_path: str | None, utterance: str) -> None:
    """Print the memory context block that would precede a chat turn."""

    with open_store(store_from_path, db_path) as store:
        context = ContextInjector(store, limit=store.config.context_limit).build_context(utterance)
        if context:
            print(escape(context.strip()))


def stats_cmd(*, store_from_path, db_path: str | None) -> None:
    """Show database statistics."""

    with open_store(store_from_path, db_path) as store:
        print_json(store.stats())
