from __future__ import annotations

import typer
from rich import print

from . import __version__
from .commands.common import store_from_path
from .commands.config_cmds import config_set_cmd, config_show_cmd
from .commands.memory_cmds import (
    init_db_cmd,
    inject_cmd,
    observations_cmd,
    remember_cmd,
    search_cmd,
    search_messages_cmd,
    stats_cmd,
)
from .commands.session_cmds import session_end_cmd, session_start_cmd, sessions_cmd
from .store import MemoryStore

app = typer.Typer(help="sessionmem: session memory store, search and MCP tools")

DB_PATH_HELP = "Path to SQLite database"


def _store(db_path: str | None) -> MemoryStore:
    return store_from_path(db_path)


@app.command()
def init_db(db_path: str = typer.Option(None, help=DB_PATH_HELP)) -> None:
    """Create the SQLite database (no-op if it already exists)."""
    init_db_cmd(store_from_path=_store, db_path=db_path)


@app.command("session-start")
def session_start(
    title: str = typer.Argument(None, help="Session title"),
    workspace_id: int | None = typer.Option(None, help="Workspace reference"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """Start a new session."""
    session_start_cmd(
        store_from_path=_store, db_path=db_path, title=title, workspace_id=workspace_id
    )


@app.command("session-end")
def session_end(
    session_id: int,
    summary: str | None = typer.Option(None, help="Session summary"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """End a session."""
    session_end_cmd(
        store_from_path=_store, db_path=db_path, session_id=session_id, summary=summary
    )


@app.command()
def sessions(
    limit: int | None = typer.Option(None, help="Max sessions (defaults to config)"),
    active: bool = typer.Option(False, help="Only sessions that have not ended"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """List sessions, newest first."""
    sessions_cmd(
        store_from_path=_store, db_path=db_path, limit=limit, active=active, as_json=as_json
    )


@app.command()
def remember(
    session_id: int,
    content: str,
    observation_type: str | None = typer.Option(
        None, "--type", help="Observation type (guessed from the content when omitted)"
    ),
    tags: list[str] = typer.Option(None, "--tag", help="Repeat for multiple tags"),
    source: str | None = typer.Option(None, help="Where the observation came from"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """Save an observation to a session."""
    remember_cmd(
        store_from_path=_store,
        db_path=db_path,
        session_id=session_id,
        content=content,
        observation_type=observation_type,
        tags=tags,
        source=source,
    )


@app.command()
def observations(
    session_id: int,
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """List a session's observations, newest first."""
    observations_cmd(
        store_from_path=_store, db_path=db_path, session_id=session_id, as_json=as_json
    )


@app.command()
def search(
    query: str,
    limit: int | None = typer.Option(None, help="Max results"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """Search observations: exact matches first, then full-text matches."""
    search_cmd(
        store_from_path=_store, db_path=db_path, query=query, limit=limit, as_json=as_json
    )


@app.command("search-messages")
def search_messages(
    query: str,
    limit: int | None = typer.Option(None, help="Max results"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """Full-text search over conversation transcripts."""
    search_messages_cmd(
        store_from_path=_store, db_path=db_path, query=query, limit=limit, as_json=as_json
    )


@app.command()
def inject(
    utterance: str,
    db_path: str = typer.Option(None, help=DB_PATH_HELP),
) -> None:
    """Print the memory context block that would precede a chat turn."""
    inject_cmd(store_from_path=_store, db_path=db_path, utterance=utterance)


@app.command()
def stats(db_path: str = typer.Option(None, help=DB_PATH_HELP)) -> None:
    """Show database statistics."""
    stats_cmd(store_from_path=_store, db_path=db_path)


@app.command("config")
def config_show() -> None:
    """Print the effective configuration."""
    config_show_cmd()


@app.command("config-set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. search_limit"),
    value: str = typer.Argument(..., help="Value (parsed as JSON when possible)"),
) -> None:
    """Set a value in the config file."""
    config_set_cmd(key=key, value=value)


@app.command()
def mcp() -> None:
    """Run the MCP tool server over stdio."""
    from .mcp_server import run

    run()


def main() -> None:
    app()


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)
