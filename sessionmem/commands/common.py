from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich import print
from rich import print_json as rich_print_json
from rich.markup import escape

from sessionmem.config import (
    SessionMemConfig,
    load_config,
    read_config_file,
    write_config_file,
)
from sessionmem.db import DEFAULT_DB_PATH
from sessionmem.errors import SessionMemError
from sessionmem.store import MemoryStore


def load_config_or_exit() -> SessionMemConfig:
    try:
        return load_config()
    except ValueError as exc:
        print(f"[red]Invalid config file: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def write_config_or_exit(data: dict[str, Any]) -> None:
    try:
        write_config_file(data)
    except OSError as exc:
        print(f"[red]Failed to write config: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def store_from_path(db_path: str | None) -> MemoryStore:
    config = load_config_or_exit()
    return MemoryStore(db_path or config.db_path or DEFAULT_DB_PATH, config=config)


@contextmanager
def open_store(
    store_factory: Callable[[str | None], MemoryStore], db_path: str | None
) -> Iterator[MemoryStore]:
    try:
        store = store_factory(db_path)
    except SessionMemError as exc:
        print(f"[red]{exc.kind}: {escape(exc.message)}[/red]")
        raise typer.Exit(code=1) from exc
    try:
        yield store
    except SessionMemError as exc:
        print(f"[red]{exc.kind}: {escape(exc.message)}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        store.close()


def compact(text: str, limit: int = 160) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


def print_json(data: object) -> None:
    rich_print_json(data=data)
