from __future__ import annotations

import json
from dataclasses import asdict

import typer
from rich import print
from rich.markup import escape

from ..config import CONFIG_ENV_OVERRIDES, get_config_path
from .common import load_config_or_exit, print_json, read_config_or_exit, write_config_or_exit


def config_show_cmd() -> None:
    """Print the effective configuration and where it was read from."""

    config = load_config_or_exit()
    print(f"[dim]Config file: {escape(str(get_config_path()))}[/dim]")
    print_json(asdict(config))


def config_set_cmd(*, key: str, value: str) -> None:
    """Write one key to the config file, keeping the others."""

    if key not in CONFIG_ENV_OVERRIDES:
        allowed = ", ".join(sorted(CONFIG_ENV_OVERRIDES))
        print(f"[red]Unknown config key {escape(key)!r}. Known keys: {allowed}[/red]")
        raise typer.Exit(code=1)
    try:
        parsed: object = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    config_data = read_config_or_exit()
    config_data[key] = parsed
    write_config_or_exit(config_data)
    print(f"Set {escape(key)} in {escape(str(get_config_path()))}")
