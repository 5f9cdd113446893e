from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/sessionmem/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "db_path": "SESSIONMEM_DB",
    "context_limit": "SESSIONMEM_CONTEXT_LIMIT",
    "search_limit": "SESSIONMEM_SEARCH_LIMIT",
    "session_list_limit": "SESSIONMEM_SESSION_LIST_LIMIT",
    "max_session_list": "SESSIONMEM_MAX_SESSION_LIST",
    "fuzzy_search_enabled": "SESSIONMEM_FUZZY_SEARCH",
    "fuzzy_min_score": "SESSIONMEM_FUZZY_MIN_SCORE",
    "log_level": "SESSIONMEM_LOG_LEVEL",
}

_INT_KEYS = {"context_limit", "search_limit", "session_list_limit", "max_session_list"}
_BOOL_KEYS = {"fuzzy_search_enabled"}
_FLOAT_KEYS = {"fuzzy_min_score"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SESSIONMEM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class SessionMemConfig:
    db_path: str | None = None
    # Bounded so context injection cannot stall a chat turn.
    context_limit: int = 5
    search_limit: int = 10
    session_list_limit: int = 50
    max_session_list: int = 200
    fuzzy_search_enabled: bool = False
    fuzzy_min_score: float = 0.18
    log_level: str = "INFO"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> SessionMemConfig:
    """Defaults, then the JSON config file, then ``SESSIONMEM_*`` overrides.

    Raises ``ValueError`` when the config file is not a JSON object.
    """
    cfg = _apply_dict(SessionMemConfig(), read_config_file(path))
    return _apply_dict(cfg, get_env_overrides())


def _apply_dict(cfg: SessionMemConfig, data: dict[str, Any]) -> SessionMemConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        setattr(cfg, key, value)
    return cfg
