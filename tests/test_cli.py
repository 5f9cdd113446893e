import json
from pathlib import Path

from typer.testing import CliRunner

from sessionmem import __version__
from sessionmem.cli import app

runner = CliRunner()


def _invoke(db_path: Path, *args: str):
    return runner.invoke(app, [*args, "--db-path", str(db_path)])


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("init-db", "session-start", "remember", "search", "inject", "mcp"):
        assert command in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_init_db(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    result = _invoke(db_path, "init-db")
    assert result.exit_code == 0
    assert "Initialized database" in result.stdout
    assert db_path.exists()


def test_session_remember_search_flow(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    started = _invoke(db_path, "session-start", "Demo")
    assert started.exit_code == 0
    assert "Started session 1" in started.stdout

    remembered = _invoke(
        db_path, "remember", "1", "We decided to use SQLite FTS5", "--tag", "db"
    )
    assert remembered.exit_code == 0
    assert "(decision)" in remembered.stdout

    found = _invoke(db_path, "search", "SQLite", "--json")
    assert found.exit_code == 0
    payload = json.loads(found.stdout)
    assert payload[0]["content"] == "We decided to use SQLite FTS5"
    assert payload[0]["tags"] == ["db"]
    assert payload[0]["layer"] == "exact"

    listed = _invoke(db_path, "observations", "1", "--json")
    assert json.loads(listed.stdout)[0]["type"] == "decision"


def test_sessions_listing(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    assert "No sessions" in _invoke(db_path, "sessions").stdout

    _invoke(db_path, "session-start", "First")
    _invoke(db_path, "session-start", "Second")
    ended = _invoke(db_path, "session-end", "1", "--summary", "done")
    assert ended.exit_code == 0

    everything = json.loads(_invoke(db_path, "sessions", "--json").stdout)
    assert [item["title"] for item in everything] == ["Second", "First"]
    active = json.loads(_invoke(db_path, "sessions", "--active", "--json").stdout)
    assert [item["title"] for item in active] == ["Second"]


def test_errors_exit_nonzero(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    missing = _invoke(db_path, "session-end", "42")
    assert missing.exit_code == 1
    assert "NotFound" in missing.stdout

    _invoke(db_path, "session-start", "Demo")
    bogus = _invoke(db_path, "remember", "1", "text", "--type", "bogus")
    assert bogus.exit_code == 1
    assert "InvalidArgument" in bogus.stdout


def test_inject_prints_context_block(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _invoke(db_path, "session-start", "Demo")
    _invoke(db_path, "remember", "1", "Prefer pytest fixtures over setUp", "--type", "preference")

    result = _invoke(db_path, "inject", "pytest fixtures")

    assert result.exit_code == 0
    assert "<memory_context>" in result.stdout
    assert "[preference] Prefer pytest fixtures over setUp" in result.stdout

    empty = _invoke(db_path, "inject", "unrelated zzz")
    assert empty.stdout.strip() == ""


def test_stats(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _invoke(db_path, "session-start", "Demo")

    result = _invoke(db_path, "stats")

    assert result.exit_code == 0
    assert json.loads(result.stdout)["sessions"]["total"] == 1


def test_config_set_and_show(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "cli-config.json"
    monkeypatch.setenv("SESSIONMEM_CONFIG", str(config_path))

    result = runner.invoke(app, ["config-set", "search_limit", "7"])
    assert result.exit_code == 0
    runner.invoke(app, ["config-set", "log_level", "DEBUG"])
    assert json.loads(config_path.read_text()) == {"search_limit": 7, "log_level": "DEBUG"}

    shown = runner.invoke(app, ["config"])
    assert shown.exit_code == 0
    assert '"search_limit": 7' in shown.stdout

    unknown = runner.invoke(app, ["config-set", "observer_model", "x"])
    assert unknown.exit_code == 1
    assert "Unknown config key" in unknown.stdout


def test_invalid_config_file_exits_nonzero(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "broken.json"
    config_path.write_text("{not-json}")
    monkeypatch.setenv("SESSIONMEM_CONFIG", str(config_path))

    result = _invoke(tmp_path / "mem.sqlite", "sessions")

    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout
    assert not (tmp_path / "mem.sqlite").exists()
