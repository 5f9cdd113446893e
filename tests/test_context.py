from __future__ import annotations

from pathlib import Path

from sessionmem.context import CONTEXT_FOOTER, CONTEXT_HEADER, CONTEXT_INTRO, ContextInjector
from sessionmem.store import MemoryStore


class RecordingSearch:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int | None]] = []

    def search(self, query: str, limit: int | None = None) -> list:
        self.calls.append((query, limit))
        return []


def test_no_matches_returns_empty_string(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "mem.sqlite")
    injector = ContextInjector(store)

    assert injector.build_context("what did we decide about X") == ""


def test_unrelated_observations_sharing_common_words_are_not_injected(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "mem.sqlite")
    session_id = store.create_session("Demo")
    store.save_observation(session_id, "preference", "we always use tabs in Makefiles")
    store.save_observation(session_id, "general", "notes about the office coffee machine")

    assert ContextInjector(store).build_context("what did we decide about X") == ""


def test_context_block_lists_matches(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "mem.sqlite")
    session_id = store.create_session("Demo")
    store.save_observation(session_id, "decision", "use SQLite FTS5 for search")

    context = ContextInjector(store).build_context("SQLite")

    lines = context.strip().splitlines()
    assert lines[0] == CONTEXT_HEADER
    assert lines[1] == CONTEXT_INTRO
    assert lines[2].startswith("[decision] use SQLite FTS5 for search (")
    assert lines[-1] == CONTEXT_FOOTER


def test_result_count_is_bounded(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "mem.sqlite")
    session_id = store.create_session("Demo")
    for i in range(10):
        store.save_observation(session_id, "general", f"retry policy note {i}")

    context = ContextInjector(store, limit=3).build_context("retry policy")

    assert context.count("[general]") == 3


def test_blank_utterance_and_zero_limit_skip_search() -> None:
    search = RecordingSearch()

    assert ContextInjector(search).build_context("   ") == ""
    assert ContextInjector(search, limit=0).build_context("anything") == ""
    assert search.calls == []


def test_inject_prepends_context(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "mem.sqlite")
    session_id = store.create_session("Demo")
    store.save_observation(session_id, "preference", "always use tabs in Makefiles")
    injector = ContextInjector(store)

    prompt = "Makefiles tabs"
    injected = injector.inject(prompt)

    assert injected.startswith(CONTEXT_HEADER)
    assert injected.endswith("\n\n" + prompt)
    assert injector.inject("nothing relevant here zzz") == "nothing relevant here zzz"
