from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import anyio
import mcp.types as types
import pytest

from sessionmem.config import SessionMemConfig
from sessionmem.mcp_server import ADHOC_SESSION_TITLE, TOOL_TABLE, ToolServer
from sessionmem.store import MemoryStore


@pytest.fixture
def server(tmp_path: Path) -> ToolServer:
    tool_server = ToolServer(MemoryStore(tmp_path / "mem.sqlite"))
    tool_server.start()
    return tool_server


def _error(result) -> dict:
    assert result.is_error
    return result.payload()["error"]


def test_list_tools_matches_table(server: ToolServer) -> None:
    names = [tool["name"] for tool in server.list_tools()]
    assert names == [spec.name for spec in TOOL_TABLE]
    assert {
        "memory_search",
        "memory_save",
        "session_list",
        "session_create",
        "session_end",
        "message_search",
        "observation_list",
    } == set(names)
    for tool in server.list_tools():
        assert tool["inputSchema"]["type"] == "object"
        assert tool["description"]


def test_save_then_search(server: ToolServer) -> None:
    created = server.call_tool("session_create", {"title": "Demo"})
    session_id = created.payload()["result"]["id"]

    saved = server.call_tool(
        "memory_save",
        {
            "session_id": session_id,
            "type": "decision",
            "content": "use SQLite FTS5",
            "tags": ["db"],
        },
    )
    assert not saved.is_error
    observation_id = saved.payload()["result"]["id"]

    found = server.call_tool("memory_search", {"query": "SQLite"})
    results = found.payload()["result"]
    assert [item["id"] for item in results] == [observation_id]
    assert results[0]["layer"] == "exact"
    assert results[0]["tags"] == ["db"]


def test_invalid_type_is_rejected_without_insert(server: ToolServer) -> None:
    session_id = server.call_tool("session_create", {}).payload()["result"]["id"]

    result = server.call_tool(
        "memory_save", {"session_id": session_id, "type": "bogus", "content": "x"}
    )

    assert _error(result)["kind"] == "InvalidArgument"
    assert server.store.stats()["observations"]["total"] == 0


def test_end_unknown_session_is_not_found(server: ToolServer) -> None:
    server.call_tool("session_create", {"title": "only"})
    before = server.store.list_sessions()

    result = server.call_tool("session_end", {"session_id": 999})

    assert _error(result)["kind"] == "NotFound"
    assert server.store.list_sessions() == before


def test_session_end_and_list(server: ToolServer) -> None:
    first = server.call_tool("session_create", {"title": "one"}).payload()["result"]["id"]
    second = server.call_tool("session_create", {"title": "two"}).payload()["result"]["id"]

    ended = server.call_tool("session_end", {"session_id": first, "summary": "done"})
    assert ended.payload()["result"] == {"id": first, "ended": True}

    listed = server.call_tool("session_list", {}).payload()["result"]
    assert [item["id"] for item in listed] == [second, first]
    active = server.call_tool("session_list", {"active_only": True}).payload()["result"]
    assert [item["id"] for item in active] == [second]
    limited = server.call_tool("session_list", {"limit": 1}).payload()["result"]
    assert len(limited) == 1


def test_memory_save_without_session_uses_short_lived_session(server: ToolServer) -> None:
    result = server.call_tool("memory_save", {"type": "learning", "content": "TIL about WAL"})
    payload = result.payload()["result"]

    session = server.store.get_session(payload["session_id"])
    assert session is not None
    assert session.title == ADHOC_SESSION_TITLE
    assert not session.active
    assert server.store.get_observation(payload["id"]) is not None


def test_observation_list(server: ToolServer) -> None:
    session_id = server.call_tool("session_create", {}).payload()["result"]["id"]
    for content in ("first", "second"):
        server.call_tool(
            "memory_save", {"session_id": session_id, "type": "general", "content": content}
        )

    listed = server.call_tool("observation_list", {"session_id": session_id})
    assert [item["content"] for item in listed.payload()["result"]] == ["second", "first"]

    missing = server.call_tool("observation_list", {"session_id": 404})
    assert _error(missing)["kind"] == "NotFound"


def test_message_search_with_empty_transcripts(server: ToolServer) -> None:
    result = server.call_tool("message_search", {"query": "anything"})
    assert result.payload() == {"result": []}


@pytest.mark.parametrize(
    ("name", "arguments"),
    [
        ("memory_search", {}),
        ("memory_search", {"query": 5}),
        ("memory_search", {"query": "x", "limit": -1}),
        ("memory_search", {"query": "x", "extra": True}),
        ("memory_save", {"type": "general", "content": "   "}),
        ("memory_save", {"type": "general", "content": "x", "tags": "db"}),
        ("session_end", {"session_id": "7"}),
    ],
)
def test_schema_violations_are_invalid_argument(server: ToolServer, name, arguments) -> None:
    assert _error(server.call_tool(name, arguments))["kind"] == "InvalidArgument"


def test_unknown_tool_and_bad_envelope(server: ToolServer) -> None:
    assert _error(server.call_tool("drop_tables", {}))["kind"] == "ProtocolFault"
    assert _error(server.call_tool("", {}))["kind"] == "ProtocolFault"
    assert _error(server.call_tool("memory_search", ["query"]))["kind"] == "ProtocolFault"


def test_calls_fail_while_stopped(tmp_path: Path) -> None:
    tool_server = ToolServer(MemoryStore(tmp_path / "mem.sqlite"))
    assert not tool_server.running
    assert tool_server.list_tools() == []
    assert _error(tool_server.call_tool("session_list", {}))["kind"] == "ProtocolFault"


def test_start_is_idempotent_and_restartable(server: ToolServer) -> None:
    server.start()
    assert len(server.list_tools()) == len(TOOL_TABLE)

    server.stop()
    assert not server.running
    assert server.list_tools() == []

    server.start()
    assert server.running
    assert not server.call_tool("session_list", {}).is_error


def test_external_server_registry(server: ToolServer) -> None:
    server.add_external_server("zeta", "zeta-mcp")
    server.add_external_server("alpha", "alpha-mcp", ["--stdio"])
    server.add_external_server("zeta", "zeta-mcp-v2", enabled=False)

    listed = server.list_external_servers()
    assert [item.name for item in listed] == ["alpha", "zeta"]
    assert listed[0].args == ["--stdio"]
    assert listed[1].command == "zeta-mcp-v2"
    assert not listed[1].enabled

    assert server.remove_external_server("alpha")
    assert not server.remove_external_server("alpha")

    server.stop()
    assert server.list_external_servers() == []


def test_concurrent_tool_calls(server: ToolServer) -> None:
    session_id = server.call_tool("session_create", {}).payload()["result"]["id"]

    def save(i: int):
        return server.call_tool(
            "memory_save", {"session_id": session_id, "type": "general", "content": f"note {i}"}
        )

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(save, range(20)))

    assert not any(result.is_error for result in results)
    assert len({result.payload()["result"]["id"] for result in results}) == 20


def test_protocol_handler_sets_error_flag(server: ToolServer) -> None:
    mcp_server = server._mcp
    assert mcp_server is not None
    handler = mcp_server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="session_end", arguments={"session_id": 999}),
    )

    response = anyio.run(handler, request)

    assert response.root.isError
    assert '"NotFound"' in response.root.content[0].text


def test_stop_during_call_does_not_break_dispatch(server: ToolServer) -> None:
    class StoppingCatalog(dict):
        def get(self, key, default=None):
            server.stop()
            return super().get(key, default)

    server._catalog = StoppingCatalog(server._catalog)

    result = server.call_tool("session_list", {})

    assert not result.is_error
    assert not server.running
    assert _error(server.call_tool("session_list", {}))["kind"] == "ProtocolFault"


def test_session_list_limit_is_capped_by_config(tmp_path: Path) -> None:
    config = SessionMemConfig(max_session_list=2)
    tool_server = ToolServer(MemoryStore(tmp_path / "mem.sqlite", config=config))
    tool_server.start()
    for title in ("a", "b", "c"):
        tool_server.call_tool("session_create", {"title": title})

    listed = tool_server.call_tool("session_list", {"limit": 10}).payload()["result"]

    assert [item["title"] for item in listed] == ["c", "b"]
    schema = next(t for t in tool_server.list_tools() if t["name"] == "session_list")
    assert "max_session_list" in schema["inputSchema"]["properties"]["limit"]["description"]
