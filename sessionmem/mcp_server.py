"""Model Context Protocol tool server for sessionmem.

Exposes session management, observation storage and search as named tools
with declared JSON Schema inputs. Arguments are validated before dispatch;
every call resolves to a single JSON text payload, either
``{"result": ...}`` or ``{"error": {"kind": ..., "message": ...}}`` with the
protocol error flag set.

Run over stdio with ``sessionmem-mcp`` or ``sessionmem mcp``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

import anyio
import mcp.types as types
from anyio import to_thread
from jsonschema import Draft7Validator
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from . import __version__
from .config import SessionMemConfig, load_config
from .db import DEFAULT_DB_PATH
from .errors import InvalidArgument, NotFound, ProtocolFault, SessionMemError
from .observation_types import ALLOWED_OBSERVATION_TYPES
from .sessions import SessionManager
from .store import MemoryStore

logger = logging.getLogger(__name__)

SERVER_NAME = "sessionmem"
ADHOC_SESSION_TITLE = "MCP session"
MAX_TOOL_LIMIT = 100

ToolHandler = Callable[["ToolServer", dict[str, Any]], Any]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False

    def payload(self) -> dict[str, Any]:
        return json.loads(self.text)


@dataclass
class ExternalServer:
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    enabled: bool = True


class ToolCallFailed(Exception):
    """Raised inside the MCP handler so the transport sets ``isError``."""


def _limit_schema(description: str) -> dict[str, Any]:
    return {
        "type": "integer",
        "description": description,
        "minimum": 0,
        "maximum": MAX_TOOL_LIMIT,
    }


def _memory_search(server: ToolServer, args: dict[str, Any]) -> Any:
    limit = args.get("limit", server.store.config.search_limit)
    return [asdict(item) for item in server.store.search(args["query"], limit)]


def _memory_save(server: ToolServer, args: dict[str, Any]) -> Any:
    session_id = args.get("session_id")
    adhoc = session_id is None
    if adhoc:
        session_id = server.sessions.create_session(ADHOC_SESSION_TITLE)
    try:
        observation_id = server.store.save_observation(
            session_id,
            args["type"],
            args["content"],
            tags=args.get("tags"),
            source=args.get("source"),
        )
    finally:
        if adhoc:
            server.sessions.end_session(session_id)
    return {"id": observation_id, "session_id": session_id}


def _session_list(server: ToolServer, args: dict[str, Any]) -> Any:
    if args.get("active_only"):
        sessions = server.sessions.get_active_sessions()
    else:
        sessions = server.sessions.get_all_sessions(args.get("limit"))
    return [asdict(session) for session in sessions]


def _session_create(server: ToolServer, args: dict[str, Any]) -> Any:
    session_id = server.sessions.create_session(args.get("title"), args.get("workspace_id"))
    return {"id": session_id}


def _session_end(server: ToolServer, args: dict[str, Any]) -> Any:
    server.sessions.end_session(args["session_id"], args.get("summary"))
    return {"id": args["session_id"], "ended": True}


def _message_search(server: ToolServer, args: dict[str, Any]) -> Any:
    limit = args.get("limit", server.store.config.search_limit)
    return [asdict(item) for item in server.store.search_messages(args["query"], limit)]


def _observation_list(server: ToolServer, args: dict[str, Any]) -> Any:
    session_id = args["session_id"]
    if server.store.get_session(session_id) is None:
        raise NotFound(f"session {session_id} does not exist")
    return [asdict(item) for item in server.store.get_observations(session_id)]


TOOL_TABLE: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="memory_search",
        description=(
            "Search stored observations. Verbatim substring matches come first "
            "(newest first), followed by ranked full-text matches."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Free-text search query."},
                "limit": _limit_schema("Maximum number of observations to return."),
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=_memory_search,
    ),
    ToolSpec(
        name="memory_save",
        description=(
            "Save an observation (decision, bugfix, learning, ...) to memory. "
            "Without session_id a short-lived session is opened and closed around the save."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "session_id": {"type": "integer", "description": "Owning session id."},
                "type": {
                    "type": "string",
                    "enum": list(ALLOWED_OBSERVATION_TYPES),
                    "description": "Observation type.",
                },
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "pattern": "\\S",
                    "description": "The observation content.",
                },
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags for the observation.",
                },
                "source": {"type": "string", "description": "Where the observation came from."},
            },
            "required": ["type", "content"],
            "additionalProperties": False,
        },
        handler=_memory_save,
    ),
    ToolSpec(
        name="session_list",
        description="List sessions, most recently started first.",
        input_schema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 0,
                    "description": (
                        "Maximum number of sessions to return (default 50). "
                        "Capped at the server's max_session_list setting (default 200)."
                    ),
                },
                "active_only": {
                    "type": "boolean",
                    "description": "Only return sessions that have not ended.",
                },
            },
            "additionalProperties": False,
        },
        handler=_session_list,
    ),
    ToolSpec(
        name="session_create",
        description="Start a new session and return its id.",
        input_schema={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Session title."},
                "workspace_id": {"type": "integer", "description": "Workspace reference."},
            },
            "additionalProperties": False,
        },
        handler=_session_create,
    ),
    ToolSpec(
        name="session_end",
        description="End a session, optionally recording a summary.",
        input_schema={
            "type": "object",
            "properties": {
                "session_id": {"type": "integer", "description": "Session id."},
                "summary": {"type": "string", "description": "Summary of the session."},
            },
            "required": ["session_id"],
            "additionalProperties": False,
        },
        handler=_session_end,
    ),
    ToolSpec(
        name="message_search",
        description="Full-text search over conversation transcripts.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Free-text search query."},
                "limit": _limit_schema("Maximum number of messages to return."),
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=_message_search,
    ),
    ToolSpec(
        name="observation_list",
        description="List every observation recorded in a session, newest first.",
        input_schema={
            "type": "object",
            "properties": {
                "session_id": {"type": "integer", "description": "Session id."},
            },
            "required": ["session_id"],
            "additionalProperties": False,
        },
        handler=_observation_list,
    ),
)


def _error_result(error: SessionMemError) -> ToolResult:
    return ToolResult(json.dumps({"error": error.to_dict()}, ensure_ascii=False), is_error=True)


def _format_validation_error(error: Any) -> str:
    location = ".".join(str(part) for part in error.absolute_path)
    if location:
        return f"{location}: {error.message}"
    return str(error.message)


class ToolServer:
    """Dispatches tool calls to the store and session manager.

    Stopped until :meth:`start` builds the catalog; :meth:`stop` returns it
    to the stopped state and it can be started again.
    """

    def __init__(
        self,
        store: MemoryStore,
        sessions: SessionManager | None = None,
        *,
        name: str = SERVER_NAME,
    ) -> None:
        self.store = store
        self.sessions = sessions or SessionManager(store)
        self.name = name
        self._catalog: dict[str, ToolSpec] = {}
        self._validators: dict[str, Draft7Validator] = {}
        self._external: dict[str, ExternalServer] = {}
        self._mcp: Server | None = None
        self._cancel_scope: anyio.CancelScope | None = None

    @property
    def running(self) -> bool:
        return self._mcp is not None

    def start(self) -> None:
        if self.running:
            logger.info("tool server %s already running", self.name)
            return
        catalog = {spec.name: spec for spec in TOOL_TABLE}
        for spec in catalog.values():
            Draft7Validator.check_schema(spec.input_schema)
        self._validators = {
            name: Draft7Validator(spec.input_schema) for name, spec in catalog.items()
        }
        self._catalog = catalog
        self._mcp = self._build_mcp_server()
        logger.info("tool server %s started with %d tools", self.name, len(catalog))

    def stop(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
            self._cancel_scope = None
        self._catalog = {}
        self._validators = {}
        self._external.clear()
        if self._mcp is not None:
            logger.info("tool server %s stopped", self.name)
        self._mcp = None

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "inputSchema": spec.input_schema,
            }
            for spec in self._catalog.values()
        ]

    def call_tool(self, name: Any, arguments: Any = None) -> ToolResult:
        # stop() may run on another thread; work from one snapshot.
        catalog, validators = self._catalog, self._validators
        if not self.running or not catalog:
            return _error_result(ProtocolFault("tool server is not running"))
        if not isinstance(name, str) or not name:
            return _error_result(ProtocolFault("tool name must be a non-empty string"))
        spec = catalog.get(name)
        if spec is None:
            return _error_result(ProtocolFault(f"unknown tool: {name}"))
        validator = validators.get(name)
        if validator is None:
            return _error_result(ProtocolFault("tool server is not running"))
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return _error_result(ProtocolFault("tool arguments must be an object"))
        errors = sorted(
            validator.iter_errors(arguments),
            key=lambda error: list(error.absolute_path),
        )
        if errors:
            return _error_result(InvalidArgument(_format_validation_error(errors[0])))
        logger.info("tool call %s", name)
        try:
            result = spec.handler(self, arguments)
        except SessionMemError as exc:
            logger.info("tool %s failed: %s: %s", name, exc.kind, exc.message)
            return _error_result(exc)
        return ToolResult(json.dumps({"result": result}, ensure_ascii=False))

    def add_external_server(
        self, name: str, command: str, args: list[str] | None = None, *, enabled: bool = True
    ) -> ExternalServer:
        server = ExternalServer(name=name, command=command, args=list(args or []), enabled=enabled)
        self._external[name] = server
        return server

    def remove_external_server(self, name: str) -> bool:
        return self._external.pop(name, None) is not None

    def list_external_servers(self) -> list[ExternalServer]:
        return [self._external[name] for name in sorted(self._external)]

    def _build_mcp_server(self) -> Server:
        server: Server = Server(self.name, version=__version__)

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return [
                types.Tool(
                    name=tool["name"],
                    description=tool["description"],
                    inputSchema=tool["inputSchema"],
                )
                for tool in self.list_tools()
            ]

        @server.call_tool(validate_input=False)
        async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
            result = await to_thread.run_sync(self.call_tool, name, arguments)
            if result.is_error:
                raise ToolCallFailed(result.text)
            return [types.TextContent(type="text", text=result.text)]

        return server

    async def serve_stdio(self) -> None:
        self.start()
        server = self._mcp
        if server is None:
            raise ProtocolFault("tool server failed to start")
        try:
            with anyio.CancelScope() as scope:
                self._cancel_scope = scope
                async with stdio_server() as (read_stream, write_stream):
                    await server.run(
                        read_stream, write_stream, server.create_initialization_options()
                    )
        finally:
            self._cancel_scope = None
            self.stop()


def build_server(config: SessionMemConfig | None = None) -> ToolServer:
    config = config or load_config()
    store = MemoryStore(config.db_path or DEFAULT_DB_PATH, config=config)
    return ToolServer(store)


def run() -> None:
    try:
        config = load_config()
    except ValueError as exc:
        raise SystemExit(f"sessionmem-mcp: invalid config file: {exc}") from exc
    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    server = build_server(config)
    try:
        anyio.run(server.serve_stdio)
    finally:
        server.store.close()


if __name__ == "__main__":
    run()
