from __future__ import annotations

from typing import Any


class SessionMemError(Exception):
    kind = "SessionMemError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InvalidArgument(SessionMemError, ValueError):
    kind = "InvalidArgument"


class NotFound(SessionMemError, LookupError):
    kind = "NotFound"


class StorageFailure(SessionMemError, RuntimeError):
    kind = "StorageFailure"


class ProtocolFault(SessionMemError):
    kind = "ProtocolFault"
