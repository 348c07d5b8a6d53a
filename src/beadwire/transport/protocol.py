"""Wire codec for the beads daemon.

Newline-delimited JSON over a Unix socket, one request and one response per
connection. The daemon closes the socket after replying.

Request:  {"operation": str, "args": {...}, "actor": str, "cwd": str, "client_version": str}
Response: {"success": bool, "data": any, "error": str}
"""

from __future__ import annotations

import json
from typing import Any

from beadwire.errors import ProtocolError

# StreamReader line limit; list responses for large workspaces exceed asyncio's 64 KiB default
MAX_MESSAGE_SIZE = 16 * 1024 * 1024


class Request:
    """Daemon request message."""

    def __init__(
        self,
        operation: str,
        args: dict[str, Any],
        *,
        actor: str = "sdk",
        cwd: str = "",
        client_version: str = "",
    ):
        self.operation = operation
        self.args = args
        self.actor = actor
        self.cwd = cwd
        self.client_version = client_version

    def to_json(self) -> str:
        """Serialize to a JSON line."""
        data = {
            "operation": self.operation,
            "args": self.args,
            "actor": self.actor,
            "cwd": self.cwd,
            "client_version": self.client_version,
        }
        return json.dumps(data, default=str) + "\n"

    def encode(self) -> bytes:
        return self.to_json().encode("utf-8")

    @classmethod
    def from_json(cls, line: str | bytes) -> Request:
        """Deserialize from a JSON line.

        Raises:
            ProtocolError: If JSON is invalid or the operation is missing.
        """
        data = _decode_object(line, "Request")
        operation = data.get("operation")
        if not isinstance(operation, str) or not operation:
            raise ProtocolError("Request missing 'operation' field")
        args = data.get("args") or {}
        if not isinstance(args, dict):
            raise ProtocolError("Request 'args' must be a JSON object")
        return cls(
            operation,
            args,
            actor=str(data.get("actor") or ""),
            cwd=str(data.get("cwd") or ""),
            client_version=str(data.get("client_version") or ""),
        )


class Response:
    """Daemon response message."""

    def __init__(self, success: bool, data: Any = None, error: str | None = None):
        self.success = success
        self.data = data
        self.error = error

    def to_json(self) -> str:
        payload: dict[str, Any] = {"success": self.success, "data": self.data}
        if self.error is not None:
            payload["error"] = self.error
        return json.dumps(payload, default=str) + "\n"

    def encode(self) -> bytes:
        return self.to_json().encode("utf-8")

    @classmethod
    def from_json(cls, line: str | bytes) -> Response:
        """Deserialize from a JSON line.

        A response without ``success`` counts as a failure only if it carries
        an ``error``.

        Raises:
            ProtocolError: If JSON is invalid.
        """
        data = _decode_object(line, "Response")
        error = data.get("error")
        success = data.get("success")
        if success is None:
            success = not error
        return cls(success=bool(success), data=data.get("data"), error=str(error) if error else None)

    @classmethod
    def ok(cls, data: Any) -> Response:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, message: str) -> Response:
        return cls(success=False, error=message)

    def is_error(self) -> bool:
        return not self.success


def _decode_object(line: str | bytes, kind: str) -> dict[str, Any]:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"{kind} is not valid UTF-8: {e}") from e
    stripped = line.strip()
    if not stripped:
        raise ProtocolError(f"Empty {kind.lower()}")
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"{kind} must be a JSON object")
    return data
