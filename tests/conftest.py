"""Shared pytest fixtures for beadwire tests."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import logging.handlers
import shutil
import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from beadwire.core import BEADS_DIR_NAME, SNAPSHOT_FILENAME, SOCKET_FILENAME
from beadwire.errors import ProtocolError
from beadwire.transport.protocol import Request, Response

# Representative workspace:
# - bd-a open, depends on bd-b (blocks) -> blocked while bd-b is open
# - bd-b open, assigned -> ready
# - bd-c closed after exactly 24 hours
# - bd-d status "blocked" with no dependencies
# - bd-e in_progress, blocks-depends on closed bd-c, related to bd-a -> ready
# - bd-f deferred
SAMPLE_RECORDS: list[dict[str, Any]] = [
    {
        "id": "bd-a",
        "title": "Wire up login",
        "status": "open",
        "priority": 1,
        "issue_type": "feature",
        "labels": ["auth", "ui"],
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-03T00:00:00Z",
        "dependencies": [
            {
                "issue_id": "bd-a",
                "depends_on_id": "bd-b",
                "type": "blocks",
                "created_at": "2024-01-01T00:00:00Z",
                "created_by": "alice",
            }
        ],
    },
    {
        "id": "bd-b",
        "title": "Design schema",
        "status": "open",
        "priority": 0,
        "issue_type": "task",
        "assignee": "alice",
        "labels": ["db"],
        "created_at": "2024-01-02T00:00:00Z",
        "updated_at": "2024-01-02T00:00:00Z",
    },
    {
        "id": "bd-c",
        "title": "Fix login crash",
        "status": "closed",
        "priority": 2,
        "issue_type": "bug",
        "labels": ["auth"],
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-02T00:00:00Z",
        "closed_at": "2024-01-02T00:00:00Z",
        "close_reason": "done",
    },
    {
        "id": "bd-d",
        "title": "Waiting on vendor",
        "status": "blocked",
        "priority": 3,
        "issue_type": "task",
        "created_at": "2024-01-04T00:00:00Z",
        "updated_at": "2024-01-04T00:00:00Z",
    },
    {
        "id": "bd-e",
        "title": "Polish login copy",
        "status": "in_progress",
        "priority": 2,
        "issue_type": "task",
        "assignee": "bob",
        "labels": ["ui"],
        "created_at": "2024-01-05T00:00:00Z",
        "updated_at": "2024-01-05T00:00:00Z",
        "dependencies": [
            {"issue_id": "bd-e", "depends_on_id": "bd-c", "type": "blocks"},
            {"issue_id": "bd-e", "depends_on_id": "bd-a", "type": "related"},
        ],
    },
    {
        "id": "bd-f",
        "title": "Someday",
        "status": "deferred",
        "priority": 4,
        "issue_type": "chore",
        "created_at": "2024-01-06T00:00:00Z",
        "updated_at": "2024-01-06T00:00:00Z",
    },
]


def write_snapshot(path: Path, records: list[dict[str, Any]], extra_lines: list[str] | None = None) -> None:
    """Write records as JSONL, optionally followed by raw lines."""
    lines = [json.dumps(r) for r in records]
    lines.extend(extra_lines or [])
    path.write_text("\n".join(lines) + "\n")


class FakeDaemon:
    """A real Unix-socket server speaking the daemon protocol.

    Answers from ``responses`` by operation; ``errors`` produce failure
    responses, ``raw`` is written verbatim, ``delays`` stall before replying.
    """

    def __init__(self, socket_path: Path) -> None:
        self.socket_path = socket_path
        self.requests: list[Request] = []
        self.responses: dict[str, Any] = {
            "ping": {"message": "pong", "version": "0.9.0"},
            "health": {"status": "healthy", "version": "0.9.0", "uptime_seconds": 12.5},
            "stats": {"summary": {"total_issues": 1}},
            "list": [],
        }
        self.errors: dict[str, str] = {}
        self.raw: dict[str, bytes] = {}
        self.delays: dict[str, float] = {}
        self._server: asyncio.Server | None = None
        self._handlers: set[asyncio.Task[Any]] = set()

    def requests_for(self, operation: str) -> list[Request]:
        return [r for r in self.requests if r.operation == operation]

    async def start(self) -> None:
        self._server = await asyncio.start_unix_server(self._handle, path=str(self.socket_path))

    async def stop(self) -> None:
        for task in list(self._handlers):
            task.cancel()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self.socket_path.unlink(missing_ok=True)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        assert task is not None
        self._handlers.add(task)
        try:
            line = await reader.readline()
            request = Request.from_json(line)
            self.requests.append(request)
            delay = self.delays.get(request.operation)
            if delay:
                await asyncio.sleep(delay)
            if request.operation in self.raw:
                writer.write(self.raw[request.operation])
            elif request.operation in self.errors:
                writer.write(Response.failure(self.errors[request.operation]).encode())
            else:
                writer.write(Response.ok(self.responses.get(request.operation)).encode())
            await writer.drain()
        except (ConnectionError, ProtocolError, asyncio.CancelledError):
            pass
        finally:
            self._handlers.discard(task)
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()


@pytest.fixture(autouse=True)
def _reset_beadwire_logger() -> Generator[None, None, None]:
    """Drop file handlers added by setup_logging so tests stay independent."""
    yield
    logger = logging.getLogger("beadwire")
    for h in logger.handlers[:]:
        if isinstance(h, logging.handlers.RotatingFileHandler):
            logger.removeHandler(h)
            h.close()


@pytest.fixture
def short_root() -> Generator[Path, None, None]:
    """A short temp directory. Unix socket paths are limited to ~104 bytes."""
    root = Path(tempfile.mkdtemp(prefix="bw-", dir="/tmp"))
    yield root
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def workspace(short_root: Path) -> Path:
    """A workspace root with .beads/issues.jsonl holding SAMPLE_RECORDS."""
    beads_dir = short_root / BEADS_DIR_NAME
    beads_dir.mkdir()
    write_snapshot(beads_dir / SNAPSHOT_FILENAME, SAMPLE_RECORDS)
    return short_root


@pytest.fixture
def snapshot_path(workspace: Path) -> Path:
    return workspace / BEADS_DIR_NAME / SNAPSHOT_FILENAME


@pytest.fixture
async def daemon(workspace: Path) -> AsyncGenerator[FakeDaemon, None]:
    """A fake daemon listening on the workspace's .beads/bd.sock."""
    fake = FakeDaemon(workspace / BEADS_DIR_NAME / SOCKET_FILENAME)
    await fake.start()
    yield fake
    await fake.stop()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
