"""Tests for DaemonTransport against a real Unix-socket fake daemon and mock connections."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from beadwire import __version__
from beadwire.core import BEADS_DIR_NAME, SOCKET_FILENAME
from beadwire.errors import (
    BeadsError,
    DaemonRequestError,
    DaemonTimeoutError,
    DaemonUnavailableError,
    ProtocolError,
)
from beadwire.transport.base import Transport
from beadwire.transport.daemon import DaemonTransport
from beadwire.transport.protocol import Response
from tests.conftest import FakeDaemon


def _mock_connection(readline: Any) -> tuple[MagicMock, MagicMock]:
    reader = MagicMock()
    reader.readline = readline
    writer = MagicMock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return reader, writer


def _touch_socket(workspace: Path) -> Path:
    sock = workspace / BEADS_DIR_NAME / SOCKET_FILENAME
    sock.touch()
    return sock


class TestRoundTrip:
    async def test_returns_data(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.responses["list"] = [{"id": "bd-1"}]
        transport = DaemonTransport(workspace, actor="ci")
        assert await transport.send("list", {"status": "open"}) == [{"id": "bd-1"}]

    async def test_request_envelope(self, workspace: Path, daemon: FakeDaemon) -> None:
        transport = DaemonTransport(workspace, actor="ci")
        await transport.send("list", {"status": "open"})
        request = daemon.requests_for("list")[0]
        assert request.args == {"status": "open"}
        assert request.actor == "ci"
        assert request.cwd == str(workspace)
        assert request.client_version == __version__

    async def test_client_version_comes_from_module_constant(self, workspace: Path, daemon: FakeDaemon) -> None:
        transport = DaemonTransport(workspace)
        with patch("beadwire.transport.daemon.CLIENT_VERSION", "9.9.9"):
            await transport.send("ping", {})
        assert daemon.requests_for("ping")[0].client_version == "9.9.9"

    async def test_discovery_walks_up(self, workspace: Path, daemon: FakeDaemon) -> None:
        nested = workspace / "pkg" / "sub"
        nested.mkdir(parents=True)
        transport = DaemonTransport(nested)
        assert await transport.probe() == {"message": "pong", "version": "0.9.0"}

    async def test_one_connection_per_call(self, workspace: Path, daemon: FakeDaemon) -> None:
        transport = DaemonTransport(workspace)
        results = await asyncio.gather(*(transport.send("ping", {}) for _ in range(5)))
        assert len(results) == 5
        assert len(daemon.requests_for("ping")) == 5

    async def test_conforms_to_transport(self, workspace: Path) -> None:
        assert isinstance(DaemonTransport(workspace), Transport)


class TestFailures:
    async def test_no_socket(self, workspace: Path) -> None:
        with pytest.raises(DaemonUnavailableError, match="No daemon socket"):
            await DaemonTransport(workspace).send("ping", {})

    async def test_stale_socket_file(self, workspace: Path) -> None:
        _touch_socket(workspace)
        with pytest.raises(DaemonUnavailableError, match="Cannot reach daemon"):
            await DaemonTransport(workspace).send("ping", {})

    async def test_error_response_message_verbatim(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.errors["show"] = "issue bd-zz not found in database"
        with pytest.raises(DaemonRequestError) as exc_info:
            await DaemonTransport(workspace).send("show", {"id": "bd-zz"})
        assert str(exc_info.value) == "issue bd-zz not found in database"
        assert exc_info.value.operation == "show"

    async def test_invalid_json_response(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.raw["list"] = b"this is not json\n"
        with pytest.raises(ProtocolError, match="Invalid JSON"):
            await DaemonTransport(workspace).send("list", {})

    async def test_connection_closed_without_answer(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.raw["list"] = b""
        with pytest.raises(ProtocolError, match="without answering"):
            await DaemonTransport(workspace).send("list", {})

    async def test_oversized_line(self, workspace: Path) -> None:
        _touch_socket(workspace)

        async def too_long() -> bytes:
            raise ValueError("Separator is not found, and chunk exceed the limit")

        reader, writer = _mock_connection(too_long)
        transport = DaemonTransport(workspace, opener=AsyncMock(return_value=(reader, writer)))
        with pytest.raises(ProtocolError, match="exceeds"):
            await transport.send("list", {})
        writer.close.assert_called_once()

    async def test_closed_transport_refuses(self, workspace: Path, daemon: FakeDaemon) -> None:
        transport = DaemonTransport(workspace)
        await transport.close()
        await transport.close()
        with pytest.raises(DaemonUnavailableError, match="closed"):
            await transport.send("ping", {})


class TestTimeout:
    async def test_timeout_aborts_connection(self, workspace: Path) -> None:
        _touch_socket(workspace)

        async def hang() -> bytes:
            await asyncio.sleep(10)
            return b""

        reader, writer = _mock_connection(hang)
        opener = AsyncMock(return_value=(reader, writer))
        transport = DaemonTransport(workspace, timeout=0.05, opener=opener)

        with pytest.raises(DaemonTimeoutError) as exc_info:
            await transport.send("list", {})

        writer.transport.abort.assert_called_once()
        writer.close.assert_called_once()
        assert isinstance(exc_info.value, TimeoutError)
        assert isinstance(exc_info.value, BeadsError)
        assert exc_info.value.timeout == 0.05
        assert "timed out" in str(exc_info.value)

    async def test_timeout_before_connection(self, workspace: Path) -> None:
        _touch_socket(workspace)

        async def slow_open(path: str) -> Any:
            await asyncio.sleep(10)

        transport = DaemonTransport(workspace, timeout=0.05, opener=slow_open)
        with pytest.raises(DaemonTimeoutError):
            await transport.send("list", {})

    async def test_real_daemon_stall(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.delays["list"] = 5.0
        transport = DaemonTransport(workspace, timeout=0.1)
        with pytest.raises(DaemonTimeoutError):
            await transport.send("list", {})
        # A stalled call leaves nothing behind for the next one
        assert await transport.send("ping", {}) == {"message": "pong", "version": "0.9.0"}

    async def test_per_call_override(self, workspace: Path, daemon: FakeDaemon) -> None:
        daemon.delays["ping"] = 5.0
        transport = DaemonTransport(workspace, timeout=30.0)
        with pytest.raises(DaemonTimeoutError, match="0.05s"):
            await transport.probe(timeout=0.05)


class TestAutoStart:
    async def test_launches_daemon_once_when_socket_missing(self, workspace: Path) -> None:
        sock = workspace / BEADS_DIR_NAME / SOCKET_FILENAME
        proc = MagicMock()
        proc.poll.return_value = None

        def fake_popen(*args: Any, **kwargs: Any) -> MagicMock:
            sock.touch()
            return proc

        reader, writer = _mock_connection(AsyncMock(return_value=Response.ok({"message": "pong"}).encode()))
        transport = DaemonTransport(
            workspace,
            auto_start=True,
            daemon_command=["bd", "daemon", "--start"],
            opener=AsyncMock(return_value=(reader, writer)),
        )
        with patch("beadwire.transport.daemon.subprocess.Popen", side_effect=fake_popen) as popen:
            assert await transport.send("ping", {}) == {"message": "pong"}

        popen.assert_called_once()
        assert popen.call_args.args[0] == ["bd", "daemon", "--start"]
        assert popen.call_args.kwargs["start_new_session"] is True
        assert popen.call_args.kwargs["cwd"] == str(workspace)

    async def test_launch_failure_is_unavailable_and_not_retried(self, workspace: Path) -> None:
        transport = DaemonTransport(workspace, auto_start=True)
        with patch("beadwire.transport.daemon.subprocess.Popen", side_effect=FileNotFoundError("bd")) as popen:
            with pytest.raises(DaemonUnavailableError):
                await transport.send("ping", {})
            with pytest.raises(DaemonUnavailableError):
                await transport.send("ping", {})
        popen.assert_called_once()

    async def test_launcher_exit_code(self, workspace: Path) -> None:
        proc = MagicMock()
        proc.poll.return_value = 2
        transport = DaemonTransport(workspace, auto_start=True)
        with patch("beadwire.transport.daemon.subprocess.Popen", return_value=proc):
            with pytest.raises(DaemonUnavailableError):
                await transport.send("ping", {})

    async def test_disabled_by_default(self, workspace: Path) -> None:
        with patch("beadwire.transport.daemon.subprocess.Popen") as popen:
            with pytest.raises(DaemonUnavailableError):
                await DaemonTransport(workspace).send("ping", {})
        popen.assert_not_called()
