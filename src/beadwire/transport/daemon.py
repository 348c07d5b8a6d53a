"""Daemon transport: one Unix-socket round trip per operation.

Every ``send`` discovers the socket, connects, writes one request line, reads
one response line and disconnects. Nothing is shared between calls, so a hung
call cannot affect another one. The whole round trip is bound by a deadline;
on expiry the connection is aborted rather than closed gracefully.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import subprocess
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from beadwire.core import CLIENT_VERSION, find_socket_path
from beadwire.errors import (
    DaemonRequestError,
    DaemonTimeoutError,
    DaemonUnavailableError,
    ProtocolError,
)
from beadwire.transport.protocol import MAX_MESSAGE_SIZE, Request, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_DAEMON_COMMAND = ("bd", "daemon", "--start")
# How long to wait for the socket to appear after launching the daemon
START_WAIT = 3.0
START_POLL_INTERVAL = 0.1

Opener = Callable[[str], Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


async def open_unix_connection(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    return await asyncio.open_unix_connection(path, limit=MAX_MESSAGE_SIZE)


class DaemonTransport:
    """Transport that forwards operations to the beads daemon."""

    def __init__(
        self,
        workspace_root: Path | str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        actor: str = "sdk",
        auto_start: bool = False,
        daemon_command: list[str] | tuple[str, ...] = DEFAULT_DAEMON_COMMAND,
        opener: Opener | None = None,
    ) -> None:
        """Initialize the transport. No connection is opened here.

        Args:
            workspace_root: Directory at or below the one holding .beads/.
            timeout: Deadline in seconds for each round trip.
            actor: Actor name recorded by the daemon for mutations.
            auto_start: Launch the daemon once if its socket is missing.
            daemon_command: Command used to launch the daemon.
            opener: Coroutine returning (reader, writer) for a socket path.
        """
        self.workspace_root = Path(workspace_root)
        self.timeout = timeout
        self.actor = actor
        self.auto_start = auto_start
        self.daemon_command = list(daemon_command)
        self._opener: Opener = opener or open_unix_connection
        self._start_attempted = False
        self._closed = False

    def __repr__(self) -> str:
        return f"DaemonTransport({str(self.workspace_root)!r})"

    @property
    def socket_path(self) -> Path | None:
        return find_socket_path(self.workspace_root)

    async def _resolve_socket_path(self) -> Path:
        path = self.socket_path
        if path is None and self.auto_start:
            path = await self._start_daemon()
        if path is None:
            raise DaemonUnavailableError(
                f"No daemon socket found at or above {self.workspace_root}",
                hint="Start the daemon with 'bd daemon --start'",
            )
        return path

    async def _start_daemon(self) -> Path | None:
        """Launch the daemon once and wait briefly for its socket. Best effort."""
        if self._start_attempted:
            return None
        self._start_attempted = True

        logger.info("Daemon socket not found, starting: %s", " ".join(self.daemon_command))
        try:
            proc = subprocess.Popen(
                self.daemon_command,
                cwd=str(self.workspace_root),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("Failed to start daemon: %s", exc)
            return None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + START_WAIT
        while loop.time() < deadline:
            path = self.socket_path
            if path is not None:
                return path
            exit_code = proc.poll()
            if exit_code not in (None, 0):
                logger.warning("Daemon launcher exited with code %d", exit_code)
                return None
            await asyncio.sleep(START_POLL_INTERVAL)
        return self.socket_path

    async def send(self, operation: str, args: dict[str, Any], *, timeout: float | None = None) -> Any:
        """Execute one operation on the daemon and return its ``data`` payload.

        Raises:
            DaemonUnavailableError: Socket missing, refused, or transport closed.
            DaemonTimeoutError: No response within the deadline.
            ProtocolError: The response could not be framed or decoded.
            DaemonRequestError: The daemon answered with an error.
        """
        if self._closed:
            raise DaemonUnavailableError("Daemon transport is closed")
        deadline = self.timeout if timeout is None else timeout
        socket_path = await self._resolve_socket_path()

        request = Request(
            operation,
            args,
            actor=self.actor,
            cwd=str(self.workspace_root),
            client_version=CLIENT_VERSION,
        )
        started = time.monotonic()
        writer: asyncio.StreamWriter | None = None
        try:
            async with asyncio.timeout(deadline):
                reader, writer = await self._opener(str(socket_path))
                writer.write(request.encode())
                await writer.drain()
                line = await reader.readline()
        except TimeoutError as e:
            if writer is not None:
                writer.transport.abort()
            logger.warning(
                "Daemon request %s timed out after %gs",
                operation,
                deadline,
                extra={"operation": operation, "error": "timeout"},
            )
            raise DaemonTimeoutError(operation, deadline) from e
        except asyncio.CancelledError:
            if writer is not None:
                writer.transport.abort()
            raise
        except ValueError as e:
            # StreamReader.readline() raises ValueError past the line limit
            raise ProtocolError(f"Daemon response for {operation} exceeds {MAX_MESSAGE_SIZE} bytes") from e
        except OSError as e:
            raise DaemonUnavailableError(f"Cannot reach daemon at {socket_path}: {e}") from e
        finally:
            if writer is not None:
                await _close_writer(writer)

        if not line:
            raise ProtocolError(f"Daemon closed the connection without answering {operation}")
        response = Response.from_json(line)

        duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            "Daemon %s answered in %.1fms",
            operation,
            duration_ms,
            extra={"operation": operation, "duration_ms": round(duration_ms, 1)},
        )
        if response.is_error():
            raise DaemonRequestError(operation, response.error or f'Daemon rejected "{operation}"')
        return response.data

    async def probe(self, timeout: float = 1.0) -> Any:
        """Ping the daemon with a short deadline."""
        return await self.send("ping", {}, timeout=timeout)

    async def close(self) -> None:
        """Refuse further calls. No connection outlives a call, so nothing else to release."""
        self._closed = True


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
