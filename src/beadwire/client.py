"""BeadsClient: one entry point over the daemon and snapshot transports.

``connect()`` prefers the daemon. When its socket cannot be reached the client
falls back to the read-only snapshot, so reads keep working without a daemon
while writes fail fast with ``DaemonRequiredError``.

Usage::

    async with BeadsClient() as client:
        await client.connect("/path/to/workspace")
        for issue in await client.ready():
            print(issue["id"], issue["title"])
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Literal

from beadwire.core import SNAPSHOT_FILENAME, ClientOptions, find_beads_dir
from beadwire.errors import BeadsError, ConnectError, DaemonRequiredError, NotConnectedError
from beadwire.notify import CallbackRegistry, ChangeCallback, Unsubscribe
from beadwire.poller import ChangePoller
from beadwire.transport.base import Transport
from beadwire.transport.daemon import DaemonTransport
from beadwire.transport.snapshot import SnapshotTransport
from beadwire.types.core import BlockedIssueDict, HealthStatus, IssueDict, PingResult, ShowIssueDict, Stats
from beadwire.types.inputs import BlockedFilter, CreateInput, ListFilter, ReadyFilter, UpdateInput

logger = logging.getLogger(__name__)

ConnectionState = Literal["disconnected", "daemon", "snapshot"]

# Module-level so the ``list`` method does not shadow the builtin in annotations
IssueList = list[IssueDict]
BlockedList = list[BlockedIssueDict]


class BeadsClient:
    """Async client for a beads workspace."""

    def __init__(self, options: ClientOptions | None = None) -> None:
        self.options = options or ClientOptions()
        self._state: ConnectionState = "disconnected"
        self._workspace_root: Path | None = None
        self._transport: Transport | None = None
        self._poller: ChangePoller | None = None
        self._source_unsubscribe: Unsubscribe | None = None
        self._changes = CallbackRegistry()

    def __repr__(self) -> str:
        return f"BeadsClient(state={self._state!r}, workspace_root={self._workspace_root!r})"

    async def __aenter__(self) -> BeadsClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # -- connection ---------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state != "disconnected"

    @property
    def workspace_root(self) -> Path | None:
        return self._workspace_root

    @property
    def transport(self) -> Transport | None:
        return self._transport

    async def connect(self, workspace_root: Path | str | None = None) -> ConnectionState:
        """Connect to the daemon, or fall back to the snapshot.

        Returns the resulting state.

        Raises:
            ConnectError: If neither the daemon nor the snapshot is usable.
        """
        if self.is_connected:
            await self.disconnect()

        root = Path(workspace_root or Path.cwd()).resolve()
        opts = self.options
        daemon = DaemonTransport(
            root,
            timeout=opts.request_timeout,
            actor=opts.actor,
            auto_start=opts.auto_start,
            daemon_command=opts.daemon_command,
        )
        try:
            await daemon.probe(opts.connect_timeout)
        except BeadsError as daemon_error:
            await daemon.close()
            logger.info(
                "Daemon unavailable for %s (%s), trying snapshot",
                root,
                daemon_error,
                extra={"workspace": str(root), "error": str(daemon_error)},
            )
            try:
                snapshot = await self._open_snapshot(root)
            except (BeadsError, OSError) as snapshot_error:
                raise ConnectError(str(root), daemon_error, snapshot_error) from snapshot_error
            self._transport = snapshot
            self._source_unsubscribe = snapshot.on_change(self._changes.fire)
            self._state = "snapshot"
        else:
            poller = ChangePoller(daemon)
            self._transport = daemon
            self._poller = poller
            self._source_unsubscribe = poller.on_change(self._changes.fire)
            poller.start(opts.poll_interval)
            self._state = "daemon"

        self._workspace_root = root
        logger.info(
            "Connected to %s via %s", root, self._state, extra={"transport": self._state, "workspace": str(root)}
        )
        return self._state

    async def _open_snapshot(self, root: Path) -> SnapshotTransport:
        beads_dir = find_beads_dir(root)
        snapshot = SnapshotTransport(beads_dir / SNAPSHOT_FILENAME, watch_interval=self.options.watch_interval)
        await asyncio.to_thread(snapshot.load)
        snapshot.start_watching(self.options.watch_interval)
        return snapshot

    async def disconnect(self) -> None:
        """Stop change detection and release the transport. Safe in any state."""
        poller, self._poller = self._poller, None
        unsubscribe, self._source_unsubscribe = self._source_unsubscribe, None
        transport, self._transport = self._transport, None
        if poller is not None:
            await poller.stop()
        if unsubscribe is not None:
            unsubscribe()
        if transport is not None:
            await transport.close()
        if self._state != "disconnected":
            logger.info("Disconnected from %s", self._workspace_root)
        self._state = "disconnected"
        self._workspace_root = None

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        """Run ``callback`` whenever the active source reports a change.

        Registrations survive reconnects. The returned callable removes
        exactly this registration.
        """
        return self._changes.subscribe(callback)

    # -- dispatch -----------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise NotConnectedError()
        return self._transport

    def _require_daemon(self, operation: str) -> Transport:
        transport = self._require_transport()
        if self._state != "daemon":
            raise DaemonRequiredError(operation)
        return transport

    async def _read(self, operation: str, args: dict[str, Any]) -> Any:
        return await self._require_transport().send(operation, args)

    async def _write(self, operation: str, args: dict[str, Any]) -> Any:
        transport = self._require_daemon(operation)
        return await transport.send(operation, args)

    # -- reads --------------------------------------------------------------

    async def ping(self) -> PingResult:
        return await self._read("ping", {})

    async def health(self) -> HealthStatus:
        return await self._read("health", {})

    async def list(self, filters: ListFilter | None = None) -> IssueList:
        return await self._read("list", dict(filters or {}))

    async def show(self, issue_id: str) -> ShowIssueDict:
        return await self._read("show", {"id": issue_id})

    async def ready(self, filters: ReadyFilter | None = None) -> IssueList:
        return await self._read("ready", dict(filters or {}))

    async def blocked(self, filters: BlockedFilter | None = None) -> BlockedList:
        return await self._read("blocked", dict(filters or {}))

    async def stats(self) -> Stats:
        return await self._read("stats", {})

    # -- writes (daemon only) -----------------------------------------------

    async def create(self, data: CreateInput) -> IssueDict:
        return await self._write("create", dict(data))

    async def update(self, issue_id: str, changes: UpdateInput) -> IssueDict:
        return await self._write("update", {"id": issue_id, **changes})

    async def close(self, issue_id: str, reason: str | None = None) -> IssueDict:
        """Close an issue. This is the issue operation, not ``disconnect()``."""
        args: dict[str, Any] = {"id": issue_id}
        if reason:
            args["reason"] = reason
        return await self._write("close", args)

    async def add_dependency(self, from_id: str, to_id: str, dep_type: str = "blocks") -> Any:
        """Record that ``from_id`` depends on ``to_id``."""
        return await self._write("dep_add", {"from_id": from_id, "to_id": to_id, "dep_type": dep_type})

    async def remove_dependency(self, from_id: str, to_id: str) -> Any:
        return await self._write("dep_remove", {"from_id": from_id, "to_id": to_id})

    async def add_label(self, issue_id: str, label: str) -> Any:
        return await self._write("label_add", {"id": issue_id, "label": label})

    async def remove_label(self, issue_id: str, label: str) -> Any:
        return await self._write("label_remove", {"id": issue_id, "label": label})

    async def add_comment(self, issue_id: str, text: str) -> Any:
        return await self._write("comment_add", {"id": issue_id, "text": text})
