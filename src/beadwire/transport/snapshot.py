"""Read-only transport backed by the .beads/issues.jsonl snapshot.

The whole file is parsed into an immutable ``IssueIndex``. Queries run against
whichever index is current; a reload builds a fresh index off the event loop
and swaps it in with a single assignment, so a query never sees a half-built
graph.

Live reload uses a watchdog observer on the snapshot's directory. Events are
handed from the observer thread to the event loop, where a burst of them
collapses into one reload.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from beadwire import analytics
from beadwire.core import Issue
from beadwire.errors import BeadsError, ReadOnlyError, UnsupportedOperationError
from beadwire.index import IssueIndex
from beadwire.notify import CallbackRegistry, ChangeCallback, Unsubscribe
from beadwire.transport.base import WRITE_OPERATIONS

logger = logging.getLogger(__name__)

DEFAULT_WATCH_INTERVAL = 0.5
_OBSERVER_JOIN_TIMEOUT = 5.0

# Reads of the file (including our own) raise opened/closed_no_write; skip them
_RELOAD_EVENTS: frozenset[str] = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_CLOSED}
)

FileStamp = tuple[int, int]  # (st_mtime_ns, st_size)


def parse_snapshot(raw: bytes, source: Path | str = "<snapshot>") -> tuple[list[Issue], int]:
    """Parse JSONL bytes into issues.

    Each line is handled on its own: lines that are not UTF-8, not JSON, not
    an object, or not a usable issue record are logged and skipped.

    Returns:
        (issues in file order, number of skipped lines)
    """
    issues: list[Issue] = []
    skipped = 0
    for lineno, raw_line in enumerate(raw.splitlines(), start=1):
        if not raw_line.strip():
            continue
        try:
            record = json.loads(raw_line)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Skipping malformed line %d in %s: %s", lineno, source, exc)
            skipped += 1
            continue
        if not isinstance(record, dict):
            logger.warning("Skipping line %d in %s: not a JSON object", lineno, source)
            skipped += 1
            continue
        try:
            issues.append(Issue.from_record(record))
        except ValueError as exc:
            logger.warning("Skipping line %d in %s: %s", lineno, source, exc)
            skipped += 1
    return issues, skipped


class _SnapshotEventHandler(FileSystemEventHandler):
    """Forwards write events on one file from watchdog's thread to the loop."""

    def __init__(self, target: Path, loop: asyncio.AbstractEventLoop, callback: Callable[[], None]) -> None:
        super().__init__()
        self._target = target
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELOAD_EVENTS:
            return
        paths = (event.src_path, getattr(event, "dest_path", ""))
        if not any(p and Path(os.fsdecode(p)) == self._target for p in paths):
            return
        try:
            self._loop.call_soon_threadsafe(self._callback)
        except RuntimeError:
            logger.debug("Dropping change event for %s: event loop is closed", self._target)


class SnapshotTransport:
    """Answers read operations from an in-memory copy of the snapshot file."""

    def __init__(self, path: Path | str, *, watch_interval: float = DEFAULT_WATCH_INTERVAL) -> None:
        self.path = Path(path)
        self.watch_interval = watch_interval
        self.index = IssueIndex()
        self.skipped_lines = 0
        self._stamp: FileStamp | None = None
        self._changes = CallbackRegistry()
        self._observer: BaseObserver | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._dirty = False

    def __repr__(self) -> str:
        return f"SnapshotTransport({str(self.path)!r}, issues={len(self.index)})"

    # -- loading ------------------------------------------------------------

    def _read_stamp(self) -> FileStamp | None:
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _build(self) -> tuple[IssueIndex, int, FileStamp | None]:
        # Stamp first: a write racing the read gets its own event and reload
        stamp = self._read_stamp()
        raw = self.path.read_bytes()
        issues, skipped = parse_snapshot(raw, self.path)
        return IssueIndex.build(issues), skipped, stamp

    def load(self) -> int:
        """Synchronously (re)load the snapshot and return the number of issues.

        Raises:
            FileNotFoundError: If the snapshot file does not exist.
            OSError: If it cannot be read.
        """
        index, skipped, stamp = self._build()
        self.index = index
        self.skipped_lines = skipped
        self._stamp = stamp
        logger.info("Loaded %d issues from %s (%d line(s) skipped)", len(index), self.path, skipped)
        return len(index)

    async def reload(self) -> bool:
        """Rebuild the index off the event loop and notify subscribers.

        On failure the previous index stays in place and nothing fires.
        """
        try:
            index, skipped, stamp = await asyncio.to_thread(self._build)
        except OSError as exc:
            logger.warning("Snapshot reload failed, keeping previous data: %s", exc, extra={"error": str(exc)})
            return False
        self.index = index
        self.skipped_lines = skipped
        self._stamp = stamp
        logger.debug("Reloaded %d issues from %s", len(index), self.path)
        self._changes.fire()
        return True

    # -- watching -----------------------------------------------------------

    @property
    def watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        """Register ``callback`` to run after each successful reload."""
        return self._changes.subscribe(callback)

    def start_watching(self, interval: float | None = None) -> None:
        """Watch the snapshot's directory and reload when the file changes.

        Events arriving within ``interval`` seconds of each other are coalesced
        into one reload. Idempotent while already watching. Requires a running
        event loop.

        Raises:
            OSError: If the snapshot's directory cannot be watched.
        """
        if self.watching:
            return
        if interval is not None:
            self.watch_interval = interval
        # Capture the running loop before watchdog starts its thread
        loop = asyncio.get_running_loop()
        directory = self.path.parent.resolve()
        handler = _SnapshotEventHandler(directory / self.path.name, loop, self._file_changed)
        observer = Observer()
        observer.schedule(handler, str(directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.debug("Watching %s for changes", self.path)

    async def stop_watching(self) -> None:
        observer, self._observer = self._observer, None
        task, self._reload_task = self._reload_task, None
        self._dirty = False
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join, _OBSERVER_JOIN_TIMEOUT)
        if task is not None:
            task.cancel()
            if task is not asyncio.current_task():
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _file_changed(self) -> None:
        # Runs on the event loop; a burst of events shares one pending reload
        if self._observer is None:
            return
        self._dirty = True
        if self._reload_task is None or self._reload_task.done():
            self._reload_task = asyncio.get_running_loop().create_task(
                self._settle_and_reload(), name=f"beadwire-reload:{self.path.name}"
            )

    async def _settle_and_reload(self) -> None:
        while self._dirty:
            self._dirty = False
            await asyncio.sleep(self.watch_interval)
            if self._dirty:
                continue
            stamp = self._read_stamp()
            if stamp is None or stamp == self._stamp:
                continue
            if not await self.reload():
                # Retry only once the file changes again
                self._stamp = stamp

    # -- Transport ----------------------------------------------------------

    async def send(self, operation: str, args: dict[str, Any]) -> Any:
        if operation in WRITE_OPERATIONS:
            raise ReadOnlyError(operation)
        index = self.index
        try:
            if operation == "list":
                return analytics.list_issues(index, args)
            if operation == "show":
                issue_id = args.get("id")
                if not isinstance(issue_id, str) or not issue_id:
                    raise BeadsError('Operation "show" requires an "id" argument')
                return index.show(issue_id)
            if operation == "ready":
                return analytics.ready_issues(index, args)
            if operation == "blocked":
                return analytics.blocked_issues(index, args)
            if operation == "stats":
                return analytics.compute_stats(index)
        except (ValueError, TypeError) as exc:
            raise BeadsError(f'Invalid arguments for "{operation}": {exc}') from exc
        raise UnsupportedOperationError(
            operation,
            f'Operation "{operation}" is not supported by the snapshot source',
            hint="Start the beads daemon for ping/health and other daemon-only operations",
        )

    async def close(self) -> None:
        """Stop watching and drop subscribers. Safe to call repeatedly."""
        await self.stop_watching()
        self._changes.clear()
