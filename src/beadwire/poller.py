"""Change detection for the daemon transport.

The daemon pushes nothing, so the poller samples ``stats`` on an interval and
compares a fingerprint of the result with the previous one. The first sample
only establishes the baseline.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
from typing import Any

from beadwire.notify import CallbackRegistry, ChangeCallback, Unsubscribe
from beadwire.transport.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


def fingerprint(result: Any) -> str:
    """SHA-256 of the canonical JSON encoding of ``result``."""
    canonical = json.dumps(result, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ChangePoller:
    def __init__(self, transport: Transport, *, operation: str = "stats") -> None:
        self.transport = transport
        self.operation = operation
        self.interval = DEFAULT_POLL_INTERVAL
        self._baseline: str | None = None
        self._changes = CallbackRegistry()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        return self._changes.subscribe(callback)

    def start(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Sample now, then every ``interval`` seconds. No-op while running."""
        if self.running:
            return
        self.interval = interval
        self._task = asyncio.get_running_loop().create_task(self._run(), name="beadwire-poller")

    async def stop(self) -> None:
        """Cancel the polling task. Safe when not running."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def poll(self) -> bool:
        """Take one sample. Returns True if a change was detected and fired.

        A failed sample is logged and skipped; the baseline is kept.
        """
        try:
            result = await self.transport.send(self.operation, {})
        except Exception as exc:
            logger.warning("Change poll failed: %s", exc, extra={"operation": self.operation, "error": str(exc)})
            return False

        current = fingerprint(result)
        previous, self._baseline = self._baseline, current
        if previous is None or previous == current:
            return False
        logger.debug("Change detected by %s poll", self.operation)
        self._changes.fire()
        return True

    def reset(self) -> None:
        """Forget the baseline; the next sample sets a new one silently."""
        self._baseline = None

    async def _run(self) -> None:
        while True:
            await self.poll()
            await asyncio.sleep(self.interval)
