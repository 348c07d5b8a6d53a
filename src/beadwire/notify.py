"""Change-callback registry shared by the poller, the snapshot watcher and the client."""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


class CallbackRegistry:
    """Ordered list of zero-argument callbacks.

    ``subscribe`` returns an unsubscribe callable that removes exactly that
    registration (by identity), once. ``fire`` iterates over a copy, so
    callbacks may subscribe or unsubscribe while it runs; a callback removed
    mid-fire that has not been reached yet is skipped.
    """

    def __init__(self) -> None:
        self._entries: list[list[ChangeCallback]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        # Boxed so two registrations of the same callable stay distinguishable
        entry = [callback]
        self._entries.append(entry)

        def unsubscribe() -> None:
            for idx, existing in enumerate(self._entries):
                if existing is entry:
                    del self._entries[idx]
                    return

        return unsubscribe

    def clear(self) -> None:
        self._entries.clear()

    def fire(self) -> None:
        for entry in list(self._entries):
            if not any(existing is entry for existing in self._entries):
                continue
            try:
                entry[0]()
            except Exception:
                logger.exception("Change callback %r raised", entry[0])
