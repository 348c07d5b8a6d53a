"""Transport contract shared by the daemon and snapshot backends."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

# Operations that change the store. The snapshot transport refuses all of them
# and the client refuses them unless the daemon is the active transport.
WRITE_OPERATIONS: frozenset[str] = frozenset(
    {
        "create",
        "update",
        "close",
        "delete",
        "dep_add",
        "dep_remove",
        "label_add",
        "label_remove",
        "comment_add",
    }
)


@runtime_checkable
class Transport(Protocol):
    """A backend able to execute named operations.

    ``send`` raises a ``BeadsError`` subclass when the operation is unsupported,
    the backend is unreachable, or the backend reports a domain error.
    ``close`` releases held resources and is safe to call repeatedly.
    """

    async def send(self, operation: str, args: dict[str, Any]) -> Any: ...

    async def close(self) -> None: ...
