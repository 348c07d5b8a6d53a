"""beadwire: async client for beads issue workspaces with a read-only snapshot fallback."""

from beadwire.client import BeadsClient
from beadwire.core import CLIENT_VERSION as __version__
from beadwire.core import ClientOptions, Dependency, Issue
from beadwire.errors import (
    BeadsError,
    ConnectError,
    DaemonRequestError,
    DaemonRequiredError,
    DaemonTimeoutError,
    DaemonUnavailableError,
    IssueNotFoundError,
    NotConnectedError,
    ProtocolError,
    ReadOnlyError,
    UnsupportedOperationError,
)

__all__ = [
    "BeadsClient",
    "BeadsError",
    "ClientOptions",
    "ConnectError",
    "DaemonRequestError",
    "DaemonRequiredError",
    "DaemonTimeoutError",
    "DaemonUnavailableError",
    "Dependency",
    "Issue",
    "IssueNotFoundError",
    "NotConnectedError",
    "ProtocolError",
    "ReadOnlyError",
    "UnsupportedOperationError",
    "__version__",
]
