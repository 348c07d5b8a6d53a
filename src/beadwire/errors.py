"""Exception hierarchy for beadwire.

Every failure a caller can observe is a ``BeadsError``. Subclasses map onto
the ways an operation can fail: the id is unknown, the active source cannot
perform the operation, the daemon cannot be reached or does not answer in
time, or the daemon answers with an error of its own.
"""

from __future__ import annotations


class BeadsError(Exception):
    """Base exception for all beadwire errors.

    Attributes:
        message: User-facing error message.
        hint: Optional actionable suggestion.
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class IssueNotFoundError(BeadsError):
    """Raised when a query references an id absent from the active source."""

    def __init__(self, issue_id: str) -> None:
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id


class UnsupportedOperationError(BeadsError):
    """Raised when the active source does not know the requested operation."""

    def __init__(self, operation: str, message: str | None = None, hint: str | None = None) -> None:
        super().__init__(message or f"Unsupported operation: {operation}", hint=hint)
        self.operation = operation


class ReadOnlyError(UnsupportedOperationError):
    """Raised by the snapshot transport for any write operation."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            operation,
            f'Operation "{operation}" is not supported: the snapshot source is read-only',
            hint="Start the beads daemon to make changes",
        )


class DaemonRequiredError(UnsupportedOperationError):
    """Raised by the client when a write is attempted without a daemon connection."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            operation,
            f'Operation "{operation}" requires a daemon connection. Snapshot fallback is read-only.',
            hint="Start the beads daemon and reconnect",
        )


class NotConnectedError(BeadsError):
    """Raised when an operation is issued before ``connect()``."""

    def __init__(self) -> None:
        super().__init__("Not connected. Call connect() first.")


class DaemonUnavailableError(BeadsError):
    """Raised when the daemon socket cannot be discovered or opened."""


class DaemonTimeoutError(DaemonUnavailableError, TimeoutError):
    """Raised when a daemon call exceeds its deadline; the connection is aborted."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f'Daemon request "{operation}" timed out after {timeout:g}s')
        self.operation = operation
        self.timeout = timeout


class ProtocolError(BeadsError):
    """Raised when a daemon message cannot be framed or decoded."""


class DaemonRequestError(BeadsError):
    """Raised when the daemon answers with an explicit error payload.

    The daemon's message is kept verbatim.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


class ConnectError(BeadsError):
    """Raised when neither the daemon nor the snapshot could be used."""

    def __init__(self, workspace_root: str, daemon_error: BaseException, snapshot_error: BaseException) -> None:
        super().__init__(
            f"Could not connect to the beads daemon or load a snapshot for {workspace_root}. "
            f"Daemon: {daemon_error}. Snapshot: {snapshot_error}.",
            hint="Make sure the beads daemon is running or .beads/issues.jsonl exists",
        )
        self.daemon_error = daemon_error
        self.snapshot_error = snapshot_error
