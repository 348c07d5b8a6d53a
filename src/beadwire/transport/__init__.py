"""Backends that answer beadwire operations.

- base.py: the Transport protocol and operation classification
- protocol.py: newline-delimited JSON request/response codec
- daemon.py: one Unix-socket connection per call to the beads daemon
- snapshot.py: read-only answers from .beads/issues.jsonl held in memory
"""

from beadwire.transport.base import WRITE_OPERATIONS, Transport
from beadwire.transport.daemon import DaemonTransport
from beadwire.transport.snapshot import SnapshotTransport

__all__ = ["WRITE_OPERATIONS", "DaemonTransport", "SnapshotTransport", "Transport"]
