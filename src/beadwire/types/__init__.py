# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py or the transports; they import from here.
"""Typed contracts for beadwire results and operation arguments."""

from __future__ import annotations

from beadwire.types.core import (
    BlockedIssueDict,
    ClientConfig,
    DependencyDict,
    HealthStatus,
    ISOTimestamp,
    IssueDict,
    LinkedIssueDict,
    PingResult,
    ShowIssueDict,
    Stats,
    StatsSummary,
)
from beadwire.types.inputs import BlockedFilter, CreateInput, ListFilter, ReadyFilter, SortField, UpdateInput

__all__ = [
    "BlockedFilter",
    "BlockedIssueDict",
    "ClientConfig",
    "CreateInput",
    "DependencyDict",
    "HealthStatus",
    "ISOTimestamp",
    "IssueDict",
    "LinkedIssueDict",
    "ListFilter",
    "PingResult",
    "ReadyFilter",
    "ShowIssueDict",
    "SortField",
    "Stats",
    "StatsSummary",
    "UpdateInput",
]
