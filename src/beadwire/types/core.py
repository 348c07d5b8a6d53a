"""Foundational TypedDicts for Issue.to_dict() and transport results."""

from __future__ import annotations

from typing import NewType, NotRequired, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ClientConfig(TypedDict, total=False):
    """Shape of .beads/beadwire.json."""

    request_timeout: float
    connect_timeout: float
    poll_interval: float
    watch_interval: float
    actor: str
    auto_start: bool
    daemon_command: list[str]


class DependencyDict(TypedDict):
    issue_id: str
    depends_on_id: str
    type: str
    created_at: ISOTimestamp
    created_by: str


class _IssueFields(TypedDict):
    id: str
    title: str
    description: str
    status: str
    priority: int
    issue_type: str
    assignee: str | None
    owner: str | None
    labels: list[str]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    closed_at: ISOTimestamp | None
    close_reason: str | None
    dependency_count: int
    dependent_count: int


class IssueDict(_IssueFields):
    """Issue as returned by list, ready and show; blocker fields only when blocked."""

    blocked_by: NotRequired[list[str]]
    blocked_by_count: NotRequired[int]


class LinkedIssueDict(TypedDict):
    """Reduced issue projection seen from the other end of an edge."""

    id: str
    title: str
    status: str
    priority: int
    issue_type: str
    assignee: str | None
    labels: list[str]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    closed_at: ISOTimestamp | None
    dependency_type: str


class ShowIssueDict(IssueDict):
    dependencies: list[LinkedIssueDict]
    dependents: list[LinkedIssueDict]


class BlockedIssueDict(_IssueFields):
    """Issue dict as returned by ``blocked``; blocker fields always present."""

    blocked_by: list[str]
    blocked_by_count: int


class StatsSummary(TypedDict):
    total_issues: int
    open_issues: int
    in_progress_issues: int
    closed_issues: int
    blocked_issues: int
    deferred_issues: int
    ready_issues: int
    average_lead_time_hours: float | None


class Stats(TypedDict):
    summary: StatsSummary


class PingResult(TypedDict):
    message: str
    version: str


class HealthStatus(TypedDict, total=False):
    status: str
    version: str
    uptime_seconds: float
    db_response_ms: float
    active_connections: int
    max_connections: int
    error: str
