"""Derived views over an IssueIndex: filtering, ready/blocked work and stats.

Pure functions; they never mutate the index. Lead time follows the same
definition as the daemon: hours from ``created_at`` to ``closed_at``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from beadwire.core import Issue
from beadwire.index import IssueIndex
from beadwire.types.core import BlockedIssueDict, IssueDict, Stats
from beadwire.types.inputs import ListFilter

_SORT_KEYS: dict[str, Callable[[Issue], Any]] = {
    "priority": lambda i: (i.priority, i.created_at),
    "created": lambda i: i.created_at,
    "updated": lambda i: i.updated_at,
    "closed": lambda i: i.closed_at or "",
    "status": lambda i: i.status,
    "id": lambda i: i.id,
    "title": lambda i: i.title.lower(),
    "type": lambda i: i.issue_type,
    "assignee": lambda i: i.assignee or "",
}


def _parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO timestamp, handling timezone-aware, naive and ``Z`` forms.

    Returns None if the timestamp cannot be parsed.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def lead_time(issue: Issue) -> float | None:
    """Lead time: hours from creation to close.

    Returns None for issues that are not closed or lack either timestamp.
    """
    if issue.status != "closed":
        return None
    created = _parse_iso(issue.created_at)
    closed = _parse_iso(issue.closed_at)
    if created is None or closed is None:
        return None
    return (closed - created).total_seconds() / 3600


def matches(issue: Issue, flt: ListFilter | dict[str, Any]) -> bool:
    """Whether ``issue`` satisfies every filter key present in ``flt``."""
    status = flt.get("status")
    if status and issue.status != status:
        return False
    priority = flt.get("priority")
    if priority is not None and issue.priority != int(priority):
        return False
    issue_type = flt.get("type")
    if issue_type and issue.issue_type != issue_type:
        return False
    assignee = flt.get("assignee")
    if assignee and issue.assignee != assignee:
        return False
    if flt.get("unassigned") and issue.assignee:
        return False
    labels = set(issue.labels)
    required = flt.get("labels")
    if required and not set(required) <= labels:
        return False
    any_of = flt.get("labels_any")
    if any_of and not labels & set(any_of):
        return False
    query = flt.get("query")
    if query and str(query).lower() not in issue.title.lower():
        return False
    return True


def select(issues: Iterable[Issue], flt: ListFilter | dict[str, Any]) -> list[Issue]:
    """Filter, optionally sort, then apply ``limit``."""
    result = [i for i in issues if matches(i, flt)]
    sort = flt.get("sort")
    if sort:
        key = _SORT_KEYS.get(str(sort))
        if key is None:
            msg = f"Unknown sort field: {sort}. Valid: {', '.join(_SORT_KEYS)}"
            raise ValueError(msg)
        result.sort(key=key, reverse=bool(flt.get("reverse")))
    elif flt.get("reverse"):
        result.reverse()
    limit = flt.get("limit")
    if limit is not None and int(limit) >= 0:
        result = result[: int(limit)]
    return result


def list_issues(index: IssueIndex, flt: ListFilter | dict[str, Any]) -> list[IssueDict]:
    return [i.to_dict() for i in select(index, flt)]


def ready_issues(index: IssueIndex, flt: ListFilter | dict[str, Any]) -> list[IssueDict]:
    """Open or in-progress issues with no unresolved ``blocks`` edge."""
    return [i.to_dict() for i in select((i for i in index if index.is_ready(i)), flt)]


def blocked_issues(index: IssueIndex, flt: ListFilter | dict[str, Any]) -> list[BlockedIssueDict]:
    """Issues with status ``blocked`` plus active issues with an unresolved blocker."""
    result: list[BlockedIssueDict] = []
    for issue in select((i for i in index if index.is_blocked(i)), flt):
        entry: BlockedIssueDict = {
            **issue.to_dict(),  # type: ignore[typeddict-item]
            "blocked_by": list(issue.blocked_by),
            "blocked_by_count": len(issue.blocked_by),
        }
        result.append(entry)
    return result


def compute_stats(index: IssueIndex) -> Stats:
    by_status: dict[str, int] = {}
    ready = 0
    blocked = 0
    lead_times: list[float] = []
    for issue in index:
        by_status[issue.status] = by_status.get(issue.status, 0) + 1
        if index.is_ready(issue):
            ready += 1
        if index.is_blocked(issue):
            blocked += 1
        lt = lead_time(issue)
        if lt is not None:
            lead_times.append(lt)

    return {
        "summary": {
            "total_issues": len(index),
            "open_issues": by_status.get("open", 0),
            "in_progress_issues": by_status.get("in_progress", 0),
            "closed_issues": by_status.get("closed", 0),
            "blocked_issues": blocked,
            "deferred_issues": by_status.get("deferred", 0),
            "ready_issues": ready,
            "average_lead_time_hours": round(sum(lead_times) / len(lead_times), 1) if lead_times else None,
        }
    }
