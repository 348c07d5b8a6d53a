"""TypedDict contracts for operation arguments.

Keys are the argument names sent over the wire to the daemon and accepted by
the snapshot transport. All keys are optional unless marked otherwise.
"""

from __future__ import annotations

from typing import Literal, TypedDict

SortField = Literal["priority", "created", "updated", "closed", "status", "id", "title", "type", "assignee"]


class ListFilter(TypedDict, total=False):
    status: str
    priority: int
    type: str
    assignee: str
    labels: list[str]
    labels_any: list[str]
    query: str
    sort: SortField
    reverse: bool
    limit: int


class ReadyFilter(ListFilter, total=False):
    unassigned: bool


class BlockedFilter(ListFilter, total=False):
    pass


class _CreateRequired(TypedDict):
    title: str


class CreateInput(_CreateRequired, total=False):
    description: str
    priority: int
    issue_type: str
    assignee: str
    labels: list[str]
    dependencies: list[str]


class UpdateInput(TypedDict, total=False):
    title: str
    description: str
    status: str
    priority: int
    issue_type: str
    assignee: str
    add_labels: list[str]
    remove_labels: list[str]
