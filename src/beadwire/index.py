"""In-memory issue index with bidirectional dependency views.

The snapshot stores each edge once, on the dependent issue. ``IssueIndex.build``
derives everything else in a single pass over issues and edges:

- ``forward``: issue id → [(dependency id, edge type)], targets that exist
- ``reverse``: issue id → [(dependent id, edge type)]
- per-issue ``dependency_count`` / ``dependent_count`` / ``blocked_by``

An index is never mutated after ``build`` returns; reloads build a new one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from beadwire.core import ACTIVE_STATUSES, RESOLVED_STATUSES, Issue
from beadwire.errors import IssueNotFoundError
from beadwire.types.core import LinkedIssueDict, ShowIssueDict

logger = logging.getLogger(__name__)

Link = tuple[str, str]  # (other issue id, edge type)


@dataclass(frozen=True)
class IssueIndex:
    issues: dict[str, Issue] = field(default_factory=dict)
    forward: dict[str, list[Link]] = field(default_factory=dict)
    reverse: dict[str, list[Link]] = field(default_factory=dict)
    dangling_edges: int = 0

    @classmethod
    def build(cls, issues: Iterable[Issue]) -> IssueIndex:
        """Index issues (last one wins per id) and derive both edge directions."""
        by_id: dict[str, Issue] = {}
        for issue in issues:
            if issue.id in by_id:
                # Position stays where the id was first seen
                logger.debug("Duplicate issue record %s; keeping the later one", issue.id)
            by_id[issue.id] = issue

        forward: dict[str, list[Link]] = {iid: [] for iid in by_id}
        reverse: dict[str, list[Link]] = {iid: [] for iid in by_id}
        dangling = 0
        for issue in by_id.values():
            dangling += issue.unusable_edges
            for dep in issue.dependencies:
                if dep.depends_on_id not in by_id:
                    dangling += 1
                    continue
                forward[issue.id].append((dep.depends_on_id, dep.type))
                reverse[dep.depends_on_id].append((issue.id, dep.type))

        for iid, issue in by_id.items():
            issue.dependency_count = len(forward[iid])
            issue.dependent_count = len(reverse[iid])
            issue.blocked_by = [
                target
                for target, dep_type in forward[iid]
                if dep_type == "blocks" and by_id[target].status not in RESOLVED_STATUSES
            ]

        if dangling:
            logger.info("Ignored %d dependency edge(s) that are malformed or point at unknown issues", dangling)
        return cls(issues=by_id, forward=forward, reverse=reverse, dangling_edges=dangling)

    def __len__(self) -> int:
        return len(self.issues)

    def __iter__(self) -> Iterator[Issue]:
        return iter(self.issues.values())

    def get(self, issue_id: str) -> Issue:
        try:
            return self.issues[issue_id]
        except KeyError:
            raise IssueNotFoundError(issue_id) from None

    def linked_dependencies(self, issue_id: str) -> list[LinkedIssueDict]:
        return [self.issues[target].to_linked(dep_type) for target, dep_type in self.forward.get(issue_id, [])]

    def linked_dependents(self, issue_id: str) -> list[LinkedIssueDict]:
        return [self.issues[source].to_linked(dep_type) for source, dep_type in self.reverse.get(issue_id, [])]

    def show(self, issue_id: str) -> ShowIssueDict:
        """Full issue view with both linked sequences."""
        issue = self.get(issue_id)
        result: ShowIssueDict = {
            **issue.to_dict(),  # type: ignore[typeddict-item]
            "dependencies": self.linked_dependencies(issue_id),
            "dependents": self.linked_dependents(issue_id),
        }
        return result

    def is_ready(self, issue: Issue) -> bool:
        return issue.status in ACTIVE_STATUSES and not issue.blocked_by

    def is_blocked(self, issue: Issue) -> bool:
        return issue.status == "blocked" or (issue.status in ACTIVE_STATUSES and bool(issue.blocked_by))
