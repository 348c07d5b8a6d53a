"""Data model, project discovery and configuration for beadwire.

Convention-based discovery: each workspace has a `.beads/` directory at or
above its root containing `bd.sock` (the daemon's Unix socket, present while
the daemon runs), `issues.jsonl` (the snapshot export) and, optionally,
`beadwire.json` (client configuration).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

from beadwire.types.core import ClientConfig, DependencyDict, IssueDict, LinkedIssueDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

BEADS_DIR_NAME = ".beads"
SOCKET_FILENAME = "bd.sock"
SNAPSHOT_FILENAME = "issues.jsonl"
CONFIG_FILENAME = "beadwire.json"

# Statuses that make an issue eligible for ready work.
ACTIVE_STATUSES: frozenset[str] = frozenset({"open", "in_progress"})
# A blocker in one of these statuses no longer blocks.
RESOLVED_STATUSES: frozenset[str] = frozenset({"closed"})

DEPENDENCY_TYPES: tuple[str, ...] = ("blocks", "parent-child", "related", "discovered-from")

try:
    CLIENT_VERSION = version("beadwire")
except PackageNotFoundError:
    CLIENT_VERSION = "0.0.0-dev"


def _walk_up(start: Path | None) -> list[Path]:
    current = (start or Path.cwd()).resolve()
    return [current, *current.parents]


def find_beads_dir(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for a .beads/ directory.

    Returns the .beads/ directory path (not the workspace root).
    """
    candidates = _walk_up(start)
    for parent in candidates:
        candidate = parent / BEADS_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {BEADS_DIR_NAME}/ directory found in {candidates[0]} or any parent"
    raise FileNotFoundError(msg)


def find_socket_path(start: Path | None = None) -> Path | None:
    """Return the first .beads/bd.sock found walking up from start, or None."""
    for parent in _walk_up(start):
        candidate = parent / BEADS_DIR_NAME / SOCKET_FILENAME
        if candidate.exists():
            return candidate
    return None


def find_snapshot_path(start: Path | None = None) -> Path | None:
    """Return the first .beads/issues.jsonl found walking up from start, or None."""
    for parent in _walk_up(start):
        candidate = parent / BEADS_DIR_NAME / SNAPSHOT_FILENAME
        if candidate.is_file():
            return candidate
    return None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def read_config(beads_dir: Path) -> ClientConfig:
    """Read .beads/beadwire.json. Returns an empty config if missing or corrupt."""
    config_path = beads_dir / CONFIG_FILENAME
    if not config_path.exists():
        return ClientConfig()
    try:
        data = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return ClientConfig()
    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object, using defaults", config_path)
        return ClientConfig()
    result: ClientConfig = data  # type: ignore[assignment]
    return result


def write_config(beads_dir: Path, config: dict[str, Any] | ClientConfig) -> None:
    """Write .beads/beadwire.json."""
    config_path = beads_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


@dataclass
class ClientOptions:
    """Tunables for BeadsClient. Times are in seconds."""

    request_timeout: float = 5.0
    connect_timeout: float = 1.0
    poll_interval: float = 2.0
    watch_interval: float = 0.5
    actor: str = "sdk"
    auto_start: bool = False
    daemon_command: list[str] = field(default_factory=lambda: ["bd", "daemon", "--start"])

    @classmethod
    def from_config(cls, config: ClientConfig) -> ClientOptions:
        """Build options from a config dict, ignoring unknown or mistyped keys."""
        known = {f.name: f for f in fields(cls)}
        defaults = cls()
        kwargs: dict[str, Any] = {}
        for key, value in config.items():
            if key not in known:
                logger.warning("Ignoring unknown config key '%s'", key)
                continue
            expected = type(getattr(defaults, key))
            if expected is float and isinstance(value, int) and not isinstance(value, bool):
                value = float(value)
            if not isinstance(value, expected):
                logger.warning("Ignoring config key '%s': expected %s, got %r", key, expected.__name__, value)
                continue
            kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_workspace(cls, workspace_root: Path) -> ClientOptions:
        """Options from the workspace's .beads/beadwire.json, or defaults."""
        try:
            beads_dir = find_beads_dir(workspace_root)
        except FileNotFoundError:
            return cls()
        return cls.from_config(read_config(beads_dir))


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


DEFAULT_PRIORITY = 2


def _coerce_priority(value: Any, issue_id: str) -> int:
    if value is None:
        return DEFAULT_PRIORITY
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    logger.warning("Issue %s has invalid priority %r; using %d", issue_id, value, DEFAULT_PRIORITY)
    return DEFAULT_PRIORITY


@dataclass
class Dependency:
    """A directed edge from a dependent issue to the issue it depends on."""

    issue_id: str
    depends_on_id: str
    type: str = "blocks"
    created_at: str = ""
    created_by: str = ""

    @classmethod
    def from_record(cls, record: dict[str, Any], issue_id: str) -> Dependency:
        """Build an edge from a snapshot record embedded in issue ``issue_id``.

        Raises:
            ValueError: If the record has no target id.
        """
        target = record.get("depends_on_id")
        if not isinstance(target, str) or not target:
            msg = f"Dependency of {issue_id} has no depends_on_id"
            raise ValueError(msg)
        return cls(
            issue_id=issue_id,
            depends_on_id=target,
            type=str(record.get("type") or "blocks"),
            created_at=str(record.get("created_at") or ""),
            created_by=str(record.get("created_by") or ""),
        )

    def to_dict(self) -> DependencyDict:
        return {
            "issue_id": self.issue_id,
            "depends_on_id": self.depends_on_id,
            "type": self.type,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "created_by": self.created_by,
        }


@dataclass
class Issue:
    id: str
    title: str
    description: str = ""
    status: str = "open"
    priority: int = DEFAULT_PRIORITY
    issue_type: str = "task"
    assignee: str | None = None
    owner: str | None = None
    labels: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    closed_at: str | None = None
    close_reason: str | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    # Computed (not stored directly)
    dependency_count: int = 0
    dependent_count: int = 0
    blocked_by: list[str] = field(default_factory=list)
    # Embedded edges dropped while parsing (no target id, not an object)
    unusable_edges: int = 0

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Issue:
        """Build an Issue from one snapshot record. Unknown keys are ignored.

        Malformed optional fields fall back to their defaults and unusable
        dependency edges are dropped one by one; the issue itself is kept.

        Raises:
            ValueError: If the record lacks a usable id.
        """
        issue_id = record.get("id")
        if not isinstance(issue_id, str) or not issue_id:
            msg = "Issue record has no id"
            raise ValueError(msg)
        labels = record.get("labels") or []
        if not isinstance(labels, list):
            logger.warning("Issue %s has non-list labels %r; ignoring them", issue_id, labels)
            labels = []
        raw_deps = record.get("dependencies") or []
        if not isinstance(raw_deps, list):
            logger.warning("Issue %s has non-list dependencies; ignoring them", issue_id)
            raw_deps = []
        dependencies: list[Dependency] = []
        unusable = 0
        for raw_dep in raw_deps:
            try:
                if not isinstance(raw_dep, dict):
                    msg = f"Dependency of {issue_id} is not an object"
                    raise ValueError(msg)
                dependencies.append(Dependency.from_record(raw_dep, issue_id))
            except ValueError as exc:
                logger.warning("Ignoring dependency edge: %s", exc)
                unusable += 1
        return cls(
            id=issue_id,
            title=str(record.get("title") or ""),
            description=str(record.get("description") or ""),
            status=str(record.get("status") or "open"),
            priority=_coerce_priority(record.get("priority"), issue_id),
            issue_type=str(record.get("issue_type") or "task"),
            assignee=record.get("assignee") or None,
            owner=record.get("owner") or None,
            labels=[str(label) for label in labels],
            created_at=str(record.get("created_at") or ""),
            updated_at=str(record.get("updated_at") or ""),
            closed_at=record.get("closed_at") or None,
            close_reason=record.get("close_reason") or None,
            dependencies=dependencies,
            unusable_edges=unusable,
        )

    def to_dict(self) -> IssueDict:
        result: IssueDict = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "issue_type": self.issue_type,
            "assignee": self.assignee,
            "owner": self.owner,
            "labels": list(self.labels),
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
            "closed_at": self.closed_at,  # type: ignore[typeddict-item]
            "close_reason": self.close_reason,
            "dependency_count": self.dependency_count,
            "dependent_count": self.dependent_count,
        }
        # Absent rather than empty when nothing open blocks this issue
        if self.blocked_by:
            result["blocked_by"] = list(self.blocked_by)
            result["blocked_by_count"] = len(self.blocked_by)
        return result

    def to_linked(self, dependency_type: str) -> LinkedIssueDict:
        """Project this issue as seen across an edge of ``dependency_type``."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "issue_type": self.issue_type,
            "assignee": self.assignee,
            "labels": list(self.labels),
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
            "closed_at": self.closed_at,  # type: ignore[typeddict-item]
            "dependency_type": dependency_type,
        }
