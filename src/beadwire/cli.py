"""CLI for beadwire.

Connects to the beads daemon when it is running and falls back to the
read-only .beads/issues.jsonl snapshot otherwise.

Usage:
    beadwire list --status=open                  # List issues
    beadwire show <id>                           # Show issue with dependencies
    beadwire ready                               # Issues with no open blockers
    beadwire blocked                             # Blocked issues and their blockers
    beadwire stats                               # Summary counts and lead time
    beadwire ping | health                       # Daemon liveness (daemon only)
    beadwire watch                               # Print a line on every change
    beadwire create "Fix the bug" --type=bug     # Create issue (daemon only)
    beadwire update <id> --status=in_progress    # Update issue (daemon only)
    beadwire close <id> --reason "done"          # Close issue (daemon only)
    beadwire dep-add <from> <to>                 # <from> depends on <to> (daemon only)
"""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from beadwire import __version__
from beadwire.client import BeadsClient
from beadwire.core import DEPENDENCY_TYPES, ClientOptions, find_beads_dir
from beadwire.errors import BeadsError
from beadwire.logging import setup_logging
from beadwire.types.inputs import CreateInput, ListFilter, ReadyFilter, UpdateInput

T = TypeVar("T")


def _fail(message: str, as_json: bool, hint: str | None = None) -> NoReturn:
    if as_json:
        payload: dict[str, Any] = {"error": message}
        if hint:
            payload["hint"] = hint
        click.echo(json_mod.dumps(payload))
    else:
        click.echo(f"Error: {message}", err=True)
        if hint:
            click.echo(f"Hint: {hint}", err=True)
    sys.exit(1)


def _run(ctx: click.Context, action: Callable[[BeadsClient], Awaitable[T]], as_json: bool = False) -> T:
    """Connect, run ``action`` against the client, disconnect."""
    options: ClientOptions = ctx.obj["options"]
    workspace: Path = ctx.obj["workspace"]

    async def main() -> T:
        async with BeadsClient(options) as client:
            await client.connect(workspace)
            return await action(client)

    try:
        return asyncio.run(main())
    except BeadsError as e:
        _fail(e.message, as_json, e.hint)


def _echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def _issue_line(issue: dict[str, Any]) -> str:
    return f"P{issue['priority']} {issue['id']} [{issue['issue_type']}] {issue['status']:<12} {issue['title']}"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="beadwire")
@click.option(
    "--workspace",
    "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace directory (default: cwd)",
)
@click.option("--actor", default=None, help="Actor identity sent with mutations (default: sdk)")
@click.option("--timeout", default=None, type=float, help="Per-request daemon timeout in seconds")
@click.pass_context
def cli(ctx: click.Context, workspace: Path | None, actor: str | None, timeout: float | None) -> None:
    """beadwire: client for beads issue workspaces."""
    ctx.ensure_object(dict)
    root = (workspace or Path.cwd()).resolve()
    options = ClientOptions.from_workspace(root)
    if actor:
        options.actor = actor
    if timeout is not None:
        options.request_timeout = timeout
    try:
        setup_logging(find_beads_dir(root))
    except FileNotFoundError:
        pass  # No .beads/ dir; connect reports it
    ctx.obj["workspace"] = root
    ctx.obj["options"] = options


@cli.command("list")
@click.option("--status", default=None, help="Filter by status")
@click.option("--type", "issue_type", default=None, help="Filter by type")
@click.option("--priority", "-p", default=None, type=int, help="Filter by priority")
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--label", "-l", multiple=True, help="Require label (repeatable, all must match)")
@click.option("--any-label", multiple=True, help="Match any of these labels (repeatable)")
@click.option("--query", "-q", default=None, help="Case-insensitive title substring")
@click.option("--sort", default=None, help="Sort field (priority, created, updated, status, id, title, ...)")
@click.option("--reverse", is_flag=True, help="Reverse the order")
@click.option("--limit", default=None, type=int, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_issues(
    ctx: click.Context,
    status: str | None,
    issue_type: str | None,
    priority: int | None,
    assignee: str | None,
    label: tuple[str, ...],
    any_label: tuple[str, ...],
    query: str | None,
    sort: str | None,
    reverse: bool,
    limit: int | None,
    as_json: bool,
) -> None:
    """List issues with optional filters."""
    flt: ListFilter = {}
    if status:
        flt["status"] = status
    if issue_type:
        flt["type"] = issue_type
    if priority is not None:
        flt["priority"] = priority
    if assignee:
        flt["assignee"] = assignee
    if label:
        flt["labels"] = list(label)
    if any_label:
        flt["labels_any"] = list(any_label)
    if query:
        flt["query"] = query
    if sort:
        flt["sort"] = sort  # type: ignore[typeddict-item]
    if reverse:
        flt["reverse"] = True
    if limit is not None:
        flt["limit"] = limit

    issues = _run(ctx, lambda c: c.list(flt), as_json)
    if as_json:
        _echo_json(issues)
        return
    for issue in issues:
        click.echo(_issue_line(issue))
    click.echo(f"\n{len(issues)} issues")


@cli.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, issue_id: str, as_json: bool) -> None:
    """Show issue details with dependencies and dependents."""
    issue = _run(ctx, lambda c: c.show(issue_id), as_json)
    if as_json:
        _echo_json(issue)
        return

    click.echo(f"ID:       {issue['id']}")
    click.echo(f"Title:    {issue['title']}")
    click.echo(f"Status:   {issue['status']}")
    click.echo(f"Priority: P{issue['priority']}")
    click.echo(f"Type:     {issue['issue_type']}")
    if issue.get("assignee"):
        click.echo(f"Assignee: {issue['assignee']}")
    click.echo(f"Created:  {issue['created_at']}")
    if issue.get("closed_at"):
        click.echo(f"Closed:   {issue['closed_at']}")
    if issue.get("labels"):
        click.echo(f"Labels:   {', '.join(issue['labels'])}")
    if issue.get("blocked_by"):
        click.echo(f"Blocked by: {', '.join(issue['blocked_by'])}")
    deps = issue.get("dependencies") or []
    if deps:
        click.echo("\n--- Depends on ---")
        for d in deps:
            click.echo(f"  {d['id']} ({d['dependency_type']}) {d['status']:<12} {d['title']}")
    dependents = issue.get("dependents") or []
    if dependents:
        click.echo("\n--- Dependents ---")
        for d in dependents:
            click.echo(f"  {d['id']} ({d['dependency_type']}) {d['status']:<12} {d['title']}")
    if issue.get("description"):
        click.echo(f"\n--- Description ---\n{issue['description']}")


@cli.command()
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--unassigned", is_flag=True, help="Only issues without an assignee")
@click.option("--limit", default=None, type=int, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ready(ctx: click.Context, assignee: str | None, unassigned: bool, limit: int | None, as_json: bool) -> None:
    """Show issues ready to work on (no open blockers)."""
    flt: ReadyFilter = {}
    if assignee:
        flt["assignee"] = assignee
    if unassigned:
        flt["unassigned"] = True
    if limit is not None:
        flt["limit"] = limit

    issues = _run(ctx, lambda c: c.ready(flt), as_json)
    if as_json:
        _echo_json(issues)
        return
    for issue in issues:
        click.echo(f'P{issue["priority"]} {issue["id"]} [{issue["issue_type"]}] "{issue["title"]}"')
    click.echo(f"\n{len(issues)} ready")


@cli.command()
@click.option("--limit", default=None, type=int, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def blocked(ctx: click.Context, limit: int | None, as_json: bool) -> None:
    """Show blocked issues."""
    issues = _run(ctx, lambda c: c.blocked({"limit": limit} if limit is not None else {}), as_json)
    if as_json:
        _echo_json(issues)
        return
    for issue in issues:
        blockers = ", ".join(issue.get("blocked_by") or []) or issue["status"]
        click.echo(f'P{issue["priority"]} {issue["id"]} [{issue["issue_type"]}] "{issue["title"]}" <- {blockers}')
    click.echo(f"\n{len(issues)} blocked")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, as_json: bool) -> None:
    """Show workspace statistics."""
    s = _run(ctx, lambda c: c.stats(), as_json)
    if as_json:
        _echo_json(s)
        return
    summary = s["summary"]
    click.echo(f"Total:       {summary['total_issues']}")
    click.echo(f"Open:        {summary['open_issues']}")
    click.echo(f"In progress: {summary['in_progress_issues']}")
    click.echo(f"Closed:      {summary['closed_issues']}")
    click.echo(f"Deferred:    {summary['deferred_issues']}")
    click.echo(f"\nReady: {summary['ready_issues']}")
    click.echo(f"Blocked: {summary['blocked_issues']}")
    lead = summary.get("average_lead_time_hours")
    click.echo(f"Avg lead time: {f'{lead}h' if lead is not None else 'n/a'}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ping(ctx: click.Context, as_json: bool) -> None:
    """Check that the daemon answers."""
    result = _run(ctx, lambda c: c.ping(), as_json)
    if as_json:
        _echo_json(result)
        return
    click.echo(f"{result.get('message', 'pong')} (daemon {result.get('version', 'unknown')})")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Show the daemon's health report."""
    result = _run(ctx, lambda c: c.health(), as_json)
    if as_json:
        _echo_json(result)
        return
    for key, value in result.items():
        click.echo(f"{key}: {value}")


@cli.command()
@click.option("--count", default=None, type=int, help="Exit after N changes")
@click.pass_context
def watch(ctx: click.Context, count: int | None) -> None:
    """Print a line each time the workspace changes (Ctrl-C to stop)."""

    async def follow(client: BeadsClient) -> None:
        changed = asyncio.Event()
        client.on_change(changed.set)
        click.echo(f"Watching {client.workspace_root} via {client.state}")
        seen = 0
        while count is None or seen < count:
            await changed.wait()
            changed.clear()
            seen += 1
            summary = (await client.stats())["summary"]
            click.echo(
                f"[{datetime.now():%H:%M:%S}] changed: "
                f"{summary['total_issues']} total, {summary['ready_issues']} ready, "
                f"{summary['blocked_issues']} blocked"
            )

    try:
        _run(ctx, follow)
    except KeyboardInterrupt:
        pass


@cli.command()
@click.argument("title")
@click.option("--type", "issue_type", default="task", help="Issue type (task, bug, feature, epic, chore)")
@click.option("--priority", "-p", default=2, type=int, help="Priority 0-4 (0=critical)")
@click.option("--assignee", default=None, help="Assignee")
@click.option("--description", "-d", default="", help="Description")
@click.option("--label", "-l", multiple=True, help="Labels (repeatable)")
@click.option("--dep", multiple=True, help="Depends on issue IDs (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    issue_type: str,
    priority: int,
    assignee: str | None,
    description: str,
    label: tuple[str, ...],
    dep: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a new issue (requires the daemon)."""
    data: CreateInput = {"title": title, "issue_type": issue_type, "priority": priority}
    if description:
        data["description"] = description
    if assignee:
        data["assignee"] = assignee
    if label:
        data["labels"] = list(label)
    if dep:
        data["dependencies"] = list(dep)

    issue = _run(ctx, lambda c: c.create(data), as_json)
    if as_json:
        _echo_json(issue)
        return
    click.echo(f"Created {issue['id']}: {issue['title']}")


@cli.command()
@click.argument("issue_id")
@click.option("--status", default=None, help="New status")
@click.option("--priority", "-p", default=None, type=int, help="New priority")
@click.option("--title", default=None, help="New title")
@click.option("--assignee", default=None, help="New assignee")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--add-label", multiple=True, help="Label to add (repeatable)")
@click.option("--remove-label", multiple=True, help="Label to remove (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    issue_id: str,
    status: str | None,
    priority: int | None,
    title: str | None,
    assignee: str | None,
    description: str | None,
    add_label: tuple[str, ...],
    remove_label: tuple[str, ...],
    as_json: bool,
) -> None:
    """Update an issue (requires the daemon)."""
    changes: UpdateInput = {}
    if status is not None:
        changes["status"] = status
    if priority is not None:
        changes["priority"] = priority
    if title is not None:
        changes["title"] = title
    if assignee is not None:
        changes["assignee"] = assignee
    if description is not None:
        changes["description"] = description
    if add_label:
        changes["add_labels"] = list(add_label)
    if remove_label:
        changes["remove_labels"] = list(remove_label)
    if not changes:
        _fail("Nothing to update", as_json)

    issue = _run(ctx, lambda c: c.update(issue_id, changes), as_json)
    if as_json:
        _echo_json(issue)
        return
    click.echo(f"Updated {issue['id']}: {issue['title']} [{issue['status']}]")


@cli.command("close")
@click.argument("issue_id")
@click.option("--reason", default=None, help="Close reason")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def close_issue(ctx: click.Context, issue_id: str, reason: str | None, as_json: bool) -> None:
    """Close an issue (requires the daemon)."""
    issue = _run(ctx, lambda c: c.close(issue_id, reason), as_json)
    if as_json:
        _echo_json(issue)
        return
    click.echo(f"Closed {issue['id']}: {issue['title']}")


@cli.command("dep-add")
@click.argument("from_id")
@click.argument("to_id")
@click.option(
    "--type",
    "dep_type",
    type=click.Choice(DEPENDENCY_TYPES),
    default="blocks",
    show_default=True,
    help="Dependency type",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def dep_add(ctx: click.Context, from_id: str, to_id: str, dep_type: str, as_json: bool) -> None:
    """Record that FROM_ID depends on TO_ID (requires the daemon)."""
    result = _run(ctx, lambda c: c.add_dependency(from_id, to_id, dep_type), as_json)
    if as_json:
        _echo_json(result)
        return
    click.echo(f"Added dependency: {from_id} -> {to_id} ({dep_type})")


def main() -> None:
    """Entry point for the beadwire CLI."""
    cli()


if __name__ == "__main__":
    main()
