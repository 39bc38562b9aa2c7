"""Sync commands: pull, push, status."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel

from ..errors import DioError, ProtocolError
from ..models import PullOutcome, ResolvedBy, SyncState
from ..policy import PolicyGuard
from ._common import build_client, console, fail, get_config

STATE_STYLE = {
    SyncState.UNTRACKED: "[dim]UNTRACKED[/]",
    SyncState.TRACKED: "[bold yellow]TRACKED[/]",
    SyncState.SYNCED: "[bold green]SYNCED[/]",
    SyncState.DIVERGED: "[bold red]DIVERGED[/]",
}


def _print_pull(outcome: PullOutcome, cloud: str) -> None:
    if outcome.resolved_by == ResolvedBy.BRANCH:
        console.print(
            f"Database '{outcome.db_name}' downloaded from {cloud}.  "
            f"Size: {outcome.size:,} bytes\nBranch: '{outcome.branch}'"
        )
    elif outcome.commit_id:
        console.print(
            f"Database '{outcome.db_name}' downloaded from {cloud}.  "
            f"Size: {outcome.size:,} bytes\nCommit: {outcome.commit_id}"
        )
    else:
        console.print(f"Database '{outcome.db_name}' downloaded.  Size: {outcome.size:,} bytes")


def register_sync_commands(main: click.Group) -> None:
    """Register pull, push and status."""

    @main.command("pull")
    @click.argument("db_name")
    @click.option("--branch", default="", help="Remote branch the database will be downloaded from.")
    @click.option("--commit", default="", help="Commit ID of the database to download.")
    @click.pass_context
    def pull(ctx, db_name, branch, commit):
        """Download a database into the current directory.

        Examples:

            dio pull sales.db

            dio pull sales.db --branch dev
        """
        config = get_config(ctx)
        client = build_client(config)
        try:
            outcome = client.pull(db_name, branch=branch, commit=commit)
        except ProtocolError as exc:
            if exc.outcome is None:
                fail(exc)
            _print_pull(exc.outcome, config.cloud)
            console.print(f"[yellow]Warning:[/] {exc}")
            raise SystemExit(1)
        except DioError as exc:
            fail(exc)
        _print_pull(outcome, config.cloud)

    @main.command("push")
    @click.argument("db_file", type=click.Path(dir_okay=False))
    @click.option("--message", "-m", default="", help="(Required) Commit message for this upload.")
    @click.option("--branch", default="", help="Remote branch the database will be uploaded to.")
    @click.option("--commit", default="", help="ID of the previous commit, for appending this new database to.")
    @click.option("--author", default="", help="Author name, overriding the config file.")
    @click.option("--email", default="", help="Author email, overriding the config file.")
    @click.option("--dbname", default="", help="Override for the database name.")
    @click.option("--licence", default="", help="The licence (ID) for the database.")
    @click.option("--public", is_flag=True, help="Should the database be public?")
    @click.option("--force", is_flag=True, help="Overwrite existing commit history?")
    @click.pass_context
    def push(ctx, db_file, message, branch, commit, author, email, dbname, licence, public, force):
        """Upload a database as a new commit.

        Examples:

            dio push sales.db -m "Add Q3 figures"

            dio push sales.db -m "Rewrite history" --force
        """
        config = get_config(ctx)
        path = Path(db_file)
        if not path.is_absolute():
            path = Path(config.work_dir).expanduser() / path
        try:
            request = PolicyGuard(config).build_push(
                path,
                message,
                author=author,
                email=email,
                branch=branch,
                commit=commit,
                db_name=dbname or None,
                licence=licence,
                public=public,
                force=force,
            )
            outcome = build_client(config).push(request)
        except DioError as exc:
            fail(exc)

        lines = [
            f"Name: [cyan]{outcome.db_name}[/]",
            f"Branch: {outcome.branch}",
        ]
        if outcome.licence:
            lines.append(f"Licence: {outcome.licence}")
        lines += [
            f"Size: {outcome.size:,} bytes",
            f"Commit message: {outcome.message}",
            f"Commit: [dim]{outcome.commit_id}[/]",
        ]
        console.print(Panel(
            "\n".join(lines),
            title=f"Database uploaded to {outcome.destination}",
            border_style="green",
        ))

    @main.command("status")
    @click.argument("db_name")
    @click.option("--verify", is_flag=True, help="Re-hash every cached copy.")
    @click.pass_context
    def status(ctx, db_name, verify):
        """Show how the working copy relates to the remote history."""
        try:
            report = build_client(get_config(ctx)).status(db_name, verify=verify)
        except DioError as exc:
            fail(exc)

        body = (
            f"State: {STATE_STYLE[report.state]}\n"
            f"Branch: {report.local_branch or report.active_branch or '[dim]none[/]'}\n"
            f"Local commit: {report.local_commit or '[dim]none[/]'}\n"
            f"Remote head: {report.remote_head or '[dim]unknown[/]'}\n"
            f"Cached copies: {report.cached_blobs}"
        )
        if verify:
            if report.corrupt_blobs:
                body += "\n[bold red]Corrupt:[/] " + ", ".join(d[:12] for d in report.corrupt_blobs)
            else:
                body += "\n[green]Cache verified[/]"
        console.print(Panel(body, title=report.db_name, border_style="cyan"))
        if report.corrupt_blobs:
            raise SystemExit(1)
