"""Local history commands: log, branches."""

from __future__ import annotations

import click
from rich.table import Table

from ..errors import DioError
from ._common import build_client, console, fail, get_config


def register_history_commands(main: click.Group) -> None:
    """Register log and branches."""

    @main.command("log")
    @click.argument("db_name")
    @click.option("--branch", default="", help="Branch to show. Defaults to the active branch.")
    @click.pass_context
    def log(ctx, db_name, branch):
        """Show the commit history recorded for a database."""
        try:
            commits = build_client(get_config(ctx)).log(db_name, branch=branch or None)
        except DioError as exc:
            fail(exc)

        if not commits:
            console.print(f"[dim]No history recorded for {db_name}. Pull it first.[/]")
            return

        table = Table(title=f"History of {db_name}")
        table.add_column("Commit", style="cyan")
        table.add_column("Author")
        table.add_column("Date", style="dim")
        table.add_column("Message")
        for info in commits:
            table.add_row(
                info.commit_id[:12],
                f"{info.author_name} <{info.author_email}>" if info.author_email else info.author_name,
                info.timestamp.strftime("%Y-%m-%d %H:%M") if info.timestamp else "",
                info.message,
            )
        console.print(table)

    @main.command("branches")
    @click.argument("db_name")
    @click.pass_context
    def branches(ctx, db_name):
        """List the branches recorded for a database."""
        try:
            meta = build_client(get_config(ctx)).branches(db_name)
        except DioError as exc:
            fail(exc)

        if not meta.branches:
            console.print(f"[dim]No branches recorded for {db_name}. Pull it first.[/]")
            return

        for name, commit_id in sorted(meta.branches.items()):
            marker = "[green]*[/]" if name == meta.active_branch else " "
            console.print(f"  {marker} {name}  [dim]{commit_id[:12]}[/]")
