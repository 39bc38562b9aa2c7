"""
dio CLI: pull and push versioned databases.

The main Click group lives here; command groups register themselves
from their own modules.

Entry point: dio.cli:main
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from .. import DIO_CONFIG, __version__
from ..config import load_config


@click.group()
@click.version_option(version=__version__, prog_name="dio")
@click.option("--config", "config_path", default=DIO_CONFIG, type=click.Path(), help="Config file.")
@click.option("--dir", "work_dir", default=None, type=click.Path(file_okay=False), help="Working directory.")
@click.option("--verbose", "-v", is_flag=True, help="Log requests and sync steps.")
@click.pass_context
def main(ctx: click.Context, config_path: str, work_dir: str, verbose: bool):
    """dio: keep a local database in sync with its remote history."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    config = load_config(Path(config_path))
    if work_dir:
        config = config.model_copy(update={"work_dir": Path(work_dir)})
    ctx.obj = config


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .sync_cmd import register_sync_commands
from .history import register_history_commands

register_sync_commands(main)
register_history_commands(main)
