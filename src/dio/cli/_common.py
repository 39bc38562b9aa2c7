"""Shared utilities for all CLI command modules.

Provides the Rich console, client construction from the loaded
config, and the common error exit.
"""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console

from ..client import SyncClient
from ..config import DioConfig
from ..errors import DioError
from ..remote import HttpRemoteService

console = Console()
logger = logging.getLogger("dio.cli")


def build_client(config: DioConfig) -> SyncClient:
    """Create a SyncClient talking HTTP to the configured service."""
    return SyncClient(config, HttpRemoteService(config))


def get_config(ctx: click.Context) -> DioConfig:
    """The DioConfig loaded by the main group."""
    return ctx.find_object(DioConfig) or DioConfig()


def fail(exc: DioError) -> None:
    """Print a sync error and exit with status 1."""
    logger.debug("Command failed: %r", exc)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(1)
