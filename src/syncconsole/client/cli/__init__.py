"""Command-line interface for SyncConsole.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Store backend URL, token and topic
- datasets: List calculated insights
- fields: List key field candidates of a dataset
- initialize: Initialize calculated insight metadata
- full-sync: Run a full sync of a dataset
- incremental-sync: Run an incremental sync on a key field
- watch: Follow pipeline notifications
"""

from __future__ import annotations

import logging

import click

from syncconsole.client.cli.catalog import datasets, fields
from syncconsole.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_console_config,
    load_config,
    save_config,
)
from syncconsole.client.cli.configure import configure
from syncconsole.client.cli.pipeline import (
    full_sync,
    incremental_sync,
    initialize,
    watch,
)


@click.group()
@click.version_option(package_name="syncconsole")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """SyncConsole - Calculated insight sync console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Setup commands
cli.add_command(configure)

# Catalog commands
cli.add_command(datasets)
cli.add_command(fields)

# Pipeline commands
cli.add_command(initialize)
cli.add_command(full_sync)
cli.add_command(incremental_sync)
cli.add_command(watch)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_console_config",
    "load_config",
    "save_config",
]
