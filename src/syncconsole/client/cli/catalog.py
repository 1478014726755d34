"""Catalog commands for SyncConsole CLI.

Commands:
- datasets: List the calculated insights available for sync
- fields: List key field candidates of a dataset
"""

from __future__ import annotations

import asyncio
import sys

import click

from syncconsole.client.api import APIError, BackendClient, Dataset, Field
from syncconsole.client.cli.config import get_console_config
from syncconsole.core.config import ConsoleConfig


async def _fetch_datasets(config: ConsoleConfig) -> list[Dataset]:
    async with BackendClient(config) as backend:
        return await backend.list_datasets()


async def _fetch_fields(config: ConsoleConfig, dataset: str) -> list[Field]:
    async with BackendClient(config) as backend:
        return await backend.list_fields(dataset)


@click.command()
def datasets() -> None:
    """List the calculated insights available for sync."""
    config = get_console_config()
    try:
        records = asyncio.run(_fetch_datasets(config))
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    selectable = [r for r in records if not r.is_error_record]
    for record in records:
        if record.is_error_record and record.error:
            click.echo(f"Initialization error: {record.error}", err=True)

    if not selectable:
        click.echo("No calculated insights. Run 'syncconsole initialize' first.")
        return

    for dataset in selectable:
        marker = "synced" if dataset.sync_completed else "not synced"
        click.echo(f"{dataset.name}\t{dataset.label}\t({marker})")


@click.command()
@click.argument("dataset")
def fields(dataset: str) -> None:
    """List key field candidates of DATASET."""
    config = get_console_config()
    try:
        candidates = asyncio.run(_fetch_fields(config, dataset))
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not candidates:
        click.echo(f"No key fields for {dataset}.")
        return

    for field in candidates:
        click.echo(f"{field.name}\t{field.label}")
