"""Pipeline commands for SyncConsole CLI.

Commands:
- initialize: Initialize dataset metadata
- full-sync: Run a full sync of a dataset
- incremental-sync: Run an incremental sync of a dataset on a key field
- watch: Print every pipeline notification until interrupted

Each command drives a SyncConsoleController the same way the console
does and follows channel notifications until the phase finishes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

import click

from syncconsole.client.api import BackendClient
from syncconsole.client.channel import WebSocketEventChannel
from syncconsole.client.cli.config import get_console_config
from syncconsole.client.controller import SyncConsoleController
from syncconsole.client.state import ConsoleState
from syncconsole.client.view import render
from syncconsole.core.config import ConsoleConfig
from syncconsole.core.types import PipelinePhase, PipelineStatus

logger = logging.getLogger(__name__)

FINISHED = (PipelineStatus.SUCCESS, PipelineStatus.FAILURE)


def _echo_state(state: ConsoleState) -> None:
    click.echo(render(state))
    click.echo()


async def _run_action(
    config: ConsoleConfig,
    phase: PipelinePhase,
    dataset: str | None,
    field: str | None,
    timeout: float,
) -> PipelineStatus | None:
    """Run one action and wait for the pipeline to finish it.

    Returns:
        SUCCESS or FAILURE as first reported after the trigger, None on
        timeout or if the action could not be dispatched.
    """
    async with BackendClient(config) as backend:
        channel = WebSocketEventChannel(config)
        controller = SyncConsoleController(backend, channel, config.topic)
        finished = asyncio.Event()
        outcome: list[PipelineStatus] = []
        triggered = False

        def on_state(state: ConsoleState) -> None:
            _echo_state(state)
            pipeline = state.pipeline
            if (
                triggered
                and not finished.is_set()
                and pipeline.phase == phase
                and pipeline.status in FINISHED
            ):
                outcome.append(pipeline.status)
                finished.set()

        controller.add_listener(on_state)
        try:
            await controller.start()
            await controller.wait_idle()

            if dataset is not None:
                controller.on_dataset_selected(dataset)
                await controller.wait_idle()
                if controller.state.selection.dataset != dataset:
                    click.echo(f"Error: Unknown dataset '{dataset}'", err=True)
                    return None
            if field is not None:
                controller.on_field_selected(field)
                if controller.state.selection.field != field:
                    click.echo(f"Error: Unknown key field '{field}'", err=True)
                    return None

            triggered = True
            if phase == PipelinePhase.INITIALIZE:
                controller.on_initialize_triggered()
            elif phase == PipelinePhase.FULL_SYNC:
                controller.on_full_sync_triggered()
            else:
                controller.on_incremental_sync_triggered()

            logger.debug("Waiting up to %.0fs for %s", timeout, phase.value)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(finished.wait(), timeout=timeout)
            return outcome[0] if outcome else None
        finally:
            await controller.stop()
            await channel.close()


def _report(phase: PipelinePhase, status: PipelineStatus | None) -> None:
    if status == PipelineStatus.SUCCESS:
        click.echo(f"{phase.value} completed.")
        return
    if status is None:
        click.echo(f"Error: {phase.value} did not finish.", err=True)
    else:
        click.echo(f"Error: {phase.value} failed.", err=True)
    sys.exit(1)


timeout_option = click.option(
    "--timeout",
    default=600.0,
    show_default=True,
    help="Seconds to wait for the pipeline to finish.",
)


@click.command()
@timeout_option
def initialize(timeout: float) -> None:
    """Initialize calculated insight metadata."""
    config = get_console_config()
    status = asyncio.run(
        _run_action(config, PipelinePhase.INITIALIZE, None, None, timeout)
    )
    _report(PipelinePhase.INITIALIZE, status)


@click.command(name="full-sync")
@click.argument("dataset")
@timeout_option
def full_sync(dataset: str, timeout: float) -> None:
    """Run a full sync of DATASET."""
    config = get_console_config()
    status = asyncio.run(
        _run_action(config, PipelinePhase.FULL_SYNC, dataset, None, timeout)
    )
    _report(PipelinePhase.FULL_SYNC, status)


@click.command(name="incremental-sync")
@click.argument("dataset")
@click.argument("field")
@timeout_option
def incremental_sync(dataset: str, field: str, timeout: float) -> None:
    """Run an incremental sync of DATASET keyed on FIELD."""
    config = get_console_config()
    status = asyncio.run(
        _run_action(config, PipelinePhase.INCREMENTAL_SYNC, dataset, field, timeout)
    )
    _report(PipelinePhase.INCREMENTAL_SYNC, status)


async def _watch(config: ConsoleConfig) -> None:
    async with BackendClient(config) as backend:
        channel = WebSocketEventChannel(config)
        controller = SyncConsoleController(backend, channel, config.topic)
        controller.add_listener(_echo_state)
        try:
            await controller.start()
            await controller.wait_idle()
            _echo_state(controller.state)
            # Runs until interrupted
            await asyncio.Event().wait()
        finally:
            await controller.stop()
            await channel.close()


@click.command()
def watch() -> None:
    """Print the console state on every pipeline notification."""
    config = get_console_config()
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_watch(config))
