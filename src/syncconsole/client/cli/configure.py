"""Configure command for SyncConsole CLI.

Commands:
- configure: Store the backend URL, token and topic
"""

from __future__ import annotations

import click

from syncconsole.client.cli.config import get_config_file, load_config, save_config
from syncconsole.core.config import DEFAULT_TOPIC


@click.command()
@click.option(
    "--server",
    required=True,
    help="Backend URL (e.g., http://localhost:8000).",
)
@click.option(
    "--token",
    required=True,
    help="Access token for the backend.",
)
@click.option(
    "--topic",
    default=DEFAULT_TOPIC,
    show_default=True,
    help="Event channel topic the pipeline publishes on.",
)
@click.option(
    "--insecure",
    is_flag=True,
    help="Do not verify SSL certificates.",
)
def configure(server: str, token: str, topic: str, insecure: bool) -> None:
    """Store connection settings for the sync backend."""
    config = load_config()
    config.update({
        "server_url": server.rstrip("/"),
        "auth_token": token,
        "topic": topic,
        "verify_ssl": "false" if insecure else "true",
    })
    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")
