"""Configuration utilities for SyncConsole CLI.

Settings live in a JSON file under the user's home directory and are
turned into a ConsoleConfig by get_console_config().
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from syncconsole.core.config import DEFAULT_TOPIC, ConsoleConfig


def get_config_dir() -> Path:
    """Directory holding the console settings.

    Returns:
        Path to ~/.syncconsole.
    """
    return Path.home() / ".syncconsole"


def get_config_file() -> Path:
    """JSON file with server URL, token, topic and SSL flag."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Read the stored settings, or an empty dict before configure has run."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Write the settings, creating the directory on first use."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_console_config() -> ConsoleConfig:
    """Build the connection settings from the config file.

    Exits with an error message if the console is not configured.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("auth_token"):
        click.echo(
            "Error: Not configured. Run 'syncconsole configure' first.", err=True
        )
        sys.exit(1)

    return ConsoleConfig(
        server_url=config["server_url"],
        token=config["auth_token"],
        topic=config.get("topic") or DEFAULT_TOPIC,
        verify_ssl=config.get("verify_ssl", "true").lower() != "false",
    )
