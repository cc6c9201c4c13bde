"""Command-line interface for GiftSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- sync: Check the Drive folder and download a newer export file
- download: Force-download the newest export file
- fetch-config: Refresh app_config.json from the Drive folder
- status: Show configuration, cache and alarm state
- validate: Check the configuration for problems
- arm: Request the gift reveal notification
- cancel: Cancel the gift reveal notification
- run: Run the periodic check and the reveal alarm
- admin: Local overrides of the bundled configuration
"""

from __future__ import annotations

import click

from giftsync.client.cli.admin import admin
from giftsync.client.cli.alarm import arm, cancel
from giftsync.client.cli.config import get_app, parse_instant
from giftsync.client.cli.daemon import run
from giftsync.client.cli.status import status, validate
from giftsync.client.cli.sync import download, fetch_config, sync


@click.group()
@click.version_option(package_name="giftsync")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
def cli(verbose: bool) -> None:
    """GiftSync - Birthday gift countdown with Drive sync."""


# Sync commands
cli.add_command(sync)
cli.add_command(download)
cli.add_command(fetch_config)

# Status commands
cli.add_command(status)
cli.add_command(validate)

# Alarm commands
cli.add_command(arm)
cli.add_command(cancel)
cli.add_command(run)

# Admin commands
cli.add_command(admin)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "get_app",
    "main",
    "parse_instant",
]
