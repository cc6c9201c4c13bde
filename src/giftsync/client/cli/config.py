"""Shared helpers for GiftSync CLI commands."""

from __future__ import annotations

import logging
import sys
from datetime import datetime

import click

from giftsync.client.app import GiftSyncApp, setup_logging
from giftsync.core.config import ConfigError
from giftsync.core.timeutil import WARSAW


def get_app(ctx: click.Context, console_level: int = logging.WARNING) -> GiftSyncApp:
    """Get the app for a command, building it from the config directory.

    Tests inject a prebuilt app through ``CliRunner.invoke(..., obj=app)``.
    """
    root = ctx.find_root()
    if isinstance(root.obj, GiftSyncApp):
        return root.obj

    try:
        app = GiftSyncApp.from_config_dir()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    verbose = app.app_config.verbose_logging or bool(root.params.get("verbose"))
    setup_logging(app.log_path, verbose, console_level=console_level)
    root.obj = app
    root.call_on_close(app.store.close)
    return app


def parse_instant(value: str) -> datetime:
    """Parse 'YYYY-MM-DD HH:MM' as a Warsaw wall-clock time.

    Raises:
        click.BadParameter: If the value does not match the format.
    """
    try:
        naive = datetime.strptime(value, "%Y-%m-%d %H:%M")
    except ValueError as e:
        raise click.BadParameter("expected 'YYYY-MM-DD HH:MM'") from e
    return naive.replace(tzinfo=WARSAW)
