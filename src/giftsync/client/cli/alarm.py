"""Alarm commands for GiftSync CLI.

The reveal alarm lives in the 'giftsync run' daemon. These commands save
the request in the settings file; the daemon arms it when it starts and
at each periodic check.

Commands:
- arm: Request the gift reveal notification
- cancel: Cancel the gift reveal notification
"""

from __future__ import annotations

import sys

import click

from giftsync.client.cli.config import get_app, parse_instant
from giftsync.core.config import ConfigError
from giftsync.core.timeutil import format_instant


@click.command()
@click.option(
    "--at",
    "at",
    default=None,
    help="Fire time 'YYYY-MM-DD HH:MM' (Europe/Warsaw). Default: configured birthday.",
)
@click.pass_context
def arm(ctx: click.Context, at: str | None) -> None:
    """Request the gift reveal notification.

    Without --at, any earlier explicit time is dropped and the configured
    birthday is used again.
    """
    app = get_app(ctx)
    fire_instant = parse_instant(at) if at else None
    try:
        instant = app.request_notification(fire_instant)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if instant is None:
        click.echo("Error: The reveal time is not in the future, nothing saved.", err=True)
        sys.exit(1)
    click.echo(f"Notification requested for {format_instant(instant)}")
    click.echo("'giftsync run' arms it at start and at its next check.")


@click.command()
@click.pass_context
def cancel(ctx: click.Context) -> None:
    """Cancel the gift reveal notification until the next 'giftsync arm'."""
    app = get_app(ctx)
    app.cancel_notification()
    click.echo("Notification cancelled.")
    click.echo("'giftsync run' disarms it at start and at its next check.")
