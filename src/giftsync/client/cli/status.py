"""Status commands for GiftSync CLI.

Commands:
- status: Show configuration, cache and alarm state
- validate: Check the configuration for problems
"""

from __future__ import annotations

import sys

import click

from giftsync.client.cli.config import get_app
from giftsync.core.timeutil import format_instant, from_epoch_millis


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration, cache and alarm state."""
    info = get_app(ctx).status()
    config = info["config"]

    click.echo(f"Drive folder:      {config['folder_id']}")
    click.echo(f"File name:         {config['file_name']}")
    click.echo(f"Birthday:          {config['fire_instant']} ({config['birthday_source']})")
    click.echo(f"Check interval:    {config['check_interval_hours']}h")
    click.echo(f"Admin mode:        {'on' if info['admin_enabled'] else 'off'}")
    click.echo(f"Cache:             {info['cache_path']}")
    click.echo(f"Cache modified:    {info['cache_modified'] or 'never downloaded'}")
    click.echo(f"Last check:        {info['last_check'] or 'never'}")
    click.echo(f"Notification at:   {info['notification_scheduled_at'] or 'not armed'}")
    if info["notification_cancelled"]:
        click.echo("Notification:      cancelled")
    elif info["notification_requested_at"]:
        click.echo(f"Requested for:     {info['notification_requested_at']}")

    remote_updated = info["remote_config_last_updated"]
    if remote_updated:
        click.echo(f"Remote config:     {format_instant(from_epoch_millis(remote_updated))}")

    error = info["last_error"]
    if error:
        when = format_instant(from_epoch_millis(error["time"]))
        click.echo(f"Last error:        {error['kind']} at {when}: {error['message']}")


@click.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check the configuration and report problems."""
    errors = get_app(ctx).app_config.validate()
    if errors:
        for error in errors:
            click.echo(f"- {error}", err=True)
        sys.exit(1)
    click.echo("Configuration OK.")
