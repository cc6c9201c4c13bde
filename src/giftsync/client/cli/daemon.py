"""Daemon command for GiftSync CLI.

Commands:
- run: Keep the periodic file check and the reveal alarm running
"""

from __future__ import annotations

import logging
import signal
import threading

import click

from giftsync.client.cli.config import get_app


@click.command()
@click.option("--no-initial-check", is_flag=True, help="Skip the check at startup.")
@click.pass_context
def run(ctx: click.Context, no_initial_check: bool) -> None:
    """Run the periodic file check and the reveal alarm until interrupted."""
    app = get_app(ctx, console_level=logging.INFO)
    stop_event = threading.Event()

    def signal_handler(signum: int, frame: object) -> None:
        click.echo("\nStopping GiftSync...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.start()
    trigger = None
    try:
        armed = app.restore_after_boot()
        if armed is not None:
            click.echo(f"Reveal alarm armed for {armed.fire_at:%Y-%m-%d %H:%M %Z}")
        else:
            click.echo("Reveal alarm not armed (see log for the reason).")

        if app.app_config.daily_file_check_enabled:
            trigger = app.build_trigger()
            trigger.start(run_immediately=not no_initial_check)
            click.echo(f"Checking Drive every {app.config_source.check_interval_hours()}h")
        else:
            click.echo("Daily file check disabled.")

        click.echo("Press Ctrl+C to stop.")
        stop_event.wait()
    finally:
        if trigger is not None:
            trigger.stop()
        app.stop()
