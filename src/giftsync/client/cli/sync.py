"""Sync commands for GiftSync CLI.

Commands:
- sync: Check the Drive folder and download a newer export file
- download: Force-download the newest export file
- fetch-config: Refresh app_config.json from the Drive folder
"""

from __future__ import annotations

import sys

import click

from giftsync.client.cli.config import get_app
from giftsync.client.sync.types import Fetch, NoCandidates, SyncResult, UpToDate


def _report(result: SyncResult) -> None:
    if not result.success:
        kind = result.error_kind.name if result.error_kind else "UNKNOWN"
        click.echo(f"Error ({kind}): {result.error}", err=True)
        sys.exit(1)

    decision = result.decision
    if isinstance(decision, NoCandidates):
        click.echo("No export files in the Drive folder.")
    elif isinstance(decision, UpToDate):
        click.echo(f"Up to date with {decision.candidate.name}.")
    elif isinstance(decision, Fetch):
        click.echo(f"Downloaded {decision.candidate.name}.")


@click.command()
@click.option("--force", "-f", is_flag=True, help="Download even if the cache is up to date.")
@click.pass_context
def sync(ctx: click.Context, force: bool) -> None:
    """Check the Drive folder and download a newer export file."""
    app = get_app(ctx)
    if not force and not app.can_check_now():
        click.echo("Checked too recently, try again later (or use --force).", err=True)
        sys.exit(1)
    _report(app.run_sync_pass(force=force))


@click.command()
@click.pass_context
def download(ctx: click.Context) -> None:
    """Download the newest export file, replacing the cached copy."""
    app = get_app(ctx)
    _report(app.run_sync_pass(force=True))


@click.command("fetch-config")
@click.option("--folder-id", default=None, help="Drive folder to read app_config.json from.")
@click.pass_context
def fetch_config(ctx: click.Context, folder_id: str | None) -> None:
    """Refresh the cached app_config.json from the Drive folder."""
    app = get_app(ctx)
    if not app.fetch_remote_config(folder_id):
        click.echo("Error: Could not fetch remote config (see log for details).", err=True)
        sys.exit(1)

    cached = app.remote_config.cached()
    if cached is not None:
        click.echo(f"Birthday: {cached.birthday:%Y-%m-%d %H:%M %Z}")
        click.echo(f"File name: {cached.daylio_file_name}")
