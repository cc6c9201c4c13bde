"""Admin override commands for GiftSync CLI.

Commands:
- admin show: Print the active overrides
- admin set-birthday: Override the reveal time
- admin set-folder: Override the Drive folder id
- admin set-file-name: Override the cached file name
- admin enable / disable: Toggle admin mode
- admin clear: Drop all overrides
"""

from __future__ import annotations

import sys

import click

from giftsync.client.cli.config import get_app, parse_instant


@click.group()
def admin() -> None:
    """Local overrides of the bundled configuration."""


@admin.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """Print the active admin overrides."""
    click.echo(get_app(ctx).admin.summary())


@admin.command("set-birthday")
@click.argument("when")
@click.pass_context
def set_birthday(ctx: click.Context, when: str) -> None:
    """Override the reveal time with WHEN ('YYYY-MM-DD HH:MM', Europe/Warsaw)."""
    instant = parse_instant(when)
    app = get_app(ctx)
    try:
        app.admin.set_birthday(instant.year, instant.month, instant.day, instant.hour, instant.minute)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Birthday set to {instant:%Y-%m-%d %H:%M}")


@admin.command("set-folder")
@click.argument("folder_id")
@click.pass_context
def set_folder(ctx: click.Context, folder_id: str) -> None:
    """Override the Drive folder id."""
    folder_id = folder_id.strip()
    if not folder_id:
        click.echo("Error: Folder id cannot be empty.", err=True)
        sys.exit(1)
    get_app(ctx).admin.set_drive_folder_id(folder_id)
    click.echo("Drive folder updated.")


@admin.command("set-file-name")
@click.argument("file_name")
@click.pass_context
def set_file_name(ctx: click.Context, file_name: str) -> None:
    """Override the cached export file name (a bare name, no directories)."""
    file_name = file_name.strip()
    if not file_name:
        click.echo("Error: File name cannot be empty.", err=True)
        sys.exit(1)
    try:
        get_app(ctx).admin.set_file_name(file_name)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"File name set to {file_name}")


@admin.command("enable")
@click.pass_context
def enable(ctx: click.Context) -> None:
    """Turn admin overrides on."""
    get_app(ctx).admin.set_enabled(True)
    click.echo("Admin mode enabled.")


@admin.command("disable")
@click.pass_context
def disable(ctx: click.Context) -> None:
    """Turn admin overrides off (values are kept)."""
    get_app(ctx).admin.set_enabled(False)
    click.echo("Admin mode disabled.")


@admin.command("clear")
@click.confirmation_option(prompt="Drop all admin overrides?")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Drop all admin overrides and use the bundled defaults."""
    get_app(ctx).admin.clear()
    click.echo("Admin overrides cleared.")
