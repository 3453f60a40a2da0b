"""Status command for doh-router CLI."""

from __future__ import annotations

__all__ = ["status"]

import json

import click

from doh_router.constants import PID_PATH
from doh_router.lifecycle import get_running_pid

from ..styling import style_label


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show whether a doh-router session is running."""
    pid = get_running_pid()
    if as_json:
        click.echo(json.dumps({"running": pid is not None, "pid": pid}))
        return

    if pid is None:
        click.echo("doh-router is not running")
        return
    click.echo(f"{style_label('Running')} pid {pid}")
    click.echo(f"{style_label('PID file')} {PID_PATH}")
