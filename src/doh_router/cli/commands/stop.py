"""Stop command for doh-router CLI.

Sends SIGTERM to the running session, which enters the same shutdown
latch as Ctrl+C.
"""

from __future__ import annotations

__all__ = ["stop"]

import sys

import click

from doh_router.constants import STOP_WAIT_TIMEOUT_SECONDS
from doh_router.lifecycle import get_running_pid, stop_running_instance, wait_for_condition

from ..styling import style_success, style_warning


@click.command()
def stop() -> None:
    """Shut down the running doh-router session."""
    pid = stop_running_instance()
    if pid is None:
        click.echo(style_warning("doh-router is not running"))
        sys.exit(1)

    click.echo(f"Stopping doh-router (pid: {pid})...")
    if wait_for_condition(lambda: get_running_pid() is None, STOP_WAIT_TIMEOUT_SECONDS):
        click.echo(style_success("doh-router stopped"))
        return

    click.echo(style_warning("Stop signal sent but process still running"))
    click.echo(f"  You may need to kill it manually: kill {pid}")
    sys.exit(1)
