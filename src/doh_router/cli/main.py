"""Main CLI entry point for doh-router.

Commands:
    config  - Configuration (path, show)
    start   - Start a session (proxy on loopback, DoH resolution)
    status  - Show whether a session is running
    stop    - Shut down the running session

Subcommand help:
    doh-router COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys

import click

from doh_router import __version__

from .commands.config import config
from .commands.start import start
from .commands.status import status
from .commands.stop import stop


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add setup help after commands section."""
        formatter.write(
            """
Quick Start:
  doh-router start                 Start a session on the first free port from 8080
  doh-router start --port 9090     Prefer a specific port
  doh-router stop                  Shut the session down from another terminal

Then point your OS or browser HTTP and HTTPS proxy at the printed
address (127.0.0.1:<port>). Everything is removed when the session ends.
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """doh-router: temporary local proxy with DNS-over-HTTPS resolution."""
    if version:
        click.echo(f"doh-router {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(config)
cli.add_command(start)
cli.add_command(status)
cli.add_command(stop)


def main() -> None:
    """CLI entry point."""
    cli()
