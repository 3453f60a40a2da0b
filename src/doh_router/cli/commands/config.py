"""Config commands for doh-router CLI.

Commands:
    config path - Show config file location
    config show - Show effective configuration
"""

from __future__ import annotations

__all__ = ["config"]

import json
import sys

import click

from doh_router.config import get_config_path, load_config
from doh_router.exceptions import ConfigurationError

from ..styling import style_error


@click.group()
def config() -> None:
    """Configuration commands."""


@config.command("path")
def path() -> None:
    """Show config file path."""
    config_path = get_config_path()
    click.echo(str(config_path))
    if not config_path.exists():
        click.echo("(file does not exist, defaults are used)", err=True)


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(as_json: bool) -> None:
    """Show effective configuration (file values over defaults)."""
    try:
        loaded = load_config()
    except ConfigurationError as e:
        click.echo(style_error(f"Error: {e}"), err=True)
        sys.exit(e.exit_code)

    if as_json:
        click.echo(json.dumps(loaded.model_dump(), indent=2))
        return
    for key, value in loaded.model_dump().items():
        click.echo(f"{key}: {value}")
