"""Start command for doh-router CLI.

Runs one session in the foreground until Ctrl+C, SIGTERM,
`doh-router stop`, or an unrecoverable fault.
"""

from __future__ import annotations

__all__ = ["start"]

import asyncio
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from doh_router import __version__
from doh_router.app import run_router
from doh_router.config import RouterConfig, get_system_log_path, load_config
from doh_router.exceptions import ConfigurationError, ProxyAlreadyRunningError
from doh_router.session import Session
from doh_router.utils.logging import configure_logging

from ..styling import style_error, style_label, style_success


def _apply_overrides(config: RouterConfig, overrides: dict[str, Any]) -> RouterConfig:
    """Merge CLI overrides into the loaded config and re-validate.

    Raises:
        ConfigurationError: If an override is out of range.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    if not values:
        return config
    try:
        return RouterConfig.model_validate({**config.model_dump(), **values})
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ConfigurationError(f"Invalid option: {problems}") from e


def _print_banner(session: Session) -> None:
    click.echo(style_success("Temporary DoH router ready"), err=True)
    click.echo(f"  {style_label('Secure proxy')} {session.proxy_address}", err=True)
    click.echo(f"  {style_label('Session')} {session.session_id}", err=True)
    click.echo(err=True)
    click.echo("Manual setup:", err=True)
    click.echo(f"  1. Copy: {session.proxy_address}", err=True)
    click.echo("  2. Set it as HTTP and HTTPS proxy in your OS or browser", err=True)
    click.echo(err=True)
    click.echo("Press Ctrl+C or run 'doh-router stop' to shut down", err=True)


@click.command()
@click.option("--port", "-p", type=int, default=None, help="Preferred proxy port (0 = any free port)")
@click.option("--doh-endpoint", default=None, help="DoH JSON endpoint (https:// URL)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Console log level",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: OS app directory)",
)
def start(
    port: int | None,
    doh_endpoint: str | None,
    log_level: str | None,
    config_path: Path | None,
) -> None:
    """Start a temporary DoH proxy session in the foreground.

    Examples:
        doh-router start
        doh-router start --port 9090 --log-level DEBUG
    """
    try:
        config = _apply_overrides(
            load_config(config_path),
            {
                "proxy_port": port,
                "doh_endpoint": doh_endpoint,
                "log_level": log_level.upper() if log_level else None,
            },
        )
    except ConfigurationError as e:
        click.echo(style_error(f"Error: {e}"), err=True)
        sys.exit(e.exit_code)

    configure_logging(config.log_level, get_system_log_path(config))
    click.echo(f"doh-router v{__version__}", err=True)

    try:
        asyncio.run(run_router(config, on_ready=_print_banner))
    except ProxyAlreadyRunningError as e:
        click.echo(style_error(f"Error: {e}"), err=True)
        click.echo("Run 'doh-router stop' first.", err=True)
        sys.exit(e.exit_code)
    except (OSError, RuntimeError) as e:
        click.echo(style_error(f"Error: Failed to start: {e}"), err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)
