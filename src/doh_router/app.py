"""Session orchestrator (run_router entry point).

Builds the session, starts the resolver and proxy, registers every
releasable resource with the SessionCoordinator and waits until a
termination source fires the shutdown latch.
"""

from __future__ import annotations

__all__ = [
    "run_router",
]

import asyncio
import logging
from pathlib import Path
from typing import Callable

from doh_router.config import RouterConfig
from doh_router.constants import PID_PATH
from doh_router.coordinator import SessionCoordinator
from doh_router.lifecycle import cleanup_stale_pid, remove_pid_file, write_pid_file
from doh_router.models import RouterEvent
from doh_router.proxy import ForwardingProxy
from doh_router.resolver import DoHResolver
from doh_router.session import Session, create_session
from doh_router.utils.logging import get_logger, log_event

_logger = get_logger("app")


async def run_router(
    config: RouterConfig,
    session: Session | None = None,
    *,
    coordinator: SessionCoordinator | None = None,
    pid_path: Path = PID_PATH,
    on_ready: Callable[[Session], None] | None = None,
) -> None:
    """Run one doh-router session until shutdown.

    Cleanup handlers run in this order: stop proxy, close DoH client,
    remove PID file.

    Args:
        config: Effective configuration.
        session: Pre-built session (default: allocated from config).
        coordinator: Shutdown coordinator (default: a new one that exits the process).
        pid_path: PID file used by `doh-router stop`.
        on_ready: Called once the proxy is listening.

    Raises:
        ProxyAlreadyRunningError: If another instance owns the PID file.
        OSError: If the proxy port cannot be bound.
    """
    session = session or create_session(config)
    coordinator = coordinator or SessionCoordinator(session.session_id)

    cleanup_stale_pid(pid_path)

    resolver = DoHResolver(config.doh_endpoint, config.doh_timeout_seconds)
    proxy = ForwardingProxy(
        resolver,
        session.proxy_port,
        session.proxy_host,
        session_id=session.session_id,
    )
    try:
        await proxy.start()
    except OSError:
        await resolver.aclose()
        raise

    shutdown_complete = asyncio.Event()
    coordinator.register(proxy.stop, name="stop proxy")
    coordinator.register(resolver.aclose, name="close DoH client")
    write_pid_file(pid_path)
    coordinator.register(lambda: remove_pid_file(pid_path), name="remove PID file")
    coordinator.register(shutdown_complete.set, name="release main task")
    coordinator.install(asyncio.get_running_loop())

    log_event(
        _logger,
        logging.INFO,
        RouterEvent(
            event="session_ready",
            message=f"Session {session.session_id} ready",
            session_id=session.session_id,
            port=session.proxy_port,
            details={
                "doh_endpoint": config.doh_endpoint,
                "dashboard_port": session.dashboard_port,
                "live_server_port": session.live_server_port,
            },
        ),
    )
    if on_ready is not None:
        on_ready(session)

    try:
        await shutdown_complete.wait()
    finally:
        await coordinator.trigger_shutdown("exit")
