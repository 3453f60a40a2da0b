"""PID file management for the running doh-router instance.

Handles:
- PID file read/write/cleanup
- Stale PID detection
- Remote stop (SIGTERM to the recorded PID)
"""

from __future__ import annotations

__all__ = [
    "cleanup_stale_pid",
    "get_running_pid",
    "remove_pid_file",
    "stop_running_instance",
    "wait_for_condition",
    "write_pid_file",
]

import errno
import logging
import os
import signal
import time
from pathlib import Path
from typing import Callable

from doh_router.constants import PID_PATH
from doh_router.exceptions import ProxyAlreadyRunningError
from doh_router.models import RouterEvent
from doh_router.utils.file_helpers import set_secure_permissions
from doh_router.utils.logging import get_logger, log_event

_logger = get_logger("lifecycle")


def _read_pid_file(pid_path: Path) -> int | None:
    """Read PID from PID file if it exists and process is running.

    Returns:
        PID if file exists and process is running, None otherwise.
    """
    if not pid_path.exists():
        return None

    try:
        pid = int(pid_path.read_text().strip())
    except (ValueError, OSError):
        return None

    try:
        # Signal 0 checks existence without delivering anything
        os.kill(pid, 0)
        return pid
    except ProcessLookupError:
        return None
    except PermissionError:
        # Process exists but belongs to someone else
        return pid
    except OSError as e:
        if e.errno == errno.ESRCH:
            return None
        raise


def get_running_pid(pid_path: Path = PID_PATH) -> int | None:
    """Get the PID of the running instance, or None if not running."""
    return _read_pid_file(pid_path)


def cleanup_stale_pid(pid_path: Path = PID_PATH) -> None:
    """Remove stale PID file if the process is gone.

    Raises:
        ProxyAlreadyRunningError: If the recorded process is alive.
    """
    if not pid_path.exists():
        return

    pid = _read_pid_file(pid_path)
    if pid is not None and pid != os.getpid():
        raise ProxyAlreadyRunningError(pid)

    pid_path.unlink(missing_ok=True)
    log_event(
        _logger,
        logging.INFO,
        RouterEvent(
            event="stale_pid_removed",
            message=f"Removed stale PID file: {pid_path}",
        ),
    )


def write_pid_file(pid_path: Path = PID_PATH) -> None:
    """Write current process PID to the PID file (owner-only permissions)."""
    pid_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    pid_path.write_text(str(os.getpid()))
    set_secure_permissions(pid_path)


def remove_pid_file(pid_path: Path = PID_PATH) -> None:
    """Remove PID file if it exists and belongs to this process."""
    if _read_pid_file(pid_path) in (None, os.getpid()):
        pid_path.unlink(missing_ok=True)


def stop_running_instance(pid_path: Path = PID_PATH) -> int | None:
    """Ask the running instance to shut down (SIGTERM).

    Returns:
        The PID signalled, or None if no instance is running.
    """
    pid = _read_pid_file(pid_path)
    if pid is None:
        return None

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return None
    return pid


def wait_for_condition(
    condition_fn: Callable[[], bool],
    timeout_seconds: float,
    poll_interval: float = 0.1,
) -> bool:
    """Poll condition_fn until it returns True or the timeout passes.

    Returns:
        True if condition was met within timeout, False otherwise.
    """
    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout_seconds:
        if condition_fn():
            return True
        time.sleep(poll_interval)
    return False
