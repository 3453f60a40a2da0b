"""Session coordinator: one idempotent shutdown for every termination source.

Components that acquire a releasable resource register a zero-argument
cleanup handler. Signals, uncaught faults, normal interpreter exit and the
remote `doh-router stop` all funnel into the same one-shot latch:

1. First caller wins the latch; later or concurrent callers return at once
2. Handlers run in registration order, each at most once
3. A failing handler is logged and skipped; the rest still run
4. The process exits with status 0
"""

from __future__ import annotations

__all__ = [
    "CleanupHandler",
    "SessionCoordinator",
]

import asyncio
import atexit
import inspect
import logging
import os
import signal
import subprocess
import sys
import threading
from types import TracebackType
from typing import Any, Awaitable, Callable

from doh_router.constants import APP_NAME, SUBPROCESS_TERMINATE_TIMEOUT_SECONDS
from doh_router.models import RouterEvent
from doh_router.utils.logging import get_logger, log_event

_logger = get_logger("coordinator")

CleanupHandler = Callable[[], "Awaitable[Any] | Any"]

# Signals that end the session
_SHUTDOWN_SIGNALS: tuple[str, ...] = ("SIGINT", "SIGTERM", "SIGHUP")


class SessionCoordinator:
    """Owns the cleanup handler list and the shutdown latch.

    The latch is a lock-protected flag so it holds even when a signal
    callback or another thread races the event loop.
    """

    def __init__(
        self,
        session_id: str | None = None,
        *,
        exit_func: Callable[[int], Any] = os._exit,
    ) -> None:
        """Initialize the coordinator.

        Args:
            session_id: Session identifier attached to log events.
            exit_func: Called with the exit code once cleanup finishes.
        """
        self._session_id = session_id
        self._exit_func = exit_func
        self._handlers: list[tuple[str, CleanupHandler]] = []
        self._latch = threading.Lock()
        self._shutdown_started = False
        self._shutdown_reason: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_excepthook: Callable[..., Any] | None = None
        self._shutdown_task: asyncio.Task[None] | None = None

    @property
    def is_shutting_down(self) -> bool:
        """True once any caller has won the latch."""
        return self._shutdown_started

    @property
    def shutdown_reason(self) -> str | None:
        return self._shutdown_reason

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def register(self, handler: CleanupHandler, name: str | None = None) -> None:
        """Append a cleanup handler.

        Args:
            handler: Zero-argument callable; may return an awaitable.
            name: Label for log events (default: the handler's qualified name).
        """
        label = name or getattr(handler, "__qualname__", None) or repr(handler)
        self._handlers.append((label, handler))

    def register_process(self, process: subprocess.Popen[Any], name: str | None = None) -> None:
        """Register termination of a companion subprocess as a cleanup handler.

        The process gets SIGTERM, then SIGKILL if it outlives the grace period.
        """

        def _terminate() -> None:
            if process.poll() is not None:
                return
            process.terminate()
            try:
                process.wait(timeout=SUBPROCESS_TERMINATE_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

        self.register(_terminate, name=name or f"terminate pid {process.pid}")

    def _acquire(self, reason: str) -> bool:
        """Try to win the latch. Returns False if shutdown already started."""
        with self._latch:
            if self._shutdown_started:
                return False
            self._shutdown_started = True
            self._shutdown_reason = reason

        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="shutdown_initiated",
                message=f"Cleaning up temporary session ({reason})",
                session_id=self._session_id,
                details={"reason": reason, "handlers": len(self._handlers)},
            ),
        )
        return True

    def _log_handler_failure(self, name: str, error: BaseException) -> None:
        log_event(
            _logger,
            logging.WARNING,
            RouterEvent(
                event="cleanup_handler_failed",
                message=f"Cleanup warning: {name}: {error}",
                session_id=self._session_id,
                error_type=type(error).__name__,
                error_message=str(error),
                details={"handler": name},
            ),
        )

    def _finish(self) -> None:
        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="shutdown_complete",
                message="Session removed, all resources released",
                session_id=self._session_id,
            ),
        )
        for handler in logging.getLogger(APP_NAME).handlers:
            handler.flush()
        self._exit_func(0)

    async def trigger_shutdown(self, reason: str = "requested") -> None:
        """Run every cleanup handler once, then exit the process.

        Safe to call from any number of sources; only the first call does
        anything.

        Args:
            reason: What triggered the shutdown (for logs).
        """
        if not self._acquire(reason):
            return

        for name, handler in self._handlers:
            try:
                result = handler()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._log_handler_failure(name, e)

        self._handlers.clear()
        self._finish()

    def shutdown_sync(self, reason: str = "exit") -> None:
        """Synchronous shutdown for contexts without a running event loop.

        Used by the atexit hook and sys.excepthook. Awaitable handler results
        are driven to completion on a private event loop.

        Args:
            reason: What triggered the shutdown (for logs).
        """
        if not self._acquire(reason):
            return

        loop: asyncio.AbstractEventLoop | None = None
        try:
            for name, handler in self._handlers:
                try:
                    result = handler()
                    if inspect.isawaitable(result):
                        if loop is None:
                            loop = asyncio.new_event_loop()
                        loop.run_until_complete(_await(result))
                except Exception as e:
                    self._log_handler_failure(name, e)
        finally:
            if loop is not None:
                loop.close()

        self._handlers.clear()
        self._finish()

    # -------------------------------------------------------------------------
    # Trigger wiring
    # -------------------------------------------------------------------------

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route every termination source into the latch.

        - SIGINT / SIGTERM / SIGHUP -> trigger_shutdown
        - uncaught exceptions in loop callbacks/tasks -> trigger_shutdown
        - uncaught exceptions outside the loop -> shutdown_sync
        - normal interpreter exit -> shutdown_sync (no-op if already latched)

        Args:
            loop: The running event loop.
        """
        self._loop = loop

        for name in _SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(signum, lambda s, _frame: loop.call_soon_threadsafe(self._on_signal, s))

        loop.set_exception_handler(self._on_loop_exception)

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_uncaught_exception
        atexit.register(self.shutdown_sync, "exit")

    def uninstall(self) -> None:
        """Undo install(). Used when the coordinator is discarded without exiting."""
        if self._loop is not None:
            for name in _SHUTDOWN_SIGNALS:
                signum = getattr(signal, name, None)
                if signum is None:
                    continue
                try:
                    self._loop.remove_signal_handler(signum)
                except (NotImplementedError, RuntimeError):
                    signal.signal(signum, signal.SIG_DFL)
            self._loop.set_exception_handler(None)
            self._loop = None
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        atexit.unregister(self.shutdown_sync)

    def _schedule(self, reason: str) -> None:
        if self._loop is None or self._loop.is_closed():
            self.shutdown_sync(reason)
            return
        if self._shutdown_task is None:
            self._shutdown_task = self._loop.create_task(self.trigger_shutdown(reason))
            self._shutdown_task.add_done_callback(self._on_shutdown_task_done)

    def _on_shutdown_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        log_event(
            _logger,
            logging.ERROR,
            RouterEvent(
                event="shutdown_failed",
                message=f"Shutdown task failed: {error}",
                session_id=self._session_id,
                error_type=type(error).__name__,
                error_message=str(error),
            ),
        )

    def _on_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="signal_received",
                message=f"Received {name}, initiating shutdown",
                session_id=self._session_id,
                details={"signal": signum},
            ),
        )
        self._schedule(f"signal {name}")

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception")
        log_event(
            _logger,
            logging.ERROR,
            RouterEvent(
                event="uncaught_exception",
                message=context.get("message", "Unhandled exception in event loop"),
                session_id=self._session_id,
                error_type=type(error).__name__ if error else None,
                error_message=str(error) if error else None,
            ),
        )
        self._schedule("uncaught exception")

    def _on_uncaught_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc, tb)
        log_event(
            _logger,
            logging.ERROR,
            RouterEvent(
                event="uncaught_exception",
                message="Unhandled exception, initiating shutdown",
                session_id=self._session_id,
                error_type=exc_type.__name__,
                error_message=str(exc),
            ),
        )
        self.shutdown_sync("uncaught exception")


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
