"""Startup, serving and shutdown of the bridge session.

The controller is the only writer of the :class:`BridgeSession`. Everything
that opens a resource (the remote SSE transport, the local stdio transport)
is entered and exited from the task running :meth:`LifecycleController.run`,
which anyio task groups require.
"""

import asyncio
import logging
import signal
from typing import Any, Dict, Optional

from mcp.server.lowlevel import Server as McpServer

from mcp_sse_bridge.bridge.connection import ConnectionManager
from mcp_sse_bridge.bridge.forwarder import CapabilityForwarder
from mcp_sse_bridge.config.schema import BridgeConfig
from mcp_sse_bridge.constants import EXIT_FAILURE, EXIT_OK, SERVER_VERSION
from mcp_sse_bridge.errors import BridgeBaseError
from mcp_sse_bridge.runtime.models import BridgeSession, SessionState
from mcp_sse_bridge.server.transport import LocalListener

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _signal_name(signum: Optional[int]) -> str:
    if signum is None:
        return "shutdown request"
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def _running_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class LifecycleController:
    """Drives one bridge session from startup to exit status."""

    def __init__(
        self,
        config: BridgeConfig,
        connection_manager: Optional[ConnectionManager] = None,
        stdin: Optional[asyncio.StreamReader] = None,
        stdout: Optional[Any] = None,
    ) -> None:
        self._config = config
        self._conn_mgr = connection_manager or ConnectionManager(
            timeout=config.timeout,
            sse_read_timeout=config.sse_read_timeout,
        )
        self._stdin = stdin
        self._stdout = stdout
        self.session = BridgeSession()
        self._stop_event = asyncio.Event()
        self._stop_reason: Optional[str] = None
        self._signal_mode: Dict[int, Any] = {}
        self._run_task: Optional[asyncio.Task] = None
        self._startup_interrupted = False

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ── Signals ──────────────────────────────────────────────────────────

    def request_shutdown(self, signum: Optional[int] = None) -> None:
        """Ask the bridge to stop. Repeated requests are logged and ignored."""
        name = _signal_name(signum)
        if self._stop_event.is_set():
            logger.info("%s received while shutdown is already in progress; ignoring.", name)
            return
        self._stop_reason = name
        logger.info("%s received, shutting down gracefully...", name)
        self._stop_event.set()

        # Startup may be stuck in the remote handshake; interrupt it. A request
        # made by the startup code itself is seen once startup returns.
        task = self._run_task
        if (
            self.session.state is SessionState.INITIALIZING
            and task is not None
            and not task.done()
            and task is not _running_task()
        ):
            self._startup_interrupted = True
            task.cancel()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
                self._signal_mode[sig] = None
            except (NotImplementedError, RuntimeError, ValueError):
                # No loop-level signal support (e.g. Windows or a non-main thread)
                try:
                    self._signal_mode[sig] = signal.signal(
                        sig,
                        lambda signum, _frame: loop.call_soon_threadsafe(self.request_shutdown, signum),
                    )
                except (ValueError, OSError) as e_sig:
                    logger.warning("Cannot install handler for %s: %s", _signal_name(sig), e_sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig, previous in self._signal_mode.items():
            try:
                if previous is None:
                    loop.remove_signal_handler(sig)
                else:
                    signal.signal(sig, previous)
            except (NotImplementedError, RuntimeError, ValueError, OSError):
                logger.debug("Could not restore handler for %s.", _signal_name(sig))
        self._signal_mode.clear()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def run(self) -> int:
        """Start the bridge, serve until told to stop and return the exit status."""
        loop = asyncio.get_running_loop()
        self._run_task = asyncio.current_task()
        self._install_signal_handlers(loop)
        try:
            if self.stop_requested:
                logger.info("Stop requested before startup (%s).", self._stop_reason)
                return EXIT_OK
            try:
                await self._startup()
            except asyncio.CancelledError:
                if not self._startup_interrupted:
                    raise
                self._run_task.uncancel()
                logger.info("Startup interrupted (%s).", self._stop_reason)
                return EXIT_OK
            except BridgeBaseError as e_start:
                logger.error("Bridge startup failed: %s", e_start)
                return EXIT_FAILURE
            except Exception as e_start:
                logger.exception("Unexpected error during bridge startup: %s", e_start)
                return EXIT_FAILURE
            return await self._serve()
        finally:
            await self.shutdown()
            self._remove_signal_handlers(loop)
            self._run_task = None

    async def _startup(self) -> None:
        cfg = self._config
        logger.info("Starting bridge '%s' for %s", cfg.server_name, cfg.sse_url)

        self.session.connection = await self._conn_mgr.connect(cfg.endpoint())

        mcp_server = McpServer(cfg.server_name, version=SERVER_VERSION)
        CapabilityForwarder(self.session).register(mcp_server)

        listener = LocalListener(mcp_server, stdin=self._stdin, stdout=self._stdout)
        self.session.listener = listener
        await listener.start()

        self.session.transition(SessionState.CONNECTED)
        logger.info("Bridge '%s' is running on stdio.", cfg.server_name)

    async def _serve(self) -> int:
        listener = self.session.listener
        serve_task = listener.serve_task if listener is not None else None
        if serve_task is None:
            logger.error("Local listener is not running.")
            return EXIT_FAILURE

        stop_task = asyncio.create_task(self._stop_event.wait(), name="bridge-stop-wait")
        try:
            done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not stop_task.done():
                stop_task.cancel()

        if stop_task in done:
            logger.info("Stopping bridge (%s).", self._stop_reason)
            return EXIT_OK

        if serve_task.cancelled():
            logger.info("Local listener was cancelled.")
            return EXIT_OK
        exc = serve_task.exception()
        if exc is not None:
            logger.error(
                "Local transport failed: %s: %s",
                type(exc).__name__,
                exc,
                exc_info=exc,
            )
            return EXIT_FAILURE

        logger.info("Local client disconnected (end of input), shutting down.")
        return EXIT_OK

    async def shutdown(self) -> None:
        """Release the remote connection, then the local listener. Idempotent.

        Each release is attempted exactly once; a failure is logged and
        does not prevent the other.
        """
        if self.session.state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            logger.debug("Shutdown already %s; nothing to do.", self.session.state.value)
            return
        self.session.transition(SessionState.SHUTTING_DOWN)
        logger.info("Shutting down bridge...")

        connection = self.session.take_connection()
        if connection is not None:
            try:
                await connection.close()
            except Exception as e_close:
                logger.error(
                    "Error closing remote connection: %s: %s",
                    type(e_close).__name__,
                    e_close,
                    exc_info=True,
                )

        listener = self.session.take_listener()
        if listener is not None:
            try:
                await listener.close()
            except Exception as e_close:
                logger.error(
                    "Error closing local listener: %s: %s",
                    type(e_close).__name__,
                    e_close,
                    exc_info=True,
                )

        self.session.transition(SessionState.CLOSED)
        logger.info("Bridge shutdown complete.")
