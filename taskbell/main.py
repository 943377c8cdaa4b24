"""
Client daemon loop.

Keeps the notification context alive: picks up history changes made by
CLI commands and pushes dropped into the inbox, and re-establishes the
realtime connection after the transport dropped it. Handles graceful
shutdown on SIGINT/SIGTERM.

Exit codes:
    0  stopped normally
    1  not logged in or invalid configuration
    4  too many consecutive reconnect failures
"""

import asyncio
import signal
import sys
from typing import Callable, Optional

from taskbell import __version__
from taskbell.config import ClientConfig, ConfigValidationError
from taskbell.context import NotificationContext
from taskbell.logging_config import get_logger, init_logging
from taskbell.models import ConnectionState

logger = get_logger("cli")


DEFAULT_TICK_SECONDS = 2.0
DEFAULT_MAX_RECONNECT_FAILURES = 10


class ClientRunner:
    """
    Main client loop runner.

    Attributes:
        config: Client configuration
        tick_seconds: Interval between inbox scans and reconnect checks
        max_reconnect_failures: Consecutive failed reconnects before exiting
    """

    def __init__(
        self,
        config: ClientConfig,
        context_factory: Callable[[ClientConfig], NotificationContext] = NotificationContext,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        max_reconnect_failures: int = DEFAULT_MAX_RECONNECT_FAILURES,
    ):
        self.config = config
        self.tick_seconds = tick_seconds
        self.max_reconnect_failures = max_reconnect_failures
        self._context_factory = context_factory
        self._shutdown_event: Optional[asyncio.Event] = None
        self.context: Optional[NotificationContext] = None

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                pass

    async def run(self) -> int:
        """
        Run the client until shutdown.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        self._shutdown_event = asyncio.Event()
        self._install_signal_handlers()

        if not self.config.is_authenticated:
            logger.error("No user session. Run 'taskbell config set-session' first.")
            return 1

        try:
            self.config.validate()
        except ConfigValidationError as e:
            logger.error(f"Invalid configuration: {e}")
            return 1

        logger.info(f"Starting TaskBell client v{__version__}")
        logger.info(f"Server: {self.config.root_url}")
        logger.info(f"Realtime: {self.config.realtime_url}")

        self.context = self._context_factory(self.config)
        self.context.channel.add_state_listener(self._log_state)
        try:
            await self.context.start()
            return await self._main_loop(self.context)
        except asyncio.CancelledError:
            logger.info("Client shutdown requested")
            return 0
        finally:
            await self.context.close()
            logger.info("Client stopped")

    async def _main_loop(self, context: NotificationContext) -> int:
        consecutive_failures = 0

        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.tick_seconds,
                )
                break
            except asyncio.TimeoutError:
                pass

            context.store.sync()
            context.bridge.drain_inbox()

            if context.channel.state in (ConnectionState.ERROR, ConnectionState.DISCONNECTED):
                if await context.channel.connect(self.config.user_id):
                    consecutive_failures = 0
                else:
                    consecutive_failures += 1
                    logger.warning(
                        f"Reconnect failed (attempt {consecutive_failures}/"
                        f"{self.max_reconnect_failures})"
                    )
                    if consecutive_failures >= self.max_reconnect_failures:
                        logger.error("Too many consecutive reconnect failures, exiting")
                        return 4

        return 0

    @staticmethod
    def _log_state(state: ConnectionState) -> None:
        logger.info(f"Realtime connection {state.value}")

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the client."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()


def run_client(config: Optional[ClientConfig] = None) -> int:
    """
    Run the client daemon.

    Returns:
        Exit code
    """
    config = config or ClientConfig()
    init_logging(config.log_level)
    return asyncio.run(ClientRunner(config).run())


if __name__ == "__main__":
    sys.exit(run_client())
