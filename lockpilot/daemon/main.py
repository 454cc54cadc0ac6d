#!/usr/bin/env python3
"""LockPilot daemon entry point.

This is the main process that runs as a background service via launchd.
It hosts the timer scheduler and serves it over the IPC socket, and
optionally over HTTP, until stopped.
"""
import asyncio
import logging
import signal

import uvicorn

from ..actions import ActionExecutor
from ..core.config import LockPilotConfig, load_config
from ..core.logging_config import setup_logging
from ..ipc import IPCServer, start_server
from ..scheduler import TimerScheduler
from ..web import create_app

logger = logging.getLogger(__name__)


class LockPilotDaemon:
    """Main daemon class that manages the scheduler lifecycle."""

    def __init__(self, config: LockPilotConfig):
        self.config = config
        self.scheduler: TimerScheduler | None = None
        self.server: IPCServer | None = None
        self.web_server: uvicorn.Server | None = None
        self._web_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start the daemon."""
        logger.info("Starting LockPilot daemon...")

        self.scheduler = TimerScheduler(
            executor=ActionExecutor(self.config.executor),
            loop=asyncio.get_running_loop(),
            lock_timeout=self.config.lock_timeout,
        )

        self.server = await start_server(self.scheduler, socket_path=self.config.socket_path)

        if self.config.web.enabled:
            web_config = uvicorn.Config(
                create_app(self.scheduler),
                host=self.config.web.host,
                port=self.config.web.port,
                log_config=None,
            )
            self.web_server = uvicorn.Server(web_config)
            self._web_task = asyncio.create_task(self.web_server.serve())
            # uvicorn handles SIGINT/SIGTERM itself while serving
            self._web_task.add_done_callback(lambda _: self.request_shutdown())
            logger.info(f"REST API on http://{self.config.web.host}:{self.config.web.port}/api")

        logger.info("LockPilot daemon started")

    async def stop(self):
        """Stop the daemon."""
        logger.info("Stopping LockPilot daemon...")

        if self.web_server and self._web_task:
            self.web_server.should_exit = True
            await asyncio.gather(self._web_task, return_exceptions=True)

        if self.server:
            await self.server.stop()

        if self.scheduler:
            await self.scheduler.shutdown()

        logger.info("LockPilot daemon stopped")

    async def run(self):
        """Run the daemon until shutdown signal."""
        await self.start()
        await self._shutdown_event.wait()
        await self.stop()

    def request_shutdown(self):
        """Request daemon shutdown."""
        self._shutdown_event.set()


async def main(config: LockPilotConfig | None = None):
    """Async entry point."""
    config = config or load_config()
    setup_logging(config)

    daemon = LockPilotDaemon(config)
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await daemon.run()
    except Exception as e:
        logger.error(f"Daemon error: {e}", exc_info=True)
        raise
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
