"""Action executor - performs the macOS side effect of a fired timer.

Every action is best-effort. Command failures are logged and never raised,
so a fired timer stays fired whether or not the side effect happened.
"""
import logging
from typing import Protocol

from ..core.config import ExecutorConfig
from ..scheduler.timer import TimerAction
from . import applescript

logger = logging.getLogger(__name__)

LOCK_SHORTCUT = 'tell application "System Events" to keystroke "q" using {control down, command down}'
START_SCREEN_SAVER = 'tell application "System Events" to start current screen saver'
SHUT_DOWN = 'tell application "System Events" to shut down'
RESTART = 'tell application "System Events" to restart'


class Executor(Protocol):
    """Anything the scheduler can hand a fired timer to."""

    async def execute(self, action: TimerAction, message: str | None) -> None:
        ...


class ActionExecutor:
    """Runs timer actions through osascript and pmset."""

    def __init__(self, config: ExecutorConfig | None = None):
        self.config = config or ExecutorConfig()

    async def _osascript(self, script: str) -> bool:
        success, output = await applescript.run_osascript(script, self.config.osascript_path)
        if not success:
            logger.debug(f"osascript failed: {output}")
        return success

    async def execute(self, action: TimerAction, message: str | None) -> None:
        """Perform the side effect for ``action``."""
        logger.info(f"Running timer action: {action.value}")

        if action is TimerAction.POPUP:
            await self._popup(message)
        elif action is TimerAction.LOCK:
            await self._lock()
        elif action is TimerAction.SHUTDOWN:
            if not await self._osascript(SHUT_DOWN):
                logger.warning("Shutdown request failed")
        elif action is TimerAction.REBOOT:
            if not await self._osascript(RESTART):
                logger.warning("Restart request failed")

    async def _popup(self, message: str | None) -> None:
        if not message:
            logger.warning("Popup action without a message, nothing to show")
            return

        title = applescript.quote_applescript(self.config.dialog_title)
        script = (
            f'display dialog "{applescript.quote_applescript(message)}" '
            f'with title "{title}" buttons {{"OK"}} default button "OK"'
        )
        if not await self._osascript(script):
            logger.warning("Popup dialog failed")

    async def _lock(self) -> bool:
        """Lock the session, falling back to screen saver, then display sleep.

        Returns:
            True if any step in the chain succeeded
        """
        if await self._osascript(LOCK_SHORTCUT):
            return True

        logger.info("Lock shortcut failed, starting screen saver")
        if await self._osascript(START_SCREEN_SAVER):
            return True

        logger.info("Screen saver failed, sleeping display")
        success, output = await applescript.run_command(self.config.pmset_path, "displaysleepnow")
        if not success:
            logger.warning(f"Could not lock the session: {output}")
        return success
