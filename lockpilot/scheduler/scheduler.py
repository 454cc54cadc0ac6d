"""
Timer scheduler - the registry of pending one-shot timers.

Each timer gets its own waiter task that races the timer's deadline against
a cancellation event. Firing and cancelling both commit by removing the
timer from the registry under the registry lock, so whichever gets there
first wins and the other sees the timer gone. A cancelled timer never
reaches the executor, and a fired timer reaches it exactly once.
"""

import asyncio
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set

from ..core.errors import (
    ErrorBoundary,
    InvalidTimeFormat,
    LockUnavailable,
    MissingMessage,
    TimeNotInFuture,
)
from ..core.logging_config import log_with_context
from .timer import Timer, TimerAction, parse_rfc3339, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _TimerEntry:
    """Registry record: the timer plus the handle of its waiter."""
    timer: Timer
    cancelled: asyncio.Event
    task: Optional[asyncio.Task] = None


class TimerScheduler:
    """
    In-memory scheduler for one-shot timers.

    The public operations may be called from the event loop the waiters run
    on or from any other thread. They hold the registry lock only for their
    own critical section, never across a wait.

    Nothing is persisted: timers pending when the process exits are lost.
    """

    def __init__(
        self,
        executor: Any,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        lock_timeout: float = 1.0,
    ):
        """
        Args:
            executor: Object with ``async execute(action, message)``
            loop: Event loop that runs the waiters. Defaults to the loop
                running when the first timer is created.
            lock_timeout: Seconds to wait for the registry lock before
                reporting LockUnavailable
        """
        self._executor = executor
        self._loop = loop
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._timers: Dict[str, _TimerEntry] = {}
        self._waiters: Set[asyncio.Task] = set()
        self._action_boundary = ErrorBoundary("timer action")
        self._fired = 0
        self._cancelled = 0
        self._closed = False

    @contextmanager
    def _registry(self) -> Iterator[Dict[str, _TimerEntry]]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            logger.error("Timed out waiting for the timer registry lock")
            raise LockUnavailable()
        try:
            yield self._timers
        finally:
            self._lock.release()

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "TimerScheduler needs an event loop: pass one in or create timers from a coroutine"
                ) from None
        if self._loop.is_closed():
            raise RuntimeError("The scheduler's event loop is closed")
        return self._loop

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def create_timer(
        self,
        action: "TimerAction | str",
        target_time: "str | datetime",
        message: Optional[str] = None,
    ) -> Timer:
        """
        Validate and schedule a new timer.

        Args:
            action: TimerAction or its wire name ("popup", "lock", ...)
            target_time: RFC-3339 timestamp, or an aware datetime
            message: Text for popup timers; trimmed before storing

        Returns:
            The created Timer

        Raises:
            InvalidAction, InvalidTimeFormat, TimeNotInFuture, MissingMessage,
            LockUnavailable
        """
        if self._closed:
            raise RuntimeError("Scheduler is shut down")

        action = TimerAction.parse(action)

        if isinstance(target_time, datetime):
            if target_time.tzinfo is None:
                raise InvalidTimeFormat()
            target = target_time.astimezone(timezone.utc)
        else:
            target = parse_rfc3339(target_time)

        now = utcnow()
        if target <= now:
            raise TimeNotInFuture()

        if message is not None and not isinstance(message, str):
            raise MissingMessage("Timer message must be text")
        if action is TimerAction.POPUP and (message is None or not message.strip()):
            raise MissingMessage()

        timer = Timer(
            id=str(uuid.uuid4()),
            action=action,
            target_time=target,
            message=message.strip() if message is not None else None,
            created_at=now,
        )
        entry = _TimerEntry(timer=timer, cancelled=asyncio.Event())
        loop = self._bind_loop()

        # Visible to cancel() before the waiter exists; a cancel that lands
        # in between leaves the event set and the waiter exits at once.
        with self._registry() as timers:
            # shutdown() sets _closed under the same lock before clearing
            if self._closed:
                raise RuntimeError("Scheduler is shut down")
            timers[timer.id] = entry

        if self._on_loop_thread():
            self._arm(entry)
        else:
            loop.call_soon_threadsafe(self._arm, entry)

        log_with_context(
            logger, logging.INFO, "Timer created",
            timer_id=timer.id, action=action.value, target=timer.target_time.isoformat(),
        )
        return timer

    def _arm(self, entry: _TimerEntry) -> None:
        if self._closed:
            return
        task = self._loop.create_task(self._wait(entry), name=f"timer-{entry.timer.id}")
        entry.task = task
        self._waiters.add(task)
        task.add_done_callback(self._waiters.discard)

    async def _wait(self, entry: _TimerEntry) -> None:
        """Waiter body: fire at the deadline unless cancelled first."""
        timer = entry.timer
        delay = timer.remaining().total_seconds()

        try:
            await asyncio.wait_for(entry.cancelled.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        else:
            logger.debug(f"Waiter for timer {timer.id} stopped by cancellation")
            return

        if not self._commit_fire(entry):
            logger.debug(f"Timer {timer.id} was cancelled at its deadline")
            return

        log_with_context(logger, logging.INFO, "Timer fired", timer_id=timer.id, action=timer.action.value)
        await self._action_boundary.run(
            self._executor.execute,
            timer.action,
            timer.message,
            metadata={"timer_id": timer.id},
        )

    def _commit_fire(self, entry: _TimerEntry) -> bool:
        # Blocking acquire: the deadline has passed and the outcome must be settled
        with self._lock:
            if self._timers.get(entry.timer.id) is not entry:
                return False
            del self._timers[entry.timer.id]
            self._fired += 1
            return True

    def list_timers(self) -> List[Timer]:
        """
        Snapshot of pending timers, soonest first.

        Raises:
            LockUnavailable
        """
        with self._registry() as timers:
            snapshot = [entry.timer for entry in timers.values()]
        snapshot.sort(key=lambda t: (t.target_time, t.id))
        return snapshot

    def get_timer(self, timer_id: str) -> Optional[Timer]:
        """Get a pending timer by ID."""
        with self._registry() as timers:
            entry = timers.get(timer_id)
        return entry.timer if entry else None

    def cancel_timer(self, timer_id: str) -> bool:
        """
        Cancel a pending timer.

        Returns:
            True if the timer was pending and is now cancelled, False if no
            such timer is pending (unknown, already fired or cancelled)

        Raises:
            LockUnavailable
        """
        with self._registry() as timers:
            entry = timers.pop(timer_id, None)
            if entry is None:
                logger.debug(f"No pending timer {timer_id} to cancel")
                return False
            self._cancelled += 1

        self._signal(entry)
        log_with_context(logger, logging.INFO, "Timer cancelled", timer_id=timer_id)
        return True

    def _signal(self, entry: _TimerEntry) -> None:
        if self._on_loop_thread():
            entry.cancelled.set()
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(entry.cancelled.set)

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        with self._registry() as timers:
            return {
                "pending": len(timers),
                "fired": self._fired,
                "cancelled": self._cancelled,
                "action_errors": self._action_boundary.error_count,
                "last_action_error": self._action_boundary.last_error,
                "running": not self._closed,
            }

    async def shutdown(self) -> None:
        """Stop every waiter without firing and drop pending timers."""
        with self._lock:
            self._closed = True
            entries = list(self._timers.values())
            self._timers.clear()

        for entry in entries:
            entry.cancelled.set()

        waiters = list(self._waiters)
        for task in waiters:
            task.cancel()
        if waiters:
            await asyncio.gather(*waiters, return_exceptions=True)

        logger.info(f"Timer scheduler stopped, dropped {len(entries)} pending timers")
