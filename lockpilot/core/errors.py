"""Error handling for LockPilot.

Defines the errors the timer commands report to callers, and an error
boundary for work whose failures must never reach a caller.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class TimerError(Exception):
    """Base class for errors reported by the timer commands.

    Each subclass carries the JSON-RPC error code and HTTP status used by
    the command boundaries, plus a user-facing default message.
    """

    code: int = -32000
    status_code: int = 400
    default_message: str = "Timer operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-RPC error object."""
        return {
            "code": self.code,
            "message": self.message,
            "data": {"kind": self.kind},
        }


class InvalidTimeFormat(TimerError):
    """The target time is not an RFC-3339 timestamp."""

    code = -32010
    status_code = 422
    default_message = "Invalid date/time format"


class TimeNotInFuture(TimerError):
    """The target time is now or in the past."""

    code = -32011
    status_code = 422
    default_message = "Selected time must be in the future"


class MissingMessage(TimerError):
    """A popup timer was requested without usable message text."""

    code = -32012
    status_code = 422
    default_message = "Popup timers require a message"


class InvalidAction(TimerError):
    """The action is not one of popup, lock, shutdown, reboot."""

    code = -32013
    status_code = 422
    default_message = "Unknown timer action"


class LockUnavailable(TimerError):
    """The timer registry could not be accessed safely.

    Not caused by user input; callers should treat it as an internal fault.
    """

    code = -32020
    status_code = 503
    default_message = "Failed to lock timer store"


ERRORS_BY_KIND: dict[str, type[TimerError]] = {
    cls.__name__: cls
    for cls in (InvalidTimeFormat, TimeNotInFuture, MissingMessage, InvalidAction, LockUnavailable)
}


@dataclass
class ErrorContext:
    """A failure caught by an ErrorBoundary."""

    operation: str
    message: str
    exception: Exception
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "message": self.message,
            "time": self.timestamp.isoformat(),
            **self.metadata,
        }


class ErrorBoundary:
    """Runs fire-and-forget work whose failures must not reach any caller.

    Failures are logged with their traceback, counted, and the latest one
    is kept for status reporting.
    """

    def __init__(self, name: str):
        self.name = name
        self._error_count = 0
        self._last_error: ErrorContext | None = None

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def last_error(self) -> dict[str, Any] | None:
        """The most recent failure, or None if nothing has failed yet."""
        return self._last_error.to_dict() if self._last_error else None

    async def run(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        metadata: dict[str, Any] | None = None,
        **kwargs,
    ) -> Any:
        """Await ``func(*args, **kwargs)``, returning None if it raises.

        Args:
            func: Coroutine function to run
            *args: Positional arguments
            metadata: Extra fields recorded with a failure
            **kwargs: Keyword arguments
        """
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            self._error_count += 1
            self._last_error = ErrorContext(
                operation=self.name,
                message=f"Error in {self.name}: {e}",
                exception=e,
                metadata=dict(metadata or {}),
            )
            logger.error(self._last_error.message, exc_info=True)
            return None
