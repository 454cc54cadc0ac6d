"""
Timer model and timestamp helpers.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ..core.errors import InvalidAction, InvalidTimeFormat


class TimerAction(Enum):
    """What happens when a timer fires."""
    POPUP = "popup"
    LOCK = "lock"
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"

    @classmethod
    def parse(cls, value: "TimerAction | str") -> "TimerAction":
        """Accept an enum member or its lowercase wire name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidAction(f"Unknown timer action: {value!r}") from None


_RFC3339 = re.compile(
    r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"[Tt ](?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC-3339 timestamp into an aware UTC datetime.

    A zone designator is mandatory; naive timestamps are rejected.

    Raises:
        InvalidTimeFormat: if the text is not a valid RFC-3339 timestamp
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat()

    match = _RFC3339.match(value.strip())
    if not match:
        raise InvalidTimeFormat()

    parts = match.groupdict()
    fraction = (parts["fraction"] or "")[:6].ljust(6, "0")

    offset = parts["offset"]
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        if hours > 23 or minutes > 59:
            raise InvalidTimeFormat()
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    try:
        parsed = datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"]),
            int(parts["minute"]),
            int(parts["second"]),
            int(fraction),
            tzinfo=tz,
        )
    except ValueError:
        raise InvalidTimeFormat() from None

    return parsed.astimezone(timezone.utc)


def format_rfc3339(value: datetime) -> str:
    """Render a datetime as an RFC-3339 UTC string with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Timer:
    """A scheduled one-shot action."""
    id: str
    action: TimerAction
    target_time: datetime
    message: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape shared by the socket and HTTP boundaries."""
        data: Dict[str, Any] = {
            "id": self.id,
            "action": self.action.value,
            "targetTime": format_rfc3339(self.target_time),
        }
        if self.message is not None:
            data["message"] = self.message
        data["createdAt"] = format_rfc3339(self.created_at)
        return data

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        """Time left until the target, never negative."""
        now = now or utcnow()
        return max(self.target_time - now, timedelta(0))

    def format_remaining(self, now: Optional[datetime] = None) -> str:
        left = self.remaining(now)
        if left <= timedelta(0):
            return "due now"

        total = int(left.total_seconds())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours}h {minutes}m {seconds}s"
