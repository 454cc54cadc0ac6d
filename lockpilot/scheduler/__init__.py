"""
LockPilot Scheduler - one-shot timers that fire a system action.
"""

from .scheduler import TimerScheduler
from .timer import Timer, TimerAction, format_rfc3339, parse_rfc3339

__all__ = [
    "TimerScheduler",
    "Timer",
    "TimerAction",
    "format_rfc3339",
    "parse_rfc3339",
]
