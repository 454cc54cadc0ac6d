"""Shared fixtures for the LockPilot tests."""

import asyncio
from datetime import timedelta

import pytest

from lockpilot.scheduler import TimerScheduler, format_rfc3339
from lockpilot.scheduler.timer import utcnow


class RecordingExecutor:
    """Executor double that records every action it is asked to run."""

    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def execute(self, action, message):
        self.calls.append((action, message))
        if self.fail:
            raise RuntimeError("osascript exploded")


def in_seconds(seconds: float) -> str:
    """RFC-3339 timestamp ``seconds`` from now."""
    return format_rfc3339(utcnow() + timedelta(seconds=seconds))


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
async def scheduler(executor):
    sched = TimerScheduler(executor, loop=asyncio.get_running_loop(), lock_timeout=0.2)
    yield sched
    await sched.shutdown()
