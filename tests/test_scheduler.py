"""Tests for the timer registry: validation, ordering, firing and cancellation."""

import asyncio
import random
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from conftest import RecordingExecutor, in_seconds
from lockpilot.core.errors import (
    InvalidAction,
    InvalidTimeFormat,
    LockUnavailable,
    MissingMessage,
    TimeNotInFuture,
)
from lockpilot.scheduler import TimerAction, TimerScheduler


class TestCreate:
    async def test_returns_timer(self, scheduler):
        timer = scheduler.create_timer("lock", in_seconds(3600))

        assert timer.action is TimerAction.LOCK
        assert timer.message is None
        assert timer.created_at < timer.target_time
        assert scheduler.list_timers() == [timer]

    async def test_ids_are_unique(self, scheduler):
        ids = {scheduler.create_timer("lock", in_seconds(3600)).id for _ in range(200)}
        assert len(ids) == 200

    async def test_accepts_enum_and_aware_datetime(self, scheduler):
        target = datetime.now(timezone.utc) + timedelta(hours=1)
        timer = scheduler.create_timer(TimerAction.REBOOT, target)
        assert timer.action is TimerAction.REBOOT
        assert timer.target_time == target

    async def test_aware_datetime_is_normalised_to_utc(self, scheduler):
        target = (datetime.now(timezone.utc) + timedelta(hours=1)).astimezone(timezone(timedelta(hours=-7)))
        timer = scheduler.create_timer("lock", target)
        assert timer.target_time.tzinfo is timezone.utc
        assert timer.target_time == target

    async def test_offset_is_normalised_to_utc(self, scheduler):
        local = (datetime.now(timezone.utc) + timedelta(hours=1)).astimezone(timezone(timedelta(hours=5)))
        timer = scheduler.create_timer("shutdown", local.isoformat())
        assert timer.target_time.utcoffset() == timedelta(0)
        assert abs(timer.target_time - local) < timedelta(seconds=1)

    @pytest.mark.parametrize("value", [
        "tomorrow",
        "2026-10-17",
        "2026-13-40T10:00:00Z",
        "",
        "2099-01-01T00:00:00+24:00",
        "2099-01-01T00:00:00-99:00",
    ])
    async def test_rejects_malformed_time(self, scheduler, value):
        with pytest.raises(InvalidTimeFormat):
            scheduler.create_timer("lock", value)
        assert scheduler.list_timers() == []

    async def test_rejects_naive_datetime(self, scheduler):
        with pytest.raises(InvalidTimeFormat):
            scheduler.create_timer("lock", datetime.now() + timedelta(hours=1))

    @pytest.mark.parametrize("seconds", [-3600, -1, 0])
    async def test_rejects_time_not_in_future(self, scheduler, seconds):
        with pytest.raises(TimeNotInFuture):
            scheduler.create_timer("lock", in_seconds(seconds))
        assert scheduler.list_timers() == []

    async def test_failed_create_leaves_registry_unchanged(self, scheduler):
        scheduler.create_timer("lock", in_seconds(3600))

        for bad in ("garbage", in_seconds(-5)):
            with pytest.raises((InvalidTimeFormat, TimeNotInFuture)):
                scheduler.create_timer("lock", bad)

        assert len(scheduler.list_timers()) == 1

    @pytest.mark.parametrize("message", [None, "", "   ", "\n\t"])
    async def test_popup_requires_message(self, scheduler, message):
        with pytest.raises(MissingMessage):
            scheduler.create_timer("popup", in_seconds(60), message)
        assert scheduler.list_timers() == []

    @pytest.mark.parametrize("action", ["popup", "lock"])
    async def test_message_must_be_text(self, scheduler, action):
        with pytest.raises(MissingMessage):
            scheduler.create_timer(action, in_seconds(60), 123)
        assert scheduler.list_timers() == []

    async def test_popup_message_is_trimmed(self, scheduler):
        timer = scheduler.create_timer("popup", in_seconds(60), "  hi  ")
        assert timer.message == "hi"

    async def test_non_popup_message_is_trimmed_and_kept(self, scheduler):
        timer = scheduler.create_timer("lock", in_seconds(60), "  going home ")
        assert timer.message == "going home"

    async def test_time_is_checked_before_message(self, scheduler):
        with pytest.raises(TimeNotInFuture):
            scheduler.create_timer("popup", in_seconds(-1), None)

    async def test_unknown_action(self, scheduler):
        with pytest.raises(InvalidAction):
            scheduler.create_timer("hibernate", in_seconds(60))

    def test_validation_does_not_need_a_loop(self, executor):
        sched = TimerScheduler(executor)
        with pytest.raises(MissingMessage):
            sched.create_timer("popup", in_seconds(60))

    def test_create_without_loop_fails(self, executor):
        sched = TimerScheduler(executor)
        with pytest.raises(RuntimeError):
            sched.create_timer("lock", in_seconds(60))
        assert sched.list_timers() == []


class TestList:
    async def test_sorted_by_target_time(self, scheduler):
        t3 = scheduler.create_timer("reboot", in_seconds(3000))
        t1 = scheduler.create_timer("lock", in_seconds(1000))
        t2 = scheduler.create_timer("popup", in_seconds(2000), "stretch")

        assert scheduler.list_timers() == [t1, t2, t3]

    async def test_ties_broken_by_id(self, scheduler):
        target = datetime.now(timezone.utc) + timedelta(hours=1)
        timers = [scheduler.create_timer("lock", target) for _ in range(5)]

        assert scheduler.list_timers() == sorted(timers, key=lambda t: t.id)

    async def test_snapshot_is_a_copy(self, scheduler):
        scheduler.create_timer("lock", in_seconds(3600))
        snapshot = scheduler.list_timers()
        snapshot.clear()
        assert len(scheduler.list_timers()) == 1

    async def test_lock_unavailable(self, scheduler):
        scheduler._lock.acquire()
        try:
            with pytest.raises(LockUnavailable):
                scheduler.list_timers()
            with pytest.raises(LockUnavailable):
                scheduler.cancel_timer("anything")
        finally:
            scheduler._lock.release()

        assert scheduler.list_timers() == []


class TestCancel:
    async def test_cancel_then_cancel_again(self, scheduler):
        timer = scheduler.create_timer("lock", in_seconds(3600))

        assert scheduler.cancel_timer(timer.id) is True
        assert scheduler.cancel_timer(timer.id) is False
        assert scheduler.list_timers() == []

    async def test_cancel_unknown_id(self, scheduler):
        assert scheduler.cancel_timer("no-such-timer") is False

    async def test_cancel_leaves_other_timers(self, scheduler):
        keep = scheduler.create_timer("lock", in_seconds(3600))
        drop = scheduler.create_timer("reboot", in_seconds(1800))

        scheduler.cancel_timer(drop.id)

        assert scheduler.list_timers() == [keep]
        assert scheduler.get_timer(drop.id) is None
        assert scheduler.get_timer(keep.id) == keep

    async def test_cancel_before_deadline_never_fires(self, scheduler, executor):
        timer = scheduler.create_timer("lock", in_seconds(0.2))

        assert scheduler.cancel_timer(timer.id) is True
        await asyncio.sleep(0.4)

        assert executor.calls == []
        assert scheduler.get_stats()["cancelled"] == 1

    async def test_cancel_after_fire_returns_false(self, scheduler, executor):
        timer = scheduler.create_timer("shutdown", in_seconds(0.1))
        await asyncio.sleep(0.3)

        assert scheduler.cancel_timer(timer.id) is False
        assert executor.calls == [(TimerAction.SHUTDOWN, None)]

    async def test_cancel_stops_the_waiter(self, scheduler):
        timer = scheduler.create_timer("lock", in_seconds(3600))
        assert len(scheduler._waiters) == 1

        scheduler.cancel_timer(timer.id)
        await asyncio.sleep(0.05)

        assert scheduler._waiters == set()


class TestFiring:
    async def test_popup_scenario(self, scheduler, executor):
        timer = scheduler.create_timer("popup", in_seconds(0.3), "Break time")
        assert timer.message == "Break time"

        await asyncio.sleep(0.6)

        assert timer not in scheduler.list_timers()
        assert executor.calls == [(TimerAction.POPUP, "Break time")]

    async def test_cancelled_lock_scenario(self, scheduler, executor):
        timer = scheduler.create_timer("lock", in_seconds(3600))

        assert scheduler.cancel_timer(timer.id) is True
        assert scheduler.list_timers() == []
        await asyncio.sleep(0.1)
        assert executor.calls == []

    async def test_fires_in_deadline_order(self, scheduler, executor):
        scheduler.create_timer("popup", in_seconds(0.3), "third")
        scheduler.create_timer("popup", in_seconds(0.1), "first")
        scheduler.create_timer("popup", in_seconds(0.2), "second")

        await asyncio.sleep(0.5)

        assert [message for _, message in executor.calls] == ["first", "second", "third"]

    async def test_each_timer_fires_once(self, scheduler, executor):
        for i in range(20):
            scheduler.create_timer("popup", in_seconds(0.1), str(i))

        await asyncio.sleep(0.4)

        assert sorted(int(message) for _, message in executor.calls) == list(range(20))
        assert scheduler.get_stats()["fired"] == 20
        assert scheduler.list_timers() == []

    async def test_executor_failure_is_swallowed(self):
        executor = RecordingExecutor(fail=True)
        sched = TimerScheduler(executor, loop=asyncio.get_running_loop())
        try:
            timer = sched.create_timer("reboot", in_seconds(0.1))
            await asyncio.sleep(0.3)

            assert executor.calls == [(TimerAction.REBOOT, None)]
            assert sched.get_timer(timer.id) is None
            assert sched.cancel_timer(timer.id) is False
            stats = sched.get_stats()
            assert stats["fired"] == 1
            assert stats["action_errors"] == 1
            assert stats["last_action_error"]["timer_id"] == timer.id
            assert "osascript exploded" in stats["last_action_error"]["message"]
        finally:
            await sched.shutdown()

    async def test_binds_to_running_loop(self, executor):
        sched = TimerScheduler(executor)
        try:
            sched.create_timer("lock", in_seconds(0.1))
            await asyncio.sleep(0.3)
            assert executor.calls == [(TimerAction.LOCK, None)]
        finally:
            await sched.shutdown()


class TestThreads:
    async def test_create_from_another_thread(self, scheduler, executor):
        loop = asyncio.get_running_loop()
        timer = await loop.run_in_executor(None, scheduler.create_timer, "popup", in_seconds(0.1), "from a thread")

        assert scheduler.get_timer(timer.id) == timer
        await asyncio.sleep(0.3)
        assert executor.calls == [(TimerAction.POPUP, "from a thread")]

    async def test_cancel_from_another_thread(self, scheduler, executor):
        loop = asyncio.get_running_loop()
        timer = scheduler.create_timer("lock", in_seconds(0.2))

        assert await loop.run_in_executor(None, scheduler.cancel_timer, timer.id) is True
        await asyncio.sleep(0.4)
        assert executor.calls == []

    async def test_cancel_racing_deadline_is_exclusive(self, scheduler, executor):
        """Every timer ends up either fired once or cancelled, never both."""
        loop = asyncio.get_running_loop()
        count = 40
        timers = [scheduler.create_timer("popup", in_seconds(0.2), str(i)) for i in range(count)]

        def cancel_near_deadline(timer_id):
            time.sleep(random.uniform(0.17, 0.23))
            return scheduler.cancel_timer(timer_id)

        with ThreadPoolExecutor(max_workers=count) as pool:
            results = await asyncio.gather(
                *(loop.run_in_executor(pool, cancel_near_deadline, timer.id) for timer in timers)
            )
        await asyncio.sleep(0.2)

        cancelled = {timer.message for timer, ok in zip(timers, results) if ok}
        fired = [message for _, message in executor.calls]

        assert len(fired) == len(set(fired))
        assert cancelled.isdisjoint(fired)
        assert cancelled | set(fired) == {str(i) for i in range(count)}
        assert scheduler.list_timers() == []


class TestShutdown:
    async def test_shutdown_drops_pending_timers(self, executor):
        sched = TimerScheduler(executor, loop=asyncio.get_running_loop())
        sched.create_timer("lock", in_seconds(0.1))
        sched.create_timer("reboot", in_seconds(3600))

        await sched.shutdown()
        await asyncio.sleep(0.2)

        assert sched.list_timers() == []
        assert sched._waiters == set()
        assert executor.calls == []
        assert sched.get_stats()["running"] is False

    async def test_create_after_shutdown(self, executor):
        sched = TimerScheduler(executor, loop=asyncio.get_running_loop())
        await sched.shutdown()

        with pytest.raises(RuntimeError):
            sched.create_timer("lock", in_seconds(60))

    async def test_shutdown_wins_against_create_from_another_thread(self, executor):
        sched = TimerScheduler(executor, loop=asyncio.get_running_loop())
        loop = asyncio.get_running_loop()
        created = []

        def keep_creating():
            while True:
                try:
                    created.append(sched.create_timer("lock", in_seconds(0.5)))
                except RuntimeError:
                    return
                time.sleep(0.001)

        worker = loop.run_in_executor(None, keep_creating)
        await asyncio.sleep(0.05)
        await sched.shutdown()
        await worker
        await asyncio.sleep(0.7)

        assert created
        assert sched.list_timers() == []
        assert executor.calls == []
        assert sched._waiters == set()
