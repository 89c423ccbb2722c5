import asyncio
import threading
from datetime import datetime, timezone
from types import SimpleNamespace

from jobhunter.core.scheduler import SchedulerService, next_daily_run, parse_daily_at


class GatedScheduler(SchedulerService):
    """Run body blocks until the test releases it."""

    def __init__(self):
        super().__init__(SimpleNamespace(state=SimpleNamespace()))
        self.started = threading.Event()
        self.release = threading.Event()
        self.triggers = []

    def _run_blocking(self, trigger):
        self.triggers.append(trigger)
        self.started.set()
        self.release.wait(timeout=5)
        return {"run_id": "r-1", "stats": {"queries": 0}}


class FailingScheduler(SchedulerService):
    def __init__(self):
        super().__init__(SimpleNamespace(state=SimpleNamespace()))

    def _run_blocking(self, trigger):
        raise RuntimeError("database is locked")


def test_parse_daily_at():
    assert parse_daily_at("06:30") == (6, 30)
    assert parse_daily_at(" 23:59 ") == (23, 59)
    assert parse_daily_at("24:00") == (0, 0)
    assert parse_daily_at("noon") == (0, 0)
    assert parse_daily_at(None) == (0, 0)


def test_next_daily_run_rolls_over_to_tomorrow():
    now = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)

    assert next_daily_run(now, 9, 15) == datetime(2024, 3, 10, 9, 15, tzinfo=timezone.utc)
    assert next_daily_run(now, 8, 0) == datetime(2024, 3, 11, 8, 0, tzinfo=timezone.utc)
    assert next_daily_run(now, 7, 0) == datetime(2024, 3, 11, 7, 0, tzinfo=timezone.utc)


def test_invalid_mode_falls_back_to_off(monkeypatch):
    monkeypatch.setenv("SCHEDULER_MODE", "hourly")
    monkeypatch.setenv("REFRESH_INTERVAL_MINUTES", "0")

    sched = GatedScheduler()

    assert sched.mode == "off"
    assert sched.interval_minutes == 1


def test_overlapping_run_is_skipped():
    sched = GatedScheduler()

    async def scenario():
        first = asyncio.create_task(sched.run_once(trigger="loop"))
        while not sched.started.is_set():
            await asyncio.sleep(0.01)
        assert sched.busy
        skipped = await sched.run_once(trigger="manual")
        sched.release.set()
        return skipped, await first

    skipped, completed = asyncio.run(scenario())

    assert skipped is None
    assert completed["run_id"] == "r-1"
    assert sched.triggers == ["loop"]
    assert not sched.busy
    assert sched.status()["last_run_stats"] == {"queries": 0}


def test_failed_run_is_reported_in_status():
    sched = FailingScheduler()

    result = asyncio.run(sched.run_once())

    status = sched.status()
    assert result is None
    assert status["last_error"] == "database is locked"
    assert status["last_run_finished_at"] is not None
    assert status["busy"] is False


def test_off_mode_start_does_not_schedule():
    sched = GatedScheduler()

    asyncio.run(sched.start())

    assert sched.task is None
    assert sched.status()["running"] is False
    assert sched.status()["next_run_at"] is None
