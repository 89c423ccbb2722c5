import asyncio
import logging
import os
from datetime import datetime, timezone, timedelta
from typing import Optional

from jobhunter.core.config import get_runtime_config
from jobhunter.services.runner import run_saved_queries

logger = logging.getLogger("scheduler")

MODES = ("off", "cron", "loop", "daily")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_daily_at(raw: Optional[str]) -> tuple:
    """'HH:MM' -> (hour, minute); invalid values fall back to midnight."""
    try:
        hh, mm = (raw or "00:00").strip().split(":", 1)
        hour, minute = int(hh), int(mm)
        if 0 <= hour < 24 and 0 <= minute < 60:
            return hour, minute
    except ValueError:
        pass
    logger.warning("SCHEDULER_DAILY_AT=%r is invalid. Using 00:00.", raw)
    return 0, 0


def next_daily_run(now: datetime, hour: int, minute: int) -> datetime:
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class SchedulerService:
    def __init__(self, app):
        self.app = app
        self.task: Optional[asyncio.Task] = None
        self.running = False
        self._lock = asyncio.Lock()

        # status fields
        self._read_env()

        self.last_run_started_at: Optional[str] = None
        self.last_run_finished_at: Optional[str] = None
        self.last_run_stats: Optional[dict] = None
        self.last_error: Optional[str] = None

        self.next_run_at: Optional[str] = None  # ISO

    def _read_env(self):
        self.mode = (os.getenv("SCHEDULER_MODE") or "off").lower()
        if self.mode not in MODES:
            logger.warning("SCHEDULER_MODE=%r is invalid. Using off.", self.mode)
            self.mode = "off"
        try:
            self.interval_minutes = max(1, int(os.getenv("REFRESH_INTERVAL_MINUTES") or "15"))
        except ValueError:
            self.interval_minutes = 15
        self.daily_at = parse_daily_at(os.getenv("SCHEDULER_DAILY_AT") or "00:00")

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def start(self):
        self._read_env()
        logger.info("Scheduler mode = %s", self.mode)

        if self.mode == "off":
            self.running = False
            self.next_run_at = None
            return

        if self.mode == "cron":
            self.running = True
            await self.run_once(trigger="startup-cron")
            self.running = False
            self.next_run_at = None
            return

        if not self.running:
            self.running = True
            runner = self.loop_runner if self.mode == "loop" else self.daily_runner
            self.task = asyncio.create_task(runner())

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
        self.next_run_at = None

    def _set_next_run_eta(self):
        if not self.running or self.mode not in ("loop", "daily"):
            self.next_run_at = None
            return
        if self.mode == "loop":
            eta = now_utc() + timedelta(minutes=self.interval_minutes)
        else:
            eta = next_daily_run(now_utc(), *self.daily_at)
        self.next_run_at = eta.isoformat()

    def _run_blocking(self, trigger: str) -> dict:
        state = self.app.state
        return run_saved_queries(
            state.db_path,
            state.job_source,
            state.notifier,
            get_runtime_config(),
            trigger=trigger,
        )

    async def run_once(self, trigger: str = "manual") -> Optional[dict]:
        """Run one pass; returns None when a pass is already in progress."""
        if self._lock.locked():
            logger.info("Scheduler run skipped (trigger=%s): previous run still in progress", trigger)
            return None

        async with self._lock:
            self.last_error = None
            self.last_run_started_at = now_utc().isoformat()
            logger.info("Scheduler executing run_once() trigger=%s", trigger)

            result = None
            try:
                # ingestion blocks (HTTP + inter-page sleep); keep it off the event loop
                result = await asyncio.to_thread(self._run_blocking, trigger)
                self.last_run_stats = result.get("stats")
                logger.info("Scheduler run complete: run_id=%s", result.get("run_id"))
            except Exception as e:
                self.last_error = str(e)
                logger.exception("Scheduler run failed")
            finally:
                self.last_run_finished_at = now_utc().isoformat()
                self._set_next_run_eta()
            return result

    async def loop_runner(self):
        logger.info("Scheduler loop interval = %s minutes", self.interval_minutes)
        self._set_next_run_eta()

        while self.running:
            await self.run_once(trigger="loop")
            await asyncio.sleep(self.interval_minutes * 60)

    async def daily_runner(self):
        hour, minute = self.daily_at
        logger.info("Scheduler daily run at %02d:%02d UTC", hour, minute)

        while self.running:
            self._set_next_run_eta()
            wait_s = (next_daily_run(now_utc(), hour, minute) - now_utc()).total_seconds()
            await asyncio.sleep(max(0.0, wait_s))
            if not self.running:
                break
            await self.run_once(trigger="daily")

    def status(self) -> dict:
        return {
            "mode": self.mode,
            "interval_minutes": self.interval_minutes,
            "daily_at": "%02d:%02d" % self.daily_at,
            "running": bool(self.running),
            "busy": self.busy,
            "last_run_started_at": self.last_run_started_at,
            "last_run_finished_at": self.last_run_finished_at,
            "last_run_stats": self.last_run_stats,
            "last_error": self.last_error,
            "next_run_at": self.next_run_at,
        }
