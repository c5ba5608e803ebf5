"""Periodic cleanup of abandoned games."""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from .service import GameService

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "games:cleanup"


def build_scheduler() -> BackgroundScheduler:
    jobstores = {"default": MemoryJobStore()}
    executors = {"default": ThreadPoolExecutor(max_workers=1)}
    job_defaults = {
        "coalesce": True,
        "max_instances": 1,
        "misfire_grace_time": 30,
    }
    return BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone="UTC",
    )


class CleanupScheduler:
    """Runs ``GameService.cleanup`` every ``interval`` seconds in the background."""

    def __init__(self, service: GameService, interval: float) -> None:
        self.service = service
        self.interval = interval
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_once(self) -> None:
        try:
            self.service.cleanup()
        except Exception:
            # The next tick retries; the job itself must stay scheduled.
            logger.exception("periodic cleanup failed")

    def start(self) -> None:
        if self.interval <= 0:
            logger.info("periodic cleanup disabled")
            return
        if self.running:
            return
        self._scheduler = build_scheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger="interval",
            seconds=self.interval,
            id=CLEANUP_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("periodic cleanup every %ss", self.interval)

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
