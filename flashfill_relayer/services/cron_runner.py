#!/usr/bin/env python3
"""
CronRunner

In-process periodic trigger for the batch scheduler, driven by the
`schedule` library. The HTTP cron endpoint stays available either way.

- interval_minutes == 0 disables the job
- A failing cycle is logged, the thread keeps running
"""

import threading
import time

import schedule

from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.utils.utils import log_exception

logger = get_component_logger('cron')


class CronRunner(threading.Thread):

    def __init__(self, service, interval_minutes: int, tick_seconds: float = 1.0):
        super().__init__(daemon=True, name="CronRunner")
        self.service = service
        self.interval_minutes = interval_minutes
        self.tick_seconds = tick_seconds
        self.scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()

        if self.enabled:
            self.scheduler.every(interval_minutes).minutes.do(self.run_once)

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    def run_once(self) -> None:
        started = time.time()
        try:
            summary = self.service.run_cycle()
        except Exception as e:
            log_exception("CronRunner.run_once", e, logger)
            return

        logger.info(
            "⏰ CRON_CYCLE | batches=%d | processed=%d | successful=%d | failed=%d | %.1fs",
            summary.batch_count, summary.processed, summary.successful,
            summary.failed, time.time() - started,
        )

    def stop(self) -> None:
        self._stop_event.set()
        self.scheduler.clear()

    def run(self) -> None:
        if not self.enabled:
            logger.info("CronRunner disabled (CRON_INTERVAL_MINUTES=0)")
            return

        logger.info("CronRunner started | every %d min", self.interval_minutes)
        while not self._stop_event.is_set():
            self.scheduler.run_pending()
            self._stop_event.wait(self.tick_seconds)
        logger.info("CronRunner stopped")
