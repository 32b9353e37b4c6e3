#!/usr/bin/env python3
"""
BatchScheduler
==============

One cycle = up to N sequential drain steps.

- processed == 0 for a batch  -> stop (queue empty)
- otherwise pause batch_delay -> next batch (no pause after the last)
- a drain step that raises    -> batch-level error, cycle continues
"""

import time
from typing import Callable

from flashfill_relayer.domain.business_models import BatchReport, CycleSummary
from flashfill_relayer.execution.order_processor import OrderProcessor
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.utils.utils import iso_timestamp, log_exception

logger = get_component_logger('batch_scheduler')


class BatchScheduler:

    def __init__(
        self,
        processor: OrderProcessor,
        max_batches: int = 5,
        batch_size: int = 10,
        batch_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.processor = processor
        self.max_batches = max_batches
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def run_cycle(self) -> CycleSummary:
        summary = CycleSummary(timestamp=iso_timestamp())
        logger.info("CYCLE_START | max_batches=%d | batch_size=%d",
                    self.max_batches, self.batch_size)

        for batch in range(1, self.max_batches + 1):
            try:
                drain = self.processor.drain(limit=self.batch_size)
            except Exception as e:
                log_exception(f"run_cycle[batch={batch}]", e, logger)
                summary.batches.append(BatchReport(batch=batch, error=str(e)))
            else:
                summary.batches.append(BatchReport(batch=batch, drain=drain))
                logger.info(
                    "BATCH_DONE | batch=%d | processed=%d | successful=%d | failed=%d",
                    batch, drain.processed, drain.successful, drain.failed,
                )
                if drain.processed == 0:
                    break

            if batch < self.max_batches and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        logger.info(
            "CYCLE_DONE | batches=%d | processed=%d | successful=%d | failed=%d",
            summary.batch_count, summary.processed, summary.successful, summary.failed,
        )
        return summary
