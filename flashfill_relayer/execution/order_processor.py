#!/usr/bin/env python3
"""
OrderProcessor - drain step

Pops up to K pending orders (oldest first) and runs the fill executor
on each, sequentially. One order's failure never aborts its siblings.
"""

import time
from typing import Callable

from flashfill_relayer.core.errors import RelayerError
from flashfill_relayer.domain.business_models import DrainResult, FillOutcome
from flashfill_relayer.execution.fill_executor import FillExecutor
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.persistence.repository import OrderStore
from flashfill_relayer.utils.utils import log_exception

logger = get_component_logger('order_processor')

DEFAULT_DRAIN_LIMIT = 10


class OrderProcessor:

    def __init__(
        self,
        store: OrderStore,
        executor: FillExecutor,
        batch_size: int = DEFAULT_DRAIN_LIMIT,
        fill_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.executor = executor
        self.batch_size = batch_size
        self.fill_delay = fill_delay
        self._sleep = sleep

    def drain(self, limit: int = None) -> DrainResult:
        limit = limit or self.batch_size
        order_ids = self.store.pending_ids(limit)
        result = DrainResult()

        if not order_ids:
            logger.debug("DRAIN_EMPTY | no pending orders")
            return result

        logger.info("DRAIN_START | orders=%d | limit=%d", len(order_ids), limit)

        for index, order_id in enumerate(order_ids):
            try:
                outcome = self.executor.attempt_fill(order_id)
            except RelayerError as e:
                # Another trigger claimed it, or it vanished
                logger.info("DRAIN_SKIP | order_id=%s | reason=%s", order_id, e.message)
                outcome = FillOutcome(order_id=order_id, success=False, error=e.message)
            except Exception as e:
                log_exception(f"drain[{order_id}]", e, logger)
                outcome = FillOutcome(order_id=order_id, success=False, error=str(e))

            result.results.append(outcome)

            if self.fill_delay > 0 and index < len(order_ids) - 1:
                self._sleep(self.fill_delay)

        logger.info(
            "DRAIN_DONE | processed=%d | successful=%d | failed=%d",
            result.processed, result.successful, result.failed,
        )
        return result
