#!/usr/bin/env python3
"""
FillDispatcher

Handoff between order creation and the first fill attempt.

- submit() never blocks the caller
- One worker thread, fills run sequentially
- At-least-once within the process lifetime; the executor's
  pending guard turns re-delivery into a logged no-op
- Orders still pending after a restart are left to the scheduler
"""

import queue
import threading
from typing import Optional

from flashfill_relayer.core.errors import InvalidStateError, OrderNotFound
from flashfill_relayer.execution.fill_executor import FillExecutor
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.utils.utils import log_exception

logger = get_component_logger('fill_dispatcher')

_STOP = object()


class FillDispatcher(threading.Thread):

    def __init__(self, executor: FillExecutor, poll_interval: float = 0.5):
        super().__init__(daemon=True, name="FillDispatcher")
        self.executor = executor
        self.poll_interval = poll_interval
        self._queue: "queue.Queue" = queue.Queue()
        self._running = True

    # --------------------------------------------------
    # Producer side
    # --------------------------------------------------

    def submit(self, order_id: str) -> None:
        self._queue.put(order_id)
        logger.debug("DISPATCH_QUEUED | order_id=%s | depth=%d", order_id, self._queue.qsize())

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # --------------------------------------------------
    # Thread lifecycle
    # --------------------------------------------------

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._running = False
        self._queue.put(_STOP)
        if self.is_alive():
            self.join(timeout)

    def run(self) -> None:
        logger.info("🚀 FillDispatcher started")
        while self._running:
            try:
                item = self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if item is _STOP:
                    break
                self.process(item)
            finally:
                self._queue.task_done()

        logger.info("FillDispatcher stopped")

    def process(self, order_id: str) -> None:
        try:
            outcome = self.executor.attempt_fill(order_id)
        except (InvalidStateError, OrderNotFound) as e:
            logger.info("DISPATCH_SKIPPED | order_id=%s | reason=%s", order_id, e.message)
            return
        except Exception as e:
            log_exception(f"dispatch[{order_id}]", e, logger)
            return

        logger.info(
            "DISPATCH_DONE | order_id=%s | success=%s | tx=%s",
            order_id, outcome.success, outcome.tx_hash,
        )

    def join_queue(self) -> None:
        """Block until every queued id has been handled."""
        self._queue.join()
