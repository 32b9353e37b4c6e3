#!/usr/bin/env python3
"""
RELAYER SERVICE
===============

Composition root for the relayer core. Built ONCE in main.py and shared
by the HTTP layer and the cron runner.

    OrderStore -> CalldataAssembler -> FillExecutor
                                    -> OrderProcessor (drain step)
                                    -> BatchScheduler (cycle)
                                    -> FillDispatcher (create-time handoff)

Usage:
    service = RelayerService(config)
    service.start()
    service.create_order(payload)
"""

import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from flashfill_relayer.chain.calldata import CalldataAssembler
from flashfill_relayer.chain.settlement_client import Web3ChainClient
from flashfill_relayer.core.config import Config
from flashfill_relayer.core.errors import (
    InvalidStateError,
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
)
from flashfill_relayer.domain.business_models import (
    CycleSummary,
    DrainResult,
    FillOutcome,
    OrderStatus,
)
from flashfill_relayer.execution.batch_scheduler import BatchScheduler
from flashfill_relayer.execution.fill_dispatcher import FillDispatcher
from flashfill_relayer.execution.fill_executor import FillExecutor
from flashfill_relayer.execution.order_processor import OrderProcessor
from flashfill_relayer.execution.validation import validate_submission
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.persistence.models import OrderRecord
from flashfill_relayer.persistence.repository import OrderStore
from flashfill_relayer.utils.utils import now_ms

logger = get_component_logger('relayer_service')

MAX_LIST_LIMIT = 500


def generate_order_id() -> str:
    return f"order_{now_ms()}_{uuid.uuid4().hex[:9]}"


class RelayerService:

    def __init__(
        self,
        config: Config,
        store: Optional[OrderStore] = None,
        chain_client=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.store = store or OrderStore(config.db_path)
        self.chain = chain_client or Web3ChainClient(
            rpc_url=config.rpc_url,
            chain_id=config.chain_id,
            private_key=config.relayer_private_key,
        )

        self.assembler = CalldataAssembler(
            settlement_address=config.settlement_address,
            router=config.swap_router_address,
            fee=config.swap_fee_tier,
            deadline_seconds=config.swap_deadline_seconds,
        )
        self.executor = FillExecutor(
            store=self.store,
            assembler=self.assembler,
            chain_client=self.chain,
            gas_limit=config.fill_gas_limit,
            receipt_timeout=config.receipt_timeout_seconds,
        )
        self.processor = OrderProcessor(
            store=self.store,
            executor=self.executor,
            batch_size=config.drain_batch_size,
            fill_delay=config.fill_delay_seconds,
            sleep=sleep,
        )
        self.scheduler = BatchScheduler(
            processor=self.processor,
            max_batches=config.cycle_max_batches,
            batch_size=config.drain_batch_size,
            batch_delay=config.batch_delay_seconds,
            sleep=sleep,
        )
        self.dispatcher = FillDispatcher(self.executor)

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    def start(self) -> None:
        if not self.dispatcher.is_alive():
            self.dispatcher.start()
        logger.info("🚀 RelayerService started | %s", self.config.summary())

    def stop(self) -> None:
        self.dispatcher.stop()
        logger.info("RelayerService stopped")

    # --------------------------------------------------
    # Submission
    # --------------------------------------------------

    def create_order(self, payload: Dict[str, Any]) -> OrderRecord:
        submission = validate_submission(payload, self.config.relayer_address)

        record = self.store.create(
            OrderRecord(
                id=generate_order_id(),
                order_hash=submission.order_hash,
                extension_hash=submission.extension_hash,
                terms=submission.terms,
                maker_signature=submission.maker_signature,
                extension_calldata=submission.extension_calldata,
                extension_signature=submission.extension_signature,
                created_at=now_ms(),
            )
        )

        # fire-and-forget first attempt
        self.dispatcher.submit(record.id)
        logger.info(
            "ORDER_SUBMITTED | order_id=%s | maker_asset=%s | making=%s",
            record.id, record.terms.maker_asset, record.terms.making_amount,
        )
        return record

    # --------------------------------------------------
    # Queries
    # --------------------------------------------------

    def get_order(self, order_id: str) -> OrderRecord:
        record = self.store.get(order_id)
        if record is None:
            raise OrderNotFound(order_id)
        return record

    def list_orders(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[OrderRecord], int, int, int]:
        """-> (orders, total, limit, offset) with limit/offset as applied"""
        status_filter = None
        if status:
            try:
                status_filter = OrderStatus(status.lower())
            except ValueError:
                raise OrderValidationError(f"Invalid status: {status}")

        limit = max(0, min(int(limit), MAX_LIST_LIMIT))
        offset = max(0, int(offset))

        orders, total = self.store.list(status_filter, limit, offset)
        return orders, total, limit, offset

    def statistics(self) -> Dict[str, int]:
        counts = self.store.counts()
        return {**counts, "total": sum(counts.values())}

    # --------------------------------------------------
    # Mutations
    # --------------------------------------------------

    def cancel_order(self, order_id: str) -> OrderRecord:
        record = self.get_order(order_id)
        if record.status != OrderStatus.PENDING:
            raise InvalidStateError(
                f"Cannot cancel order with status: {record.status.value}",
                current_status=record.status.value,
            )

        try:
            cancelled = self.store.transition(
                order_id, OrderStatus.PENDING, OrderStatus.CANCELLED
            )
        except InvalidTransition as e:
            raise InvalidStateError(
                f"Cannot cancel order with status: {e.current_status}",
                current_status=e.current_status,
            )

        logger.info("ORDER_CANCELLED | order_id=%s", order_id)
        return cancelled

    def fill_order(self, order_id: str) -> FillOutcome:
        return self.executor.attempt_fill(order_id)

    def process_pending(self, limit: Optional[int] = None) -> DrainResult:
        return self.processor.drain(limit or self.config.drain_batch_size)

    def run_cycle(self) -> CycleSummary:
        return self.scheduler.run_cycle()

    # --------------------------------------------------
    # Health
    # --------------------------------------------------

    def health(self) -> Dict[str, Any]:
        inconsistent = self.store.find_inconsistencies()
        if inconsistent:
            logger.warning("STORE_INCONSISTENT | count=%d", len(inconsistent))
        return {
            "status": "degraded" if inconsistent else "ok",
            "env": self.config.app_env,
            "statistics": self.statistics(),
            "inconsistent": inconsistent,
            "dispatchQueue": self.dispatcher.pending,
        }
