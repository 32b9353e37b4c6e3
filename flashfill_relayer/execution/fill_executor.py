#!/usr/bin/env python3
"""
FillExecutor
============

Drives ONE order through pending -> filling -> {filled | failed}.

🎯 FLOW
Step 1: CAS pending -> filling             (before ANY chain interaction)
Step 2: Build swap / taker traits / params (CalldataAssembler)
Step 3: Submit flashLoanFill, wait receipt (chain client, bounded wait)
Step 4: filling -> filled                  (tx_hash, filled_at, block_number)
Step 5: filling -> failed                  (error_message, tx_hash if broadcast)

Invariants:
- Exactly one terminal transition per call that won Step 1
- Build / submission errors never escape this boundary
- Losing the Step 1 race is InvalidStateError, nothing is submitted
"""

from typing import Callable, Optional

from flashfill_relayer.chain.calldata import CalldataAssembler
from flashfill_relayer.core.errors import (
    InvalidStateError,
    InvalidTransition,
    OrderNotFound,
    describe_chain_error,
)
from flashfill_relayer.domain.business_models import FillOutcome, OrderStatus
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.persistence.repository import OrderStore
from flashfill_relayer.utils.utils import now_ms, now_seconds

logger = get_component_logger('fill_executor')

DEFAULT_GAS_LIMIT = 1_000_000
DEFAULT_RECEIPT_TIMEOUT = 120.0


class FillExecutor:

    def __init__(
        self,
        store: OrderStore,
        assembler: CalldataAssembler,
        chain_client,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        clock: Callable[[], int] = now_seconds,
    ):
        self.store = store
        self.assembler = assembler
        self.chain = chain_client
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.clock = clock

    def attempt_fill(self, order_id: str) -> FillOutcome:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                f"Order is not pending (current status: {order.status.value})",
                current_status=order.status.value,
            )

        # ---------------- STEP 1: claim ----------------
        try:
            order = self.store.transition(order_id, OrderStatus.PENDING, OrderStatus.FILLING)
        except InvalidTransition as e:
            raise InvalidStateError(
                f"Order is not pending (current status: {e.current_status})",
                current_status=e.current_status,
            )

        logger.info("FILL_STARTED | order_id=%s", order_id)

        tx_hash: Optional[str] = None
        try:
            # ---------------- STEP 2: build ----------------
            filler = self.chain.filler_address
            calldata = self.assembler.build(order, filler, self.clock())

            # ---------------- STEP 3: submit ----------------
            tx_hash = self.chain.submit_flash_loan_fill(
                settlement=calldata.settlement,
                asset=calldata.asset,
                amount=calldata.amount,
                params=calldata.params,
                gas_limit=self.gas_limit,
            )
            receipt = self.chain.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)

        except Exception as e:
            # ---------------- STEP 5: failed ----------------
            message = describe_chain_error(e, "filling order")
            tx_hash = getattr(e, "tx_hash", None) or tx_hash

            fields = {"error_message": message}
            if tx_hash:
                fields["tx_hash"] = tx_hash
            failed = self.store.transition(
                order_id, OrderStatus.FILLING, OrderStatus.FAILED, **fields
            )

            logger.error(
                "FILL_FAILED | order_id=%s | tx=%s | error=%s",
                order_id, tx_hash, message,
            )
            return FillOutcome(
                order_id=order_id,
                success=False,
                order=failed,
                tx_hash=tx_hash,
                error=message,
            )

        # ---------------- STEP 4: filled ----------------
        filled = self.store.transition(
            order_id,
            OrderStatus.FILLING,
            OrderStatus.FILLED,
            tx_hash=receipt.tx_hash,
            filled_at=now_ms(),
            block_number=receipt.block_number,
        )

        logger.info(
            "✅ FILL_CONFIRMED | order_id=%s | tx=%s | block=%s",
            order_id, receipt.tx_hash, receipt.block_number,
        )
        return FillOutcome(
            order_id=order_id,
            success=True,
            order=filled,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )
