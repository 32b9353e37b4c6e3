#!/usr/bin/env python3
"""
Domain Models Module
Order status state machine and the result objects of fills, drains and cycles.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, FrozenSet


class OrderStatus(str, Enum):
    PENDING = "pending"
    FILLING = "filling"
    FILLED = "filled"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALL_STATUSES = tuple(OrderStatus)

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.FILLED, OrderStatus.FAILED, OrderStatus.CANCELLED}
)

# pending -> filling -> {filled | failed}; pending -> cancelled
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.FILLING, OrderStatus.CANCELLED}),
    OrderStatus.FILLING: frozenset({OrderStatus.FILLED, OrderStatus.FAILED}),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_allowed_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


@dataclass
class FillOutcome:
    """Result of one fill attempt"""
    order_id: str
    success: bool
    order: Optional[Any] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "orderId": self.order_id,
            "success": self.success,
        }
        if self.tx_hash:
            result["txHash"] = self.tx_hash
        if self.block_number is not None:
            result["blockNumber"] = self.block_number
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class DrainResult:
    """Result of one drain step (at most K pending orders)"""
    results: List[FillOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        if not self.results:
            message = "No pending orders to process"
        else:
            message = f"Processed {self.processed} orders"
        return {
            "message": message,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class BatchReport:
    batch: int
    drain: Optional[DrainResult] = None
    error: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.drain.processed if self.drain else 0

    def to_dict(self) -> Dict[str, Any]:
        if self.drain is None:
            return {"batch": self.batch, "error": self.error}
        return {"batch": self.batch, **self.drain.to_dict()}


@dataclass
class CycleSummary:
    """Aggregate of one scheduler cycle"""
    timestamp: str
    batches: List[BatchReport] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(b.processed for b in self.batches)

    @property
    def successful(self) -> int:
        return sum(b.drain.successful for b in self.batches if b.drain)

    @property
    def failed(self) -> int:
        return sum(b.drain.failed for b in self.batches if b.drain)

    @property
    def batch_count(self) -> int:
        return len(self.batches)

    @property
    def errors(self) -> List[str]:
        return [b.error for b in self.batches if b.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "timestamp": self.timestamp,
            "summary": {
                "totalProcessed": self.processed,
                "totalSuccessful": self.successful,
                "totalFailed": self.failed,
                "batchCount": self.batch_count,
            },
            "batches": [b.to_dict() for b in self.batches],
        }
