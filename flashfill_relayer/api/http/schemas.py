#!/usr/bin/env python3
"""
RELAYER HTTP SCHEMAS

Response shapes of the relayer API. Wire keys are camelCase.
Order records are passed through as OrderRecord.to_dict().
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class _Wire(BaseModel):
    model_config = ConfigDict(extra="allow")


class CreateOrderResponse(_Wire):
    success: bool = True
    orderId: str
    trackingId: str
    status: str = "pending"


class OrderListResponse(_Wire):
    orders: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int


class CancelOrderResponse(_Wire):
    success: bool = True
    message: str = "Order cancelled successfully"
    order: Dict[str, Any]


class FillOrderResponse(_Wire):
    success: bool
    txHash: Optional[str] = None
    blockNumber: Optional[int] = None
    error: Optional[str] = None
    order: Optional[Dict[str, Any]] = None


class StatisticsResponse(_Wire):
    statistics: Dict[str, int]


class CronStatusResponse(_Wire):
    status: str = "active"
    timestamp: str
    message: str = "Cron job endpoint is active"
