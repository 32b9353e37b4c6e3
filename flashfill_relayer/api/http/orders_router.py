# ======================================================================
# ORDERS ROUTER
#
# Scope:
# - Submit / query / cancel orders
# - Operator fill and drain triggers
#
# Route order matters: /orders/process is declared BEFORE
# /orders/{order_id} so the path parameter never captures it.
# ======================================================================
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from flashfill_relayer.api.http.deps import get_service
from flashfill_relayer.api.http.schemas import (
    CancelOrderResponse,
    CreateOrderResponse,
    FillOrderResponse,
    OrderListResponse,
    StatisticsResponse,
)
from flashfill_relayer.services.relayer_service import RelayerService

logger = logging.getLogger("RELAYER_API.orders")

router = APIRouter(prefix="/orders", tags=["orders"])


# --------------------------------------------------
# Submission / listing
# --------------------------------------------------

@router.post("", response_model=CreateOrderResponse)
def create_order(
    payload: Dict[str, Any] = Body(...),
    service: RelayerService = Depends(get_service),
):
    record = service.create_order(payload)
    return CreateOrderResponse(orderId=record.id, trackingId=record.id)


@router.get("", response_model=OrderListResponse)
def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    service: RelayerService = Depends(get_service),
):
    orders, total, limit, offset = service.list_orders(status, limit, offset)
    return OrderListResponse(
        orders=[o.to_dict() for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )


# --------------------------------------------------
# Drain trigger (BEFORE /{order_id})
# --------------------------------------------------

@router.post("/process")
def process_orders(service: RelayerService = Depends(get_service)):
    return service.process_pending().to_dict()


@router.get("/process", response_model=StatisticsResponse)
def processing_statistics(service: RelayerService = Depends(get_service)):
    return StatisticsResponse(statistics=service.statistics())


# --------------------------------------------------
# Single order
# --------------------------------------------------

@router.get("/{order_id}")
def get_order(order_id: str, service: RelayerService = Depends(get_service)):
    return service.get_order(order_id).to_dict()


@router.delete("/{order_id}", response_model=CancelOrderResponse)
def cancel_order(order_id: str, service: RelayerService = Depends(get_service)):
    record = service.cancel_order(order_id)
    return CancelOrderResponse(order=record.to_dict())


@router.post("/{order_id}/fill")
def fill_order(order_id: str, service: RelayerService = Depends(get_service)):
    outcome = service.fill_order(order_id)
    order = outcome.order.to_dict() if outcome.order else None

    if not outcome.success:
        body = FillOrderResponse(success=False, error=outcome.error, order=order)
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return FillOrderResponse(
        success=True,
        txHash=outcome.tx_hash,
        blockNumber=outcome.block_number,
        order=order,
    ).model_dump(exclude_none=True)
