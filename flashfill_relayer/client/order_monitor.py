#!/usr/bin/env python3
"""
OrderMonitorClient

Thin HTTP client for the relayer API (submit / status / cancel / list /
statistics) plus a polling helper that waits for a terminal status.

Usage:
    client = OrderMonitorClient("http://localhost:8000")
    ids = client.submit_order(payload)
    final = client.wait_for_completion(ids["orderId"])
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from flashfill_relayer.core.errors import ErrorCode, RelayerError
from flashfill_relayer.domain.business_models import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

STATUS_FIELDS = ("id", "status", "createdAt", "filledAt", "txHash", "errorMessage")
_TERMINAL = {s.value for s in TERMINAL_STATUSES}


class RelayerApiError(RelayerError):
    code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _status_view(order: Dict[str, Any]) -> Dict[str, Any]:
    return {k: order.get(k) for k in STATUS_FIELDS}


class OrderMonitorClient:

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    # --------------------------------------------------
    # Transport
    # --------------------------------------------------

    def _request(self, method: str, path: str, default_error: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise RelayerApiError(f"{default_error}: {e}") from e

        if not response.ok:
            message = default_error
            try:
                message = response.json().get("error") or default_error
            except ValueError:
                pass
            raise RelayerApiError(message, status_code=response.status_code)

        return response.json()

    # --------------------------------------------------
    # API
    # --------------------------------------------------

    def submit_order(self, payload: Dict[str, Any]) -> Dict[str, str]:
        result = self._request("POST", "/orders", "Failed to submit order", json=payload)
        return {"orderId": result["orderId"], "trackingId": result["trackingId"]}

    def get_order_status(self, order_id: str) -> Dict[str, Any]:
        order = self._request("GET", f"/orders/{order_id}", "Failed to get order status")
        return _status_view(order)

    def cancel_order(self, order_id: str) -> bool:
        self._request("DELETE", f"/orders/{order_id}", "Failed to cancel order")
        return True

    def list_orders(
        self,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {}
        if status:
            params["status"] = status
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        result = self._request("GET", "/orders", "Failed to list orders", params=params)
        return {
            "orders": [_status_view(o) for o in result["orders"]],
            "total": result["total"],
            "limit": result["limit"],
            "offset": result["offset"],
        }

    def get_statistics(self) -> Dict[str, int]:
        return self._request("GET", "/orders/process", "Failed to get statistics")["statistics"]

    # --------------------------------------------------
    # Polling
    # --------------------------------------------------

    def wait_for_completion(
        self,
        order_id: str,
        interval: float = 5.0,
        timeout: float = 300.0,
        on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
        max_interval: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> Dict[str, Any]:
        """
        Poll until the order reaches filled / failed / cancelled.

        Transport errors back off (interval doubles up to max_interval).
        A 404 is final and re-raised. Raises TimeoutError past timeout.
        """
        deadline = clock() + timeout
        delay = interval

        while True:
            try:
                status = self.get_order_status(order_id)
            except RelayerApiError as e:
                if e.status_code == 404:
                    raise
                delay = min(delay * 2, max_interval)
                logger.warning("Polling %s failed: %s (retry in %.1fs)", order_id, e.message, delay)
            else:
                delay = interval
                if on_update:
                    on_update(status)
                if status["status"] in _TERMINAL:
                    return status

            if clock() + delay > deadline:
                raise TimeoutError(
                    f"Order {order_id} not finished after {timeout}s"
                )
            sleep(delay)
