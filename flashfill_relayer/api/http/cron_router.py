#!/usr/bin/env python3
"""
Cron trigger for the batch scheduler.

POST runs one full cycle (bearer auth outside dev).
GET is a static liveness probe.
"""
import logging

from fastapi import APIRouter, Depends

from flashfill_relayer.api.http.deps import get_service, require_cron_auth
from flashfill_relayer.api.http.schemas import CronStatusResponse
from flashfill_relayer.services.relayer_service import RelayerService
from flashfill_relayer.utils.utils import iso_timestamp

logger = logging.getLogger("CRON_RUNNER.http")

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/process-orders", dependencies=[Depends(require_cron_auth)])
def process_orders_cycle(service: RelayerService = Depends(get_service)):
    logger.info("Cron cycle triggered over HTTP")
    return service.run_cycle().to_dict()


@router.get("/process-orders", response_model=CronStatusResponse)
def cron_status():
    return CronStatusResponse(timestamp=iso_timestamp())
