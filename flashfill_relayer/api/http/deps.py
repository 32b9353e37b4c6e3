#!/usr/bin/env python3
"""
Relayer API Dependencies

RULES:
- Service comes from app.state (built once in main)
- Cron auth: Bearer <CRON_SECRET>, skipped in local/dev/test
- No side effects
"""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from flashfill_relayer.services.relayer_service import RelayerService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> RelayerService:
    return request.app.state.service


def require_cron_auth(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> None:
    config = get_service(request).config
    if config.is_dev_mode:
        return

    secret = config.cron_secret
    expected = f"Bearer {secret}" if secret else None
    if not expected or not authorization or not hmac.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Cron access denied: bad or missing bearer token")
        raise HTTPException(status_code=401, detail="Unauthorized")
