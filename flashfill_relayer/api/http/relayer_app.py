#!/usr/bin/env python3
"""
FlashFill Relayer – FastAPI Application
=======================================

Responsibilities:
- Expose order submission / query / cancel APIs
- Expose operator fill + drain triggers and the cron cycle trigger
- Translate relayer errors into HTTP status codes

The service is built ONCE by the caller and attached to app.state.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flashfill_relayer.api.http.cron_router import router as cron_router
from flashfill_relayer.api.http.orders_router import router as orders_router
from flashfill_relayer.core.errors import (
    InvalidStateError,
    OrderNotFound,
    OrderValidationError,
    RelayerError,
)
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.services.relayer_service import RelayerService
from flashfill_relayer.utils.utils import log_exception

logger = get_component_logger('api')

# error class -> status code, most specific first
_STATUS_BY_ERROR = (
    (OrderValidationError, 400),
    (InvalidStateError, 400),
    (OrderNotFound, 404),
)


def _status_for(error: RelayerError) -> int:
    for cls, status_code in _STATUS_BY_ERROR:
        if isinstance(error, cls):
            return status_code
    return 500


# ==================================================
# APPLICATION FACTORY
# ==================================================

def create_relayer_app(service: RelayerService) -> FastAPI:
    app = FastAPI(
        title="FlashFill Relayer",
        version="1.0.0",
        description="Flash-loan-backed order settlement relayer",
    )
    app.state.service = service

    # --------------------------------------------------
    # Error translation
    # --------------------------------------------------
    @app.exception_handler(RelayerError)
    async def relayer_error_handler(request: Request, exc: RelayerError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("API_ERROR | %s %s | %s", request.method, request.url.path, exc.message)
        else:
            logger.info("API_REJECTED | %s %s | %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": detail})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log_exception(f"{request.method} {request.url.path}", exc, logger)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # --------------------------------------------------
    # Routers
    # --------------------------------------------------
    app.include_router(orders_router)
    app.include_router(cron_router)

    @app.get("/health")
    def health():
        return service.health()

    logger.info("✅ Relayer API ready | env=%s", service.config.app_env)
    return app
