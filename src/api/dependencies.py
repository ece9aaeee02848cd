"""Shared FastAPI dependencies and error mapping for the billing API."""

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from src.services.errors import BillingError, NotFoundError, UpstreamError, ValidationError
from src.services.gateway_client import PakasirClient
from src.services.notification_service import NotificationService
from src.services.scheduler import BillingScheduler

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None

    model_config = ConfigDict(from_attributes=True)


STATUS_BY_ERROR: list[tuple[type[BillingError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (UpstreamError, 502),
]


def error_response(error: BillingError) -> JSONResponse:
    """Map a billing error to its HTTP response."""
    status_code = 500
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = code
            break
    body = ErrorResponse(error=error.reason, detail=error.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def get_notifier(request: Request) -> NotificationService:
    """Notifier configured on the application."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        logger.error("api.not_configured: notifier")
        raise HTTPException(status_code=503, detail="Notifier not configured")
    return notifier


def get_gateway(request: Request) -> PakasirClient | None:
    """Gateway client configured on the application (None when absent)."""
    return getattr(request.app.state, "gateway", None)


def get_scheduler(request: Request) -> BillingScheduler:
    """Scheduler configured on the application."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        logger.error("api.not_configured: scheduler")
        raise HTTPException(status_code=503, detail="Scheduler not configured")
    return scheduler


__all__ = [
    "ErrorResponse",
    "error_response",
    "get_gateway",
    "get_notifier",
    "get_scheduler",
]
