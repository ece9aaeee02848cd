"""FastAPI application: health check and Pakasir settlement webhook."""

import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from src.api.dependencies import error_response, get_gateway, get_notifier
from src.api.payment import billing_router, router as payment_router
from src.services import get_db
from src.services.errors import BillingError
from src.services.gateway_client import PakasirClient
from src.services.notification_service import NotificationService
from src.services.reconciliation_service import ReconciliationService, SettlementEvent
from src.services.scheduler import BillingScheduler

logger = logging.getLogger(__name__)

app = FastAPI(
    title="WiFique Billing",
    description="Subscription billing lifecycle for shared-housing internet access",
    version="0.1.0",
)

app.include_router(payment_router)
app.include_router(billing_router)


def configure_app(
    target: FastAPI,
    notifier: NotificationService,
    gateway: PakasirClient | None = None,
    scheduler: BillingScheduler | None = None,
) -> FastAPI:
    """Attach runtime collaborators to the application state.

    Args:
        target: FastAPI application
        notifier: Notification gateway used by settlement notices
        gateway: Pakasir client for transaction creation and status checks
        scheduler: Billing scheduler serving the manual trigger routes
    """
    target.state.notifier = notifier
    target.state.gateway = gateway
    target.state.scheduler = scheduler
    return target


class SettlementPayload(BaseModel):
    """Pakasir webhook body."""

    order_id: str
    amount: int
    status: str
    project: str
    payment_method: str | None = None
    completed_at: str | None = None

    def to_event(self) -> SettlementEvent:
        return SettlementEvent(
            order_id=self.order_id,
            amount=self.amount,
            status=self.status,
            project=self.project,
            payment_method=self.payment_method,
            completed_at=self.completed_at,
        )


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}


@app.post("/api/pakasir/webhook")
async def pakasir_webhook(
    payload: SettlementPayload,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
    gateway: PakasirClient | None = Depends(get_gateway),  # noqa: B008
):
    """Receive a settlement notification and reconcile it.

    Returns:
        200 for accepted events (processed or no-op), 400/404 for rejected ones
    """
    logger.info(
        "webhook.pakasir: order_id=%s status=%s amount=%s method=%s",
        payload.order_id,
        payload.status,
        payload.amount,
        payload.payment_method,
    )
    service = ReconciliationService(db, notifier, gateway)
    try:
        result = await service.reconcile(payload.to_event())
    except BillingError as e:
        return error_response(e)
    except Exception:
        logger.exception("webhook.pakasir_failed: order_id=%s", payload.order_id)
        return JSONResponse(status_code=500, content={"error": "internal_error"})

    body: dict = {"received": True, "processed": result.processed}
    if result.processed:
        body["invoice_id"] = result.invoice_id
        body["tenant_activated"] = result.tenant_activated
    else:
        body["reason"] = result.reason
    return body


__all__ = ["app", "configure_app", "SettlementPayload"]
