"""Payment gateway and billing operation API endpoints.

Handles:
- Gateway transaction creation (QRIS / virtual account) for an invoice
- Read-only gateway status checks
- Manual triggers for invoice generation, reminder and overdue sweeps
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.api.dependencies import error_response, get_gateway, get_notifier, get_scheduler
from src.services import get_db
from src.services.errors import BillingError
from src.services.gateway_client import PakasirClient
from src.services.notification_service import NotificationService
from src.services.reconciliation_service import ReconciliationService, list_payment_methods
from src.services.scheduler import BillingScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pakasir", tags=["payments"])
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


class CreateTransactionRequest(BaseModel):
    """Body of a transaction creation request."""

    method: str = "qris"


class GenerateRequest(BaseModel):
    """Billing period to invoice."""

    month: int = Field(..., description="Billing month 1-12")
    year: int = Field(..., description="Billing year")


@router.get("/methods")
async def payment_methods() -> dict:
    """List payment methods offered through the gateway."""
    return {"methods": list_payment_methods()}


@router.post("/create/{invoice_id}")
async def create_transaction(
    invoice_id: int,
    request: CreateTransactionRequest | None = None,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
    gateway: PakasirClient | None = Depends(get_gateway),  # noqa: B008
):
    """Create a gateway transaction for an unpaid invoice."""
    service = ReconciliationService(db, notifier, gateway)
    try:
        method = request.method if request else "qris"
        data = await service.create_transaction(invoice_id, method)
    except BillingError as e:
        logger.warning(
            "payment.create_failed: invoice_id=%s reason=%s error=%s",
            invoice_id,
            e.reason,
            e.message,
        )
        return error_response(e)
    return {"success": True, "data": data}


@router.get("/status/{invoice_id}")
async def transaction_status(
    invoice_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
    gateway: PakasirClient | None = Depends(get_gateway),  # noqa: B008
):
    """Report local and gateway status for an invoice."""
    service = ReconciliationService(db, notifier, gateway)
    try:
        data = await service.check_status(invoice_id)
    except BillingError as e:
        return error_response(e)
    return {"success": True, "data": data}


@billing_router.post("/generate")
async def generate_invoices(
    request: GenerateRequest,
    scheduler: BillingScheduler = Depends(get_scheduler),  # noqa: B008
):
    """Invoice every tenant for the given period."""
    try:
        result = await scheduler.run_invoice_generation(request.month, request.year)
    except BillingError as e:
        return error_response(e)
    return {"month": request.month, "year": request.year, **asdict(result)}


@billing_router.post("/reminders/run")
async def run_reminders(scheduler: BillingScheduler = Depends(get_scheduler)):  # noqa: B008
    """Run the reminder sweep now."""
    return asdict(await scheduler.run_reminder_sweep())


@billing_router.post("/overdue/run")
async def run_overdue(scheduler: BillingScheduler = Depends(get_scheduler)):  # noqa: B008
    """Run the overdue sweep now."""
    return asdict(await scheduler.run_overdue_sweep())


__all__ = ["router", "billing_router"]
