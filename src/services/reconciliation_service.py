"""Reconciliation engine: settles invoices from payment gateway events.

Provides:
- reconcile(): apply a settlement webhook exactly once
- create_transaction(): open a gateway transaction (QRIS / virtual account) for an invoice
- check_status(): read-only poll of the gateway for an invoice's order
"""

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from src.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from src.models.notification_log import NotificationKind
from src.services.errors import NotFoundError, TransientDeliveryError, ValidationError
from src.services.gateway_client import COMPLETED_STATUS, PakasirClient
from src.services.invoice_store import InvoiceStore
from src.services.locale_service import format_amount
from src.services.localizer import t
from src.services.notification_service import NotificationService
from src.services.period_service import due_date, next_period
from src.services.settings_service import SettingsService
from src.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

ORDER_PREFIX = "WFQ"


@dataclass
class SettlementEvent:
    """Canonical settlement event translated from a gateway webhook."""

    order_id: str
    amount: int
    status: str
    project: str
    payment_method: str | None = None
    completed_at: str | None = None


@dataclass
class ReconciliationResult:
    """Outcome of an accepted settlement event.

    processed is False for accepted no-ops (interim status, replayed event).
    """

    accepted: bool
    processed: bool = False
    reason: str | None = None
    invoice_id: int | None = None
    tenant_activated: bool = False
    next_invoice_created: bool = False


def list_payment_methods() -> list[dict[str, str]]:
    """Payment methods offered through the gateway."""
    return [
        {
            "id": method.value,
            "name": t(f"methods.{method.value}.name"),
            "description": t(f"methods.{method.value}.description"),
        }
        for method in PaymentMethod
    ]


def _parse_method(value: str | None) -> PaymentMethod | None:
    if not value:
        return None
    try:
        return PaymentMethod(value)
    except ValueError:
        return None


class ReconciliationService:
    """Applies gateway settlements to invoices.

    Validation is fail-fast and mutates nothing on rejection. The paid transition,
    tenant reactivation, next-period invoice and payment log entry are committed in
    one transaction; the reconnection notice is sent afterwards and its failure
    never rolls the settlement back.
    """

    def __init__(
        self,
        db_session: Session,
        notifier: NotificationService,
        gateway: PakasirClient | None = None,
    ):
        """Initialize with database session, notifier and optional gateway client."""
        self.db = db_session
        self.notifier = notifier
        self.gateway = gateway
        self.store = InvoiceStore(db_session)
        self.tenants = TenantDirectory(db_session)
        self.settings = SettingsService(db_session)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _validate(self, event: SettlementEvent) -> Invoice:
        """Run project, order and amount checks.

        Raises:
            ValidationError: project_mismatch or amount_mismatch
            NotFoundError: order reference unknown
        """
        expected_project = self.settings.gateway_project()
        if event.project != expected_project:
            logger.warning(
                "reconcile.rejected: reason=project_mismatch order_id=%s project=%s",
                event.order_id,
                event.project,
            )
            raise ValidationError("Project mismatch", reason="project_mismatch")

        invoice = self.store.find_by_order_id(event.order_id)
        if invoice is None:
            logger.warning("reconcile.rejected: reason=not_found order_id=%s", event.order_id)
            raise NotFoundError(f"Invoice not found for order {event.order_id}", reason="not_found")

        if event.amount != invoice.amount:
            logger.warning(
                "reconcile.rejected: reason=amount_mismatch order_id=%s expected=%s got=%s",
                event.order_id,
                invoice.amount,
                event.amount,
            )
            raise ValidationError("Amount mismatch", reason="amount_mismatch")

        return invoice

    async def reconcile(self, event: SettlementEvent) -> ReconciliationResult:
        """Apply a settlement event.

        Args:
            event: Canonical settlement event

        Returns:
            ReconciliationResult (accepted, possibly as a no-op)

        Raises:
            ValidationError: Project or amount mismatch (nothing mutated)
            NotFoundError: Unknown order reference (nothing mutated)
        """
        if event.status != COMPLETED_STATUS:
            logger.info(
                "reconcile.ignored: order_id=%s status=%s", event.order_id, event.status
            )
            return ReconciliationResult(accepted=True, reason="status_not_completed")

        invoice = self._validate(event)
        invoice_id = invoice.id

        if invoice.is_paid:
            logger.info("reconcile.replay: order_id=%s invoice_id=%s", event.order_id, invoice_id)
            return ReconciliationResult(accepted=True, reason="already_paid", invoice_id=invoice_id)

        tenant = invoice.tenant
        period_month, period_year = invoice.period_month, invoice.period_year
        now = datetime.now(timezone.utc)
        method_label = event.payment_method or (
            invoice.gateway_method.value if invoice.gateway_method else "unknown"
        )
        note = t(
            "payment.paid_note",
            method=method_label,
            completed_at=event.completed_at or now.isoformat(),
        )
        paid_values: dict[str, Any] = {"paid_at": now, "notes": note}
        settled_method = _parse_method(event.payment_method)
        if settled_method is not None:
            paid_values["gateway_method"] = settled_method

        try:
            if not self.store.transition(
                invoice_id,
                [InvoiceStatus.PENDING, InvoiceStatus.OVERDUE],
                InvoiceStatus.PAID,
                **paid_values,
            ):
                # Settled by a concurrent delivery of the same event
                self.db.rollback()
                logger.info("reconcile.replay: order_id=%s invoice_id=%s", event.order_id, invoice_id)
                return ReconciliationResult(
                    accepted=True, reason="already_paid", invoice_id=invoice_id
                )

            self.tenants.set_active(tenant.id, True)

            next_month, next_year = next_period(period_month, period_year)
            next_created = self.store.insert_if_absent(
                tenant.id,
                next_month,
                next_year,
                self.settings.monthly_fee(),
                due_date(next_month, next_year),
            )

            self.store.log_notification(
                tenant.id,
                NotificationKind.PAYMENT_RECEIVED,
                date.today(),
                t("payment_received.log", method=method_label, amount=format_amount(event.amount)),
                sent_at=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(
                "reconcile.failed: order_id=%s invoice_id=%s", event.order_id, invoice_id
            )
            raise

        logger.info(
            "reconcile.paid: order_id=%s invoice_id=%s tenant_id=%s next_period=%s/%s next_created=%s",
            event.order_id,
            invoice_id,
            tenant.id,
            next_month,
            next_year,
            next_created,
        )

        await self._notify_reconnection(tenant)

        return ReconciliationResult(
            accepted=True,
            processed=True,
            invoice_id=invoice_id,
            tenant_activated=True,
            next_invoice_created=next_created,
        )

    async def _notify_reconnection(self, tenant) -> None:
        """Best-effort reconnection notice after a committed settlement."""
        try:
            message = await self.notifier.send_reconnection_notice(tenant)
        except TransientDeliveryError as e:
            logger.warning(
                "reconcile.notice_failed: tenant_id=%s reason=%s error=%s",
                tenant.id,
                e.reason,
                e.message,
            )
            return

        try:
            self.store.log_notification(
                tenant.id, NotificationKind.RECONNECTION, date.today(), message
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("reconcile.log_failed: tenant_id=%s", tenant.id)

    # ------------------------------------------------------------------
    # Gateway transactions
    # ------------------------------------------------------------------

    def _require_gateway(self) -> tuple[PakasirClient, str, str]:
        project = self.settings.gateway_project()
        api_key = self.settings.gateway_api_key()
        if self.gateway is None or not project or not api_key:
            raise ValidationError(
                "Payment gateway not configured. Set project and API key in settings.",
                reason="gateway_not_configured",
            )
        return self.gateway, project, api_key

    def _get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.store.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", reason="not_found")
        return invoice

    async def create_transaction(self, invoice_id: int, method: str = "qris") -> dict[str, Any]:
        """Open a gateway transaction for an unpaid invoice.

        The invoice is only updated after the gateway has answered.

        Raises:
            NotFoundError: Invoice does not exist
            ValidationError: Unsupported method, invoice already paid, gateway not configured
            UpstreamError: Gateway call failed
        """
        payment_method = _parse_method(method)
        if payment_method is None:
            raise ValidationError(f"Unsupported payment method: {method}", reason="unsupported_method")

        invoice = self._get_invoice(invoice_id)
        if invoice.is_paid:
            raise ValidationError("Invoice already paid", reason="already_paid")

        gateway, project, api_key = self._require_gateway()
        amount = invoice.amount
        order_id = f"{ORDER_PREFIX}-{invoice.id}-{int(time.time() * 1000)}"

        transaction = await gateway.create_transaction(
            payment_method, project, order_id, amount, api_key
        )

        try:
            self.store.attach_gateway_order(
                invoice,
                order_id=order_id,
                method=payment_method,
                payment_number=transaction.payment_number,
                expired_at=transaction.expired_at,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("gateway.store_failed: invoice_id=%s order_id=%s", invoice_id, order_id)
            raise

        tenant = invoice.tenant
        return {
            "invoice_id": invoice.id,
            "tenant_name": tenant.name,
            "unit_name": tenant.unit_name,
            "amount": amount,
            "order_id": order_id,
            "method": payment_method.value,
            "payment_number": transaction.payment_number,
            "total_payment": transaction.total_payment,
            "expired_at": transaction.expired_at,
            "qr_string": transaction.qr_string,
        }

    async def check_status(self, invoice_id: int) -> dict[str, Any]:
        """Report local and gateway status for an invoice without changing anything.

        Raises:
            NotFoundError: Invoice does not exist
            ValidationError: Gateway not configured
            UpstreamError: Gateway call failed
        """
        invoice = self._get_invoice(invoice_id)
        if not invoice.gateway_order_id:
            return {
                "invoice_id": invoice.id,
                "local_status": invoice.status.value,
                "gateway_status": "not_created",
            }

        gateway, project, api_key = self._require_gateway()
        gateway_status = await gateway.transaction_status(
            project, invoice.gateway_order_id, invoice.amount, api_key
        )
        return {
            "invoice_id": invoice.id,
            "local_status": invoice.status.value,
            "gateway_status": gateway_status,
            "order_id": invoice.gateway_order_id,
            "method": invoice.gateway_method.value if invoice.gateway_method else None,
            "expired_at": invoice.gateway_expired_at,
            "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
        }


__all__ = [
    "ReconciliationService",
    "ReconciliationResult",
    "SettlementEvent",
    "list_payment_methods",
]
