"""Enforcement engine: overdue transitions and access disconnection."""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from src.models.invoice import InvoiceStatus
from src.models.notification_log import NotificationKind
from src.services.errors import TransientDeliveryError
from src.services.invoice_store import InvoiceStore
from src.services.notification_service import NotificationService
from src.services.period_service import as_date
from src.services.settings_service import SettingsService
from src.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


@dataclass
class EnforcementResult:
    """Outcome of an overdue sweep."""

    overdue: int = 0
    disconnected: int = 0
    failed: int = 0
    enabled: bool = True


class EnforcementService:
    """Marks past-due invoices overdue and disconnects their tenants.

    An invoice is overdue once its due date is strictly before the sweep day; the
    due day itself is still payable. The disconnection notice is gated on this
    sweep winning the pending -> overdue update while the tenant was active, so
    re-runs and tenants disabled by other means are never re-notified.
    """

    def __init__(self, db_session: Session, notifier: NotificationService):
        """Initialize with database session and notifier."""
        self.db = db_session
        self.notifier = notifier
        self.store = InvoiceStore(db_session)
        self.tenants = TenantDirectory(db_session)
        self.settings = SettingsService(db_session)

    async def run_enforcement(self, today: date | datetime | None = None) -> EnforcementResult:
        """Run one overdue sweep.

        Args:
            today: Sweep clock; a date or datetime (default: local today)

        Returns:
            EnforcementResult with overdue, disconnected and failed counts
        """
        day = as_date(today or date.today())
        result = EnforcementResult()

        if not self.settings.auto_disconnect_enabled():
            logger.info("enforcement.skipped: auto_disconnect is disabled")
            result.enabled = False
            return result

        for invoice in self.store.list_pending_due_before(day):
            tenant = invoice.tenant
            tenant_id, invoice_id = tenant.id, invoice.id

            try:
                if not self.store.transition(
                    invoice_id, [InvoiceStatus.PENDING], InvoiceStatus.OVERDUE
                ):
                    # Paid or swept concurrently since the query ran
                    self.db.rollback()
                    logger.info("enforcement.skipped_changed: invoice_id=%s", invoice_id)
                    continue

                disconnected = self.tenants.set_active(tenant_id, False)
                self.db.commit()
            except Exception:
                self.db.rollback()
                result.failed += 1
                logger.exception(
                    "enforcement.failed: tenant_id=%s invoice_id=%s", tenant_id, invoice_id
                )
                continue

            result.overdue += 1
            logger.info("enforcement.overdue: tenant_id=%s invoice_id=%s", tenant_id, invoice_id)

            if not disconnected:
                continue

            result.disconnected += 1
            await self._notify_disconnection(tenant, day)

        logger.info(
            "enforcement.done: day=%s overdue=%d disconnected=%d failed=%d",
            day,
            result.overdue,
            result.disconnected,
            result.failed,
        )
        return result

    async def _notify_disconnection(self, tenant, day: date) -> None:
        """Best-effort disconnection notice; failures never undo the transition."""
        try:
            message = await self.notifier.send_disconnection_notice(tenant)
        except TransientDeliveryError as e:
            logger.warning(
                "enforcement.notice_failed: tenant_id=%s reason=%s error=%s",
                tenant.id,
                e.reason,
                e.message,
            )
            return

        try:
            self.store.log_notification(tenant.id, NotificationKind.DISCONNECTION, day, message)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("enforcement.log_failed: tenant_id=%s", tenant.id)


__all__ = ["EnforcementService", "EnforcementResult"]
