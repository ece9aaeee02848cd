"""Reminder engine: daily payment reminders for pending invoices."""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from src.models.notification_log import NotificationKind
from src.services.errors import TransientDeliveryError
from src.services.invoice_store import InvoiceStore
from src.services.notification_service import NotificationService
from src.services.period_service import as_date, days_until_due
from src.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


@dataclass
class ReminderResult:
    """Outcome of a reminder sweep."""

    sent: int = 0
    failed: int = 0


class ReminderService:
    """Sends at most one reminder per tenant per calendar day.

    A reminder is owed when the rounded number of days until an invoice's due date
    is one of the configured offsets. Delivery failures are logged and left without
    a record, so the tenant is eligible again on the next run.
    """

    def __init__(self, db_session: Session, notifier: NotificationService):
        """Initialize with database session and notifier."""
        self.db = db_session
        self.notifier = notifier
        self.store = InvoiceStore(db_session)
        self.settings = SettingsService(db_session)

    async def run_reminders(self, today: date | datetime | None = None) -> ReminderResult:
        """Run one reminder sweep.

        Args:
            today: Sweep clock; a date or datetime (default: local today)

        Returns:
            ReminderResult with sent and failed counts
        """
        today = today or date.today()
        day = as_date(today)
        offsets = self.settings.reminder_days()
        result = ReminderResult()

        if not offsets:
            logger.info("reminder.skipped: no reminder offsets configured")
            return result

        # Tenants handled in this sweep (sent, already sent today, or failed)
        handled: set[int] = set()

        for invoice in self.store.list_pending():
            tenant = invoice.tenant
            tenant_id, invoice_id = tenant.id, invoice.id
            if tenant_id in handled:
                continue

            days = days_until_due(invoice.due_date, today)
            if days not in offsets:
                continue

            handled.add(tenant_id)
            try:
                if self.store.has_notification_on(tenant.id, NotificationKind.REMINDER, day):
                    logger.debug("reminder.already_sent: tenant_id=%s day=%s", tenant.id, day)
                    continue

                try:
                    message = await self.notifier.send_payment_reminder(tenant, invoice, days)
                except TransientDeliveryError as e:
                    result.failed += 1
                    logger.warning(
                        "reminder.delivery_failed: tenant_id=%s invoice_id=%s reason=%s error=%s",
                        tenant.id,
                        invoice.id,
                        e.reason,
                        e.message,
                    )
                    continue

                self.store.log_notification(tenant.id, NotificationKind.REMINDER, day, message)
                self.db.commit()
                result.sent += 1
                logger.info(
                    "reminder.sent: tenant_id=%s invoice_id=%s days=%d",
                    tenant.id,
                    invoice.id,
                    days,
                )
            except Exception:
                self.db.rollback()
                result.failed += 1
                logger.exception(
                    "reminder.failed: tenant_id=%s invoice_id=%s", tenant_id, invoice_id
                )

        logger.info("reminder.done: day=%s sent=%d failed=%d", day, result.sent, result.failed)
        return result


__all__ = ["ReminderService", "ReminderResult"]
