"""Invoice generator: one pending invoice per tenant per billing period."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from src.services.invoice_store import InvoiceStore
from src.services.period_service import due_date, validate_period
from src.services.settings_service import SettingsService
from src.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outcome of a generation run."""

    created: int = 0
    skipped: int = 0


class InvoiceGenerator:
    """Creates monthly invoices idempotently.

    Safe to call repeatedly and concurrently for the same period: every row goes
    through InvoiceStore.insert_if_absent, so tenants already invoiced are skipped.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.store = InvoiceStore(db_session)
        self.tenants = TenantDirectory(db_session)
        self.settings = SettingsService(db_session)

    def generate_for_period(self, month: int, year: int) -> GenerationResult:
        """Invoice every tenant for (month, year) at the current monthly fee.

        Args:
            month: Billing month 1-12
            year: Billing year

        Returns:
            GenerationResult with created and skipped counts

        Raises:
            ValidationError: If the period is invalid
        """
        validate_period(month, year)
        amount = self.settings.monthly_fee()
        due = due_date(month, year)
        result = GenerationResult()

        try:
            for tenant in self.tenants.list_all():
                if self.store.insert_if_absent(tenant.id, month, year, amount, due):
                    result.created += 1
                else:
                    result.skipped += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("invoice_generator.failed: period=%s/%s", month, year)
            raise

        logger.info(
            "invoice_generator.done: period=%s/%s created=%d skipped=%d amount=%d due=%s",
            month,
            year,
            result.created,
            result.skipped,
            amount,
            due.isoformat(),
        )
        return result


__all__ = ["InvoiceGenerator", "GenerationResult"]
