"""Invoice store: durable invoice records and the notification log.

Invoices are only ever created through insert_if_absent, which relies on the
(tenant_id, period_month, period_year) unique constraint, and only ever change
status through transition, which updates against the expected current status.
Neither method commits; the calling engine owns the transaction.
"""

import logging
from datetime import date, datetime, timezone
from typing import Iterable

from sqlalchemy import exists, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from src.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from src.models.notification_log import NotificationKind, NotificationRecord
from src.services.errors import ConflictError

logger = logging.getLogger(__name__)

INVOICE_KEY = ("tenant_id", "period_month", "period_year")

_UPSERT_DIALECTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class InvoiceStore:
    """Invoice persistence with atomic create and conditional status updates."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def insert_if_absent(
        self,
        tenant_id: int,
        period_month: int,
        period_year: int,
        amount: int,
        due_date: date,
    ) -> bool:
        """Create a pending invoice unless one exists for (tenant, period).

        Returns:
            True if this call created the row, False if it already existed
        """
        values = {
            "tenant_id": tenant_id,
            "period_month": period_month,
            "period_year": period_year,
            "amount": amount,
            "due_date": due_date,
            "status": InvoiceStatus.PENDING,
        }
        try:
            self._insert(values)
        except ConflictError:
            logger.debug(
                "invoice_store.exists: tenant_id=%s period=%s/%s",
                tenant_id,
                period_month,
                period_year,
            )
            return False
        return True

    def _insert(self, values: dict) -> None:
        """Insert an invoice row, raising ConflictError if the key is taken."""
        dialect = self.db.get_bind().dialect.name
        upsert = _UPSERT_DIALECTS.get(dialect)

        if upsert is not None:
            stmt = upsert(Invoice).values(**values).on_conflict_do_nothing(
                index_elements=list(INVOICE_KEY)
            )
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                raise ConflictError("Invoice already exists for period")
            return

        # Other dialects: let the unique constraint decide inside a savepoint
        try:
            with self.db.begin_nested():
                self.db.execute(Invoice.__table__.insert().values(**values))
        except IntegrityError as e:
            raise ConflictError("Invoice already exists for period") from e

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        invoice_id: int,
        expected: Iterable[InvoiceStatus],
        new_status: InvoiceStatus,
        **values,
    ) -> bool:
        """Move an invoice to new_status only if its stored status is in expected.

        Returns:
            True if the row was updated, False if the stored status did not match
        """
        stmt = (
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status.in_(list(expected)))
            .values(status=new_status, **values)
            .execution_options(synchronize_session="fetch")
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def attach_gateway_order(
        self,
        invoice: Invoice,
        order_id: str,
        method: PaymentMethod,
        payment_number: str | None,
        expired_at: str | None,
    ) -> None:
        """Store the gateway transaction reference on an invoice."""
        invoice.gateway_order_id = order_id
        invoice.gateway_method = method
        invoice.gateway_payment_number = payment_number
        invoice.gateway_expired_at = expired_at

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, invoice_id: int) -> Invoice | None:
        return self.db.get(Invoice, invoice_id)

    def find_by_order_id(self, order_id: str) -> Invoice | None:
        """Resolve an external gateway order reference to its invoice."""
        return self.db.execute(
            select(Invoice).where(Invoice.gateway_order_id == order_id)
        ).scalar_one_or_none()

    def find_for_period(self, tenant_id: int, period_month: int, period_year: int) -> Invoice | None:
        return self.db.execute(
            select(Invoice).where(
                Invoice.tenant_id == tenant_id,
                Invoice.period_month == period_month,
                Invoice.period_year == period_year,
            )
        ).scalar_one_or_none()

    def list_pending(self) -> list[Invoice]:
        """Pending invoices with tenants loaded, ordered by due date."""
        return list(
            self.db.execute(
                select(Invoice)
                .options(joinedload(Invoice.tenant))
                .where(Invoice.status == InvoiceStatus.PENDING)
                .order_by(Invoice.due_date, Invoice.id)
            ).scalars()
        )

    def list_pending_due_before(self, day: date) -> list[Invoice]:
        """Pending invoices whose due date is strictly before the given day."""
        return list(
            self.db.execute(
                select(Invoice)
                .options(joinedload(Invoice.tenant))
                .where(Invoice.status == InvoiceStatus.PENDING, Invoice.due_date < day)
                .order_by(Invoice.due_date, Invoice.id)
            ).scalars()
        )

    def list_for_tenant(self, tenant_id: int) -> list[Invoice]:
        return list(
            self.db.execute(
                select(Invoice)
                .where(Invoice.tenant_id == tenant_id)
                .order_by(Invoice.period_year, Invoice.period_month)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Notification log
    # ------------------------------------------------------------------

    def log_notification(
        self,
        tenant_id: int,
        kind: NotificationKind,
        sent_on: date,
        message: str | None = None,
        sent_at: datetime | None = None,
    ) -> NotificationRecord:
        """Append a notification record."""
        record = NotificationRecord(
            tenant_id=tenant_id,
            kind=kind,
            message=message,
            sent_at=sent_at or datetime.now(timezone.utc),
            sent_on=sent_on,
        )
        self.db.add(record)
        return record

    def has_notification_on(self, tenant_id: int, kind: NotificationKind, day: date) -> bool:
        """Check whether a notice of this kind was logged for the tenant on the day."""
        return bool(
            self.db.execute(
                select(
                    exists().where(
                        NotificationRecord.tenant_id == tenant_id,
                        NotificationRecord.kind == kind,
                        NotificationRecord.sent_on == day,
                    )
                )
            ).scalar()
        )

    def list_notifications(
        self, tenant_id: int, kind: NotificationKind | None = None
    ) -> list[NotificationRecord]:
        stmt = select(NotificationRecord).where(NotificationRecord.tenant_id == tenant_id)
        if kind is not None:
            stmt = stmt.where(NotificationRecord.kind == kind)
        return list(self.db.execute(stmt.order_by(NotificationRecord.id)).scalars())


__all__ = ["InvoiceStore"]
