"""Invoice ORM model: one tenant's obligation for one billing period."""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status.

    Allowed transitions: pending -> paid, pending -> overdue, overdue -> paid.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    """Payment gateway settlement methods."""

    QRIS = "qris"
    BRI_VA = "bri_va"
    BNI_VA = "bni_va"
    CIMB_NIAGA_VA = "cimb_niaga_va"
    PERMATA_VA = "permata_va"
    MAYBANK_VA = "maybank_va"


class Invoice(Base, BaseModel):
    """Monthly invoice for a tenant.

    Exactly one row exists per (tenant_id, period_month, period_year); the unique
    constraint is what makes insert-if-absent atomic. The surrogate id is used to
    correlate gateway orders.
    """

    __tablename__ = "invoices"

    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
        comment="Tenant this invoice belongs to",
    )
    period_month: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing month 1-12")
    period_year: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing year")

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Amount in the smallest currency unit; immutable after creation",
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, comment="Payment due date")
    status: Mapped[InvoiceStatus] = mapped_column(
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
        comment="pending, paid or overdue",
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Settlement timestamp"
    )

    # Payment gateway correlation
    gateway_order_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        unique=True,
        comment="External order reference sent to the gateway",
    )
    gateway_payment_number: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Virtual account number or QR payload"
    )
    gateway_expired_at: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="Gateway transaction expiry as reported"
    )
    gateway_method: Mapped[PaymentMethod | None] = mapped_column(
        nullable=True, comment="Gateway payment method"
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "period_month", "period_year", name="uq_invoice_tenant_period"),
        Index("idx_invoice_status_due", "status", "due_date"),
    )

    tenant: Mapped["Tenant"] = relationship(  # noqa: F821
        "Tenant",
        back_populates="invoices",
    )

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, tenant_id={self.tenant_id}, "
            f"period={self.period_month}/{self.period_year}, amount={self.amount}, "
            f"status={self.status})>"
        )


__all__ = ["Invoice", "InvoiceStatus", "PaymentMethod"]
