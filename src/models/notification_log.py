"""Append-only log of notices sent to tenants."""

from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base


class NotificationKind(str, Enum):
    """Kinds of billing notices."""

    REMINDER = "reminder"
    DISCONNECTION = "disconnection"
    RECONNECTION = "reconnection"
    PAYMENT_RECEIVED = "payment_received"


class NotificationRecord(Base):
    """Record of a notice delivered to a tenant.

    Rows are never updated or deleted. sent_on holds the calendar date of the
    sweep that produced the notice and is what same-day reminder dedup keys on.
    """

    __tablename__ = "notification_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    kind: Mapped[NotificationKind] = mapped_column(nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    sent_on: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (Index("idx_notification_tenant_kind_day", "tenant_id", "kind", "sent_on"),)

    def __repr__(self) -> str:
        return (
            f"<NotificationRecord(id={self.id}, tenant_id={self.tenant_id}, "
            f"kind={self.kind}, sent_on={self.sent_on})>"
        )


__all__ = ["NotificationRecord", "NotificationKind"]
