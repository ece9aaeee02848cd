"""Tenant ORM model backing the tenant directory."""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Tenant(Base, BaseModel):
    """
    A tenant paying the monthly fee for shared Wi-Fi access.

    Tenant records are owned by the directory; the billing engine only reads
    contact details and flips is_active when an invoice becomes overdue or is paid.
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Tenant full name")
    unit_name: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="Room/unit label shown in notices"
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="Contact phone number"
    )
    telegram_id: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="Telegram chat ID used for billing notices",
    )
    bandwidth_limit: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="Access bandwidth limit (e.g. '10M')"
    )

    # Access gate
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Network access enabled",
    )

    __table_args__ = (Index("idx_tenant_is_active", "is_active"),)

    invoices: Mapped[list["Invoice"]] = relationship(  # noqa: F821
        "Invoice",
        back_populates="tenant",
    )

    def __repr__(self) -> str:
        return (
            f"<Tenant(id={self.id}, name={self.name}, unit_name={self.unit_name}, "
            f"is_active={self.is_active})>"
        )


__all__ = ["Tenant"]
