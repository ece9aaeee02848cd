"""Tenant directory operations used by the billing engine."""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.models.tenant import Tenant

logger = logging.getLogger(__name__)


class TenantDirectory:
    """Read tenant contact details and toggle network access.

    set_active is a conditional UPDATE against the stored flag, never the copy
    loaded into the session, and it does not commit; the engine commits it in the
    same transaction as the invoice status change that caused it.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def list_all(self) -> list[Tenant]:
        """All tenants ordered by id."""
        return list(self.db.execute(select(Tenant).order_by(Tenant.id)).scalars())

    def set_active(self, tenant_id: int, active: bool) -> bool:
        """Set the access flag.

        Args:
            tenant_id: Tenant to update
            active: Desired flag value

        Returns:
            True if this call changed the stored flag, False if it already held
            the desired value
        """
        stmt = (
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.is_active != active)
            .values(is_active=active)
            .execution_options(synchronize_session="fetch")
        )
        changed = self.db.execute(stmt).rowcount == 1
        if changed:
            logger.info(
                "tenant.%s: tenant_id=%s",
                "activated" if active else "deactivated",
                tenant_id,
            )
        return changed


__all__ = ["TenantDirectory"]
