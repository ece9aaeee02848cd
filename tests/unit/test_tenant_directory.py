"""Unit tests for tenant directory access toggling."""

import pytest

from src.models import Tenant
from src.services.tenant_directory import TenantDirectory


@pytest.mark.unit
class TestSetActive:
    def test_reports_change_once(self, session, tenant):
        directory = TenantDirectory(session)

        assert directory.set_active(tenant.id, False) is True
        assert directory.set_active(tenant.id, False) is False
        session.commit()

        session.refresh(tenant)
        assert tenant.is_active is False

    def test_loaded_instance_follows_update(self, session, tenant):
        TenantDirectory(session).set_active(tenant.id, False)

        assert tenant.is_active is False

    def test_decides_on_stored_flag_not_loaded_copy(self, session, session_factory, tenant):
        assert tenant.is_active is True

        other = session_factory()
        try:
            other.get(Tenant, tenant.id).is_active = False
            other.commit()
        finally:
            other.close()

        # The loaded copy still says active; the stored row does not
        assert TenantDirectory(session).set_active(tenant.id, False) is False
        assert TenantDirectory(session).set_active(tenant.id, True) is True
        session.commit()

        session.refresh(tenant)
        assert tenant.is_active is True

    def test_unknown_tenant(self, session):
        assert TenantDirectory(session).set_active(999, True) is False
