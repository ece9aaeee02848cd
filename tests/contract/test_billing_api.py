"""Contract tests for the billing HTTP API."""

import httpx
import pytest
from fastapi.testclient import TestClient

from src.api.webhook import app, configure_app
from src.models import InvoiceStatus
from src.services import get_db
from src.services.scheduler import BillingScheduler

ORDER_ID = "WFQ-1-1719800000000"


def _gateway_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/transactiondetail"):
        return httpx.Response(200, json={"transaction": {"status": "pending"}})
    if request.url.path.endswith("/transactioncreate/permata_va"):
        return httpx.Response(200, json={"error": "channel unavailable"})
    return httpx.Response(
        200,
        json={
            "payment": {
                "payment_number": "00020101021226610016ID",
                "expired_at": "2024-07-03T10:00:00+07:00",
                "total_payment": 100710,
            }
        },
    )


@pytest.fixture
def client(session, session_factory, settings, notifier, config, gateway_factory):
    """Test client wired to the in-memory database and test doubles."""

    def override_get_db():
        yield session

    scheduler = BillingScheduler(session_factory, notifier, config)
    configure_app(app, notifier, gateway_factory(_gateway_handler), scheduler)
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    configure_app(app, None, None, None)


def _payload(**overrides) -> dict:
    data = {
        "order_id": ORDER_ID,
        "amount": 100000,
        "status": "completed",
        "project": "wifique",
        "payment_method": "qris",
        "completed_at": "2024-07-06T10:00:00+07:00",
    }
    data.update(overrides)
    return data


class TestHealth:
    def test_health_check_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSettlementWebhook:
    """POST /api/pakasir/webhook"""

    def test_completed_settlement(self, client, session, pending_invoice, tenant):
        response = client.post("/api/pakasir/webhook", json=_payload())

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "processed": True,
            "invoice_id": pending_invoice.id,
            "tenant_activated": True,
        }
        session.refresh(pending_invoice)
        assert pending_invoice.status == InvoiceStatus.PAID

    def test_replay_is_accepted_without_processing(self, client, pending_invoice):
        client.post("/api/pakasir/webhook", json=_payload())

        response = client.post("/api/pakasir/webhook", json=_payload())

        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": False, "reason": "already_paid"}

    def test_interim_status(self, client, pending_invoice):
        response = client.post("/api/pakasir/webhook", json=_payload(status="pending"))

        assert response.status_code == 200
        assert response.json()["reason"] == "status_not_completed"

    def test_project_mismatch(self, client, pending_invoice):
        response = client.post("/api/pakasir/webhook", json=_payload(project="intruder"))

        assert response.status_code == 400
        assert response.json()["error"] == "project_mismatch"

    def test_amount_mismatch(self, client, session, pending_invoice):
        response = client.post("/api/pakasir/webhook", json=_payload(amount=1))

        assert response.status_code == 400
        assert response.json()["error"] == "amount_mismatch"
        session.refresh(pending_invoice)
        assert pending_invoice.status == InvoiceStatus.PENDING

    def test_unknown_order(self, client, pending_invoice):
        response = client.post("/api/pakasir/webhook", json=_payload(order_id="WFQ-404-1"))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_malformed_payload(self, client):
        response = client.post("/api/pakasir/webhook", json={"order_id": ORDER_ID})

        assert response.status_code == 422


class TestGatewayRoutes:
    def test_methods(self, client):
        response = client.get("/api/pakasir/methods")

        assert response.status_code == 200
        assert "qris" in [m["id"] for m in response.json()["methods"]]

    def test_create_transaction(self, client, make_invoice, tenant):
        invoice = make_invoice(tenant)

        response = client.post(f"/api/pakasir/create/{invoice.id}", json={"method": "qris"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["order_id"].startswith(f"WFQ-{invoice.id}-")
        assert data["qr_string"] == "00020101021226610016ID"

    def test_create_transaction_defaults_to_qris(self, client, make_invoice, tenant):
        invoice = make_invoice(tenant)

        response = client.post(f"/api/pakasir/create/{invoice.id}")

        assert response.status_code == 200
        assert response.json()["data"]["method"] == "qris"

    def test_create_transaction_unknown_invoice(self, client):
        response = client.post("/api/pakasir/create/999", json={"method": "qris"})

        assert response.status_code == 404

    def test_create_transaction_upstream_error(self, client, make_invoice, tenant):
        invoice = make_invoice(tenant)

        response = client.post(f"/api/pakasir/create/{invoice.id}", json={"method": "permata_va"})

        assert response.status_code == 502
        assert response.json()["error"] == "gateway_rejected"

    def test_status(self, client, pending_invoice):
        response = client.get(f"/api/pakasir/status/{pending_invoice.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["gateway_status"] == "pending"
        assert data["local_status"] == "pending"


class TestManualTriggers:
    def test_generate(self, client, tenant):
        response = client.post("/api/billing/generate", json={"month": 6, "year": 2024})

        assert response.status_code == 200
        assert response.json() == {"month": 6, "year": 2024, "created": 1, "skipped": 0}

    def test_generate_invalid_period(self, client, tenant):
        response = client.post("/api/billing/generate", json={"month": 13, "year": 2024})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_period"

    def test_sweeps(self, client):
        reminders = client.post("/api/billing/reminders/run")
        overdue = client.post("/api/billing/overdue/run")

        assert reminders.status_code == 200
        assert set(reminders.json()) == {"sent", "failed"}
        assert overdue.status_code == 200
        assert set(overdue.json()) == {"overdue", "disconnected", "failed", "enabled"}
