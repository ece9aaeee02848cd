"""Unit tests for settlement reconciliation and gateway transactions."""

import re
from datetime import date

import httpx
import pytest
from sqlalchemy import func, select

from src.models import Invoice, InvoiceStatus, NotificationKind, PaymentMethod
from src.services.errors import NotFoundError, UpstreamError, ValidationError
from src.services.invoice_store import InvoiceStore
from src.services.reconciliation_service import (
    ReconciliationService,
    SettlementEvent,
    list_payment_methods,
)

ORDER_ID = "WFQ-1-1719800000000"


def _event(**overrides) -> SettlementEvent:
    data = {
        "order_id": ORDER_ID,
        "amount": 100000,
        "status": "completed",
        "project": "wifique",
        "payment_method": "qris",
        "completed_at": "2024-07-06T10:00:00+07:00",
    }
    data.update(overrides)
    return SettlementEvent(**data)


def _invoice_count(session) -> int:
    return session.execute(select(func.count(Invoice.id))).scalar_one()


class TestReconcile:
    """Settlement webhook handling."""

    @pytest.mark.asyncio
    async def test_completed_settlement_marks_paid(self, session, settings, notifier, bot, tenant, pending_invoice):
        tenant.is_active = False
        session.commit()

        result = await ReconciliationService(session, notifier).reconcile(_event())

        assert result.accepted is True
        assert result.processed is True
        assert result.invoice_id == pending_invoice.id
        assert result.next_invoice_created is True

        session.refresh(pending_invoice)
        session.refresh(tenant)
        assert pending_invoice.status == InvoiceStatus.PAID
        assert pending_invoice.paid_at is not None
        assert pending_invoice.gateway_method == PaymentMethod.QRIS
        assert "qris" in pending_invoice.notes
        assert tenant.is_active is True

        next_invoice = InvoiceStore(session).find_for_period(tenant.id, 7, 2024)
        assert next_invoice.status == InvoiceStatus.PENDING
        assert next_invoice.amount == 100000
        assert next_invoice.due_date == date(2024, 8, 5)

    @pytest.mark.asyncio
    async def test_settlement_logs_payment_and_reconnection(
        self, session, settings, notifier, bot, tenant, pending_invoice
    ):
        await ReconciliationService(session, notifier).reconcile(_event())

        store = InvoiceStore(session)
        assert len(store.list_notifications(tenant.id, NotificationKind.PAYMENT_RECEIVED)) == 1
        assert len(store.list_notifications(tenant.id, NotificationKind.RECONNECTION)) == 1
        assert len(bot.sent) == 1
        assert "ACTIVE AGAIN" in bot.sent[0]["text"]

    @pytest.mark.asyncio
    async def test_replay_is_a_no_op(self, session, settings, notifier, bot, tenant, pending_invoice):
        service = ReconciliationService(session, notifier)
        await service.reconcile(_event())

        result = await service.reconcile(_event())

        assert result.accepted is True
        assert result.processed is False
        assert result.reason == "already_paid"
        assert _invoice_count(session) == 2
        assert len(bot.sent) == 1

    @pytest.mark.asyncio
    async def test_interim_status_is_ignored(self, session, settings, notifier, pending_invoice):
        result = await ReconciliationService(session, notifier).reconcile(_event(status="pending"))

        assert result.accepted is True
        assert result.processed is False
        assert result.reason == "status_not_completed"
        session.refresh(pending_invoice)
        assert pending_invoice.status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_project_mismatch_rejected(self, session, settings, notifier, pending_invoice):
        with pytest.raises(ValidationError) as exc_info:
            await ReconciliationService(session, notifier).reconcile(_event(project="someone-else"))

        assert exc_info.value.reason == "project_mismatch"
        session.refresh(pending_invoice)
        assert pending_invoice.status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_order_rejected(self, session, settings, notifier, pending_invoice):
        with pytest.raises(NotFoundError):
            await ReconciliationService(session, notifier).reconcile(_event(order_id="WFQ-404-1"))

    @pytest.mark.asyncio
    async def test_amount_tamper_rejected(self, session, settings, notifier, bot, tenant, pending_invoice):
        tenant.is_active = False
        session.commit()

        with pytest.raises(ValidationError) as exc_info:
            await ReconciliationService(session, notifier).reconcile(_event(amount=1000))

        assert exc_info.value.reason == "amount_mismatch"
        session.refresh(pending_invoice)
        session.refresh(tenant)
        assert pending_invoice.status == InvoiceStatus.PENDING
        assert tenant.is_active is False
        assert _invoice_count(session) == 1
        assert bot.sent == []

    @pytest.mark.asyncio
    async def test_overdue_invoice_can_be_settled(self, session, settings, notifier, make_invoice, tenant):
        invoice = make_invoice(tenant, status=InvoiceStatus.OVERDUE, order_id=ORDER_ID)

        result = await ReconciliationService(session, notifier).reconcile(_event())

        assert result.processed is True
        session.refresh(invoice)
        assert invoice.status == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_reconnection_failure_keeps_settlement(
        self, session, settings, failing_notifier, tenant, pending_invoice
    ):
        result = await ReconciliationService(session, failing_notifier).reconcile(_event())

        assert result.processed is True
        session.refresh(pending_invoice)
        assert pending_invoice.status == InvoiceStatus.PAID
        store = InvoiceStore(session)
        assert store.list_notifications(tenant.id, NotificationKind.RECONNECTION) == []

    @pytest.mark.asyncio
    async def test_existing_next_period_invoice_not_duplicated(
        self, session, settings, notifier, make_invoice, tenant, pending_invoice
    ):
        make_invoice(tenant, month=7)

        result = await ReconciliationService(session, notifier).reconcile(_event())

        assert result.processed is True
        assert result.next_invoice_created is False
        assert _invoice_count(session) == 2

    @pytest.mark.asyncio
    async def test_december_rolls_into_january(self, session, settings, notifier, make_invoice, tenant):
        make_invoice(tenant, month=12, year=2024, order_id=ORDER_ID)

        await ReconciliationService(session, notifier).reconcile(_event())

        next_invoice = InvoiceStore(session).find_for_period(tenant.id, 1, 2025)
        assert next_invoice.due_date == date(2025, 2, 5)


def _created_handler(requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "payment": {
                    "project": "wifique",
                    "amount": 100000,
                    "total_payment": 100710,
                    "payment_method": "qris",
                    "payment_number": "00020101021226610016ID.CO.SHOPEE.WWW",
                    "expired_at": "2024-07-03T10:00:00+07:00",
                }
            },
        )

    return handler


class TestCreateTransaction:
    @pytest.mark.asyncio
    async def test_creates_qris_transaction(self, session, settings, notifier, gateway_factory, make_invoice, tenant):
        invoice = make_invoice(tenant)
        requests: list[httpx.Request] = []
        service = ReconciliationService(session, notifier, gateway_factory(_created_handler(requests)))

        data = await service.create_transaction(invoice.id, "qris")

        assert re.fullmatch(rf"WFQ-{invoice.id}-\d+", data["order_id"])
        assert data["qr_string"].startswith("000201")
        assert data["total_payment"] == 100710
        assert requests[0].url.path.endswith("/transactioncreate/qris")

        session.refresh(invoice)
        assert invoice.gateway_order_id == data["order_id"]
        assert invoice.gateway_method == PaymentMethod.QRIS
        assert invoice.status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_virtual_account_has_no_qr_string(
        self, session, settings, notifier, gateway_factory, make_invoice, tenant
    ):
        invoice = make_invoice(tenant)
        service = ReconciliationService(session, notifier, gateway_factory(_created_handler([])))

        data = await service.create_transaction(invoice.id, "bni_va")

        assert data["method"] == "bni_va"
        assert data["qr_string"] is None

    @pytest.mark.asyncio
    async def test_paid_invoice_rejected(self, session, settings, notifier, gateway_factory, make_invoice, tenant):
        invoice = make_invoice(tenant, status=InvoiceStatus.PAID)
        service = ReconciliationService(session, notifier, gateway_factory(_created_handler([])))

        with pytest.raises(ValidationError) as exc_info:
            await service.create_transaction(invoice.id)
        assert exc_info.value.reason == "already_paid"

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, session, settings, notifier, gateway_factory):
        service = ReconciliationService(session, notifier, gateway_factory(_created_handler([])))

        with pytest.raises(NotFoundError):
            await service.create_transaction(999)

    @pytest.mark.asyncio
    async def test_unsupported_method(self, session, settings, notifier, gateway_factory, pending_invoice):
        service = ReconciliationService(session, notifier, gateway_factory(_created_handler([])))

        with pytest.raises(ValidationError) as exc_info:
            await service.create_transaction(pending_invoice.id, "cash")
        assert exc_info.value.reason == "unsupported_method"

    @pytest.mark.asyncio
    async def test_gateway_failure_leaves_invoice_untouched(
        self, session, settings, notifier, gateway_factory, pending_invoice
    ):
        service = ReconciliationService(
            session,
            notifier,
            gateway_factory(lambda request: httpx.Response(200, json={"error": "invalid api key"})),
        )

        with pytest.raises(UpstreamError):
            await service.create_transaction(pending_invoice.id)

        session.refresh(pending_invoice)
        assert pending_invoice.gateway_order_id == ORDER_ID

    @pytest.mark.asyncio
    async def test_missing_gateway(self, session, settings, notifier, pending_invoice):
        with pytest.raises(ValidationError) as exc_info:
            await ReconciliationService(session, notifier).create_transaction(pending_invoice.id)
        assert exc_info.value.reason == "gateway_not_configured"


class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_not_created_without_order(self, session, settings, notifier, make_invoice, tenant):
        invoice = make_invoice(tenant)

        data = await ReconciliationService(session, notifier).check_status(invoice.id)

        assert data["gateway_status"] == "not_created"
        assert data["local_status"] == "pending"

    @pytest.mark.asyncio
    async def test_reports_gateway_status_without_settling(
        self, session, settings, notifier, gateway_factory, tenant, pending_invoice
    ):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"transaction": {"status": "completed"}})

        service = ReconciliationService(session, notifier, gateway_factory(handler))

        data = await service.check_status(pending_invoice.id)

        assert data["gateway_status"] == "completed"
        assert seen[0].url.params["order_id"] == ORDER_ID
        assert seen[0].url.params["amount"] == "100000"
        session.refresh(pending_invoice)
        session.refresh(tenant)
        assert pending_invoice.status == InvoiceStatus.PENDING
        assert _invoice_count(session) == 1


def test_list_payment_methods():
    methods = {m["id"]: m for m in list_payment_methods()}

    assert methods["qris"]["name"] == "QRIS"
    assert set(methods) == {m.value for m in PaymentMethod}
