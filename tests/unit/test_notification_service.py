"""Unit tests for billing notices over Telegram."""

from datetime import date

import pytest

from src.models import Invoice, Tenant
from src.services.errors import TransientDeliveryError
from src.services.locale_service import format_amount, format_period
from src.services.notification_service import (
    NotificationService,
    NullNotificationService,
    build_disconnection_message,
    build_reminder_message,
    reminder_tone,
)


@pytest.fixture
def resident():
    return Tenant(id=7, name="Budi", unit_name="Room 3", telegram_id="1001", is_active=True)


@pytest.fixture
def june_invoice():
    return Invoice(
        tenant_id=7, period_month=6, period_year=2024, amount=100000, due_date=date(2024, 7, 5)
    )


class TestMessages:
    @pytest.mark.parametrize(
        ("days", "fragment"),
        [(3, "3 days"), (1, "1 day"), (0, "TODAY"), (-2, "PAST DUE")],
    )
    def test_reminder_tone(self, days, fragment):
        assert fragment in reminder_tone(days)

    def test_reminder_message_contents(self, resident, june_invoice):
        text = build_reminder_message(resident, june_invoice, 3)

        assert "Budi" in text
        assert "Room 3" in text
        assert format_amount(100000) in text
        assert format_period(6, 2024) in text

    def test_amount_uses_locale_currency(self):
        assert format_amount(100000).startswith("Rp")

    def test_missing_unit_uses_placeholder(self):
        tenant = Tenant(name="Sari", unit_name=None)

        assert "Unit: -" in build_disconnection_message(tenant)


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_reminder_sent_as_html(self, bot, resident, june_invoice):
        message = await NotificationService(bot).send_payment_reminder(resident, june_invoice, 1)

        assert bot.sent == [{"chat_id": 1001, "text": message, "parse_mode": "HTML"}]

    @pytest.mark.asyncio
    async def test_missing_chat_raises(self, bot):
        tenant = Tenant(name="No Chat")

        with pytest.raises(TransientDeliveryError) as exc_info:
            await NotificationService(bot).send_disconnection_notice(tenant)

        assert exc_info.value.reason == "no_contact"
        assert bot.sent == []

    @pytest.mark.asyncio
    async def test_bot_failure_is_transient(self, failing_notifier, resident):
        with pytest.raises(TransientDeliveryError) as exc_info:
            await failing_notifier.send_reconnection_notice(resident)

        assert exc_info.value.reason == "delivery_failed"

    @pytest.mark.asyncio
    async def test_null_notifier_reports_not_configured(self, resident):
        with pytest.raises(TransientDeliveryError) as exc_info:
            await NullNotificationService().send_reconnection_notice(resident)

        assert exc_info.value.reason == "not_configured"
