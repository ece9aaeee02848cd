"""Notification service for sending billing notices to tenants over Telegram."""

import logging

from telegram import Bot
from telegram.constants import ParseMode

from src.models.invoice import Invoice
from src.models.tenant import Tenant
from src.services.errors import TransientDeliveryError
from src.services.locale_service import format_amount, format_due_date, format_period
from src.services.localizer import t

logger = logging.getLogger(__name__)


def _unit(tenant: Tenant) -> str:
    return tenant.unit_name or t("labels.no_unit")


def reminder_tone(days_until_due: int) -> str:
    """Pick the reminder line for the number of days left."""
    if days_until_due > 1:
        return t("reminder.due_in_days", days=days_until_due)
    if days_until_due == 1:
        return t("reminder.due_in_one_day")
    if days_until_due == 0:
        return t("reminder.due_today")
    return t("reminder.past_due")


def build_reminder_message(tenant: Tenant, invoice: Invoice, days_until_due: int) -> str:
    """Render the payment reminder text."""
    details = t(
        "reminder.details",
        unit=_unit(tenant),
        period=format_period(invoice.period_month, invoice.period_year),
        amount=format_amount(invoice.amount),
        due_date=format_due_date(invoice.due_date),
    )
    return "\n\n".join(
        [
            t("reminder.greeting", name=tenant.name),
            t("reminder.title"),
            details,
            reminder_tone(days_until_due),
            t("reminder.call_to_action"),
            t("common.signature"),
        ]
    )


def build_disconnection_message(tenant: Tenant) -> str:
    """Render the access disconnection notice."""
    return "\n\n".join(
        [
            t("disconnection.greeting", name=tenant.name),
            t("disconnection.title"),
            t("disconnection.body", unit=_unit(tenant)),
            t("common.signature"),
        ]
    )


def build_reconnection_message(tenant: Tenant) -> str:
    """Render the access restored notice."""
    return "\n\n".join(
        [
            t("reconnection.greeting", name=tenant.name),
            t("reconnection.title"),
            t("reconnection.body", unit=_unit(tenant)),
            t("common.signature"),
        ]
    )


class NotificationService:
    """Service for sending billing notices to tenants.

    Every send either completes or raises TransientDeliveryError; callers decide
    whether to log a notification record.
    """

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id: str | None, text: str) -> None:
        """Send message to a Telegram chat.

        Args:
            chat_id: Telegram chat ID
            text: Message text (HTML)

        Raises:
            TransientDeliveryError: If the tenant has no chat or the send fails
        """
        if not chat_id:
            raise TransientDeliveryError("Tenant has no Telegram chat configured", reason="no_contact")
        try:
            await self.bot.send_message(chat_id=int(chat_id), text=text, parse_mode=ParseMode.HTML)
        except Exception as e:
            raise TransientDeliveryError(f"Failed to send message to {chat_id}: {e}") from e

    async def send_payment_reminder(self, tenant: Tenant, invoice: Invoice, days_until_due: int) -> str:
        """Send a payment reminder and return the delivered text."""
        message = build_reminder_message(tenant, invoice, days_until_due)
        await self.send_message(tenant.telegram_id, message)
        return message

    async def send_disconnection_notice(self, tenant: Tenant) -> str:
        """Send a disconnection notice and return the delivered text."""
        message = build_disconnection_message(tenant)
        await self.send_message(tenant.telegram_id, message)
        return message

    async def send_reconnection_notice(self, tenant: Tenant) -> str:
        """Send a reconnection notice and return the delivered text."""
        message = build_reconnection_message(tenant)
        await self.send_message(tenant.telegram_id, message)
        return message


class NullNotificationService(NotificationService):
    """Notifier used when no delivery channel is configured.

    Every send fails with TransientDeliveryError, so no notification record is
    written and the notice stays eligible once delivery is configured.
    """

    def __init__(self):
        super().__init__(bot=None)

    async def send_message(self, chat_id: str | None, text: str) -> None:
        logger.debug("notification.skipped: chat_id=%s (delivery not configured)", chat_id)
        raise TransientDeliveryError("Notification delivery not configured", reason="not_configured")


__all__ = [
    "NotificationService",
    "NullNotificationService",
    "build_reminder_message",
    "build_disconnection_message",
    "build_reconnection_message",
    "reminder_tone",
]
