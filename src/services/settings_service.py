"""Typed, read-only access to billing settings stored in the settings table."""

import logging

from sqlalchemy.orm import Session

from src.models.setting import Setting
from src.services.config import BillingConfig, get_billing_config

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_FEE = 100000
DEFAULT_REMINDER_DAYS = "3,1,0"


def parse_reminder_days(value: str | None) -> set[int]:
    """Parse a comma-separated list of day offsets (any sign).

    Tokens that are not integers are skipped with a warning.

    Example:
        >>> sorted(parse_reminder_days("3, 1,0,-2"))
        [-2, 0, 1, 3]
    """
    days: set[int] = set()
    for token in (value or DEFAULT_REMINDER_DAYS).split(","):
        token = token.strip()
        if not token:
            continue
        try:
            days.add(int(token))
        except ValueError:
            logger.warning("settings.reminder_days: ignoring invalid offset %r", token)
    return days


class SettingsService:
    """Reads billing settings. The engine never writes settings."""

    MONTHLY_FEE = "monthly_fee"
    REMINDER_DAYS = "reminder_days"
    AUTO_DISCONNECT = "auto_disconnect"
    PAKASIR_PROJECT = "pakasir_project"
    PAKASIR_API_KEY = "pakasir_api_key"

    def __init__(self, db_session: Session, config: BillingConfig | None = None):
        """Initialize with database session and optional process config."""
        self.db = db_session
        self.config = config or get_billing_config()

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get raw setting value, or default when the key is absent."""
        setting = self.db.get(Setting, key)
        if setting is None or setting.value is None:
            return default
        return setting.value

    def monthly_fee(self) -> int:
        """Monthly fee in the smallest currency unit."""
        raw = self.get(self.MONTHLY_FEE)
        if raw is None or not raw.strip():
            return DEFAULT_MONTHLY_FEE
        try:
            return int(raw.strip())
        except ValueError:
            logger.error("settings.monthly_fee: invalid value %r, using default", raw)
            return DEFAULT_MONTHLY_FEE

    def reminder_days(self) -> set[int]:
        return parse_reminder_days(self.get(self.REMINDER_DAYS, DEFAULT_REMINDER_DAYS))

    def auto_disconnect_enabled(self) -> bool:
        """Only the exact string "true" enables enforcement."""
        return self.get(self.AUTO_DISCONNECT) == "true"

    def gateway_project(self) -> str:
        return self.get(self.PAKASIR_PROJECT) or self.config.pakasir_project

    def gateway_api_key(self) -> str:
        return self.get(self.PAKASIR_API_KEY) or self.config.pakasir_api_key


__all__ = ["SettingsService", "parse_reminder_days", "DEFAULT_MONTHLY_FEE"]
