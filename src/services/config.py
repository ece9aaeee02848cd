"""Billing service configuration from environment variables."""

import logging
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class BillingConfig(BaseSettings):
    """Process configuration loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file (if env_file is set)

    Runtime billing values (monthly fee, reminder days, auto-disconnect) live in the
    settings table; the gateway credentials here are only the fallback used when the
    table has no value.
    """

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields in .env file
    )

    database_url: str = "sqlite:///./billing.db"

    # Notification delivery (empty token disables delivery)
    telegram_bot_token: str = ""

    # Pakasir payment gateway
    pakasir_base_url: str = "https://app.pakasir.com/api"
    pakasir_project: str = ""
    pakasir_api_key: str = ""
    gateway_timeout_seconds: float = 15.0

    # Scheduler intervals
    generation_interval_seconds: float = 24 * 60 * 60
    reminder_interval_seconds: float = 24 * 60 * 60
    overdue_interval_seconds: float = 24 * 60 * 60
    scheduler_run_on_start: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        for name in (
            "generation_interval_seconds",
            "reminder_interval_seconds",
            "overdue_interval_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be positive")
        if not self.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set - billing notices will not be delivered")


# Lazy loader to ensure environment is loaded before instantiation
_billing_config_instance: Optional[BillingConfig] = None


def get_billing_config() -> BillingConfig:
    """Get or create the billing config instance."""
    global _billing_config_instance
    if _billing_config_instance is None:
        _billing_config_instance = BillingConfig()
        _billing_config_instance.validate()
    return _billing_config_instance


__all__ = ["BillingConfig", "get_billing_config"]
