"""Centralized locale service for currency, dates, and month names in notices.

Single source of truth for all locale-related formatting.
Uses babel library.

Configuration:
    LOCALE env var (default: id_ID) - determines currency, number/date formatting

Example:
    >>> from src.services.locale_service import format_amount, format_due_date
    >>> format_amount(100000)
    'Rp 100.000'
    >>> format_due_date(date(2024, 7, 5))
    '5 Juli 2024'
"""

import logging
import os
from datetime import date

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.dates import get_month_names
from babel.numbers import format_decimal as babel_format_decimal
from babel.numbers import get_currency_symbol as babel_get_currency_symbol
from babel.numbers import get_territory_currencies

logger = logging.getLogger(__name__)

# Default locale if LOCALE env var is invalid or missing
DEFAULT_LOCALE = "id_ID"
DEFAULT_CURRENCY = "IDR"


def _get_locale() -> str:
    """Get locale from environment with validation and fallback.

    Returns:
        Valid locale string (e.g., 'id_ID')
    """
    locale_str = os.getenv("LOCALE", DEFAULT_LOCALE)
    try:
        # Validate locale exists in babel
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Invalid LOCALE '%s': %s. Falling back to '%s'", locale_str, e, DEFAULT_LOCALE)
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory.

    Args:
        locale_str: Locale string (e.g., 'id_ID')

    Returns:
        Currency code (e.g., 'IDR')
    """
    try:
        locale = Locale.parse(locale_str)
        territory = locale.territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Could not derive currency from locale '%s': %s", locale_str, e)

    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def get_currency_symbol() -> str:
    """Get currency symbol for current locale (e.g., 'Rp')."""
    return babel_get_currency_symbol(CURRENCY, locale=LOCALE)


def format_amount(amount: int) -> str:
    """Format an invoice amount (whole currency units) with the currency symbol.

    Example:
        >>> format_amount(100000)
        'Rp 100.000'
    """
    return f"{get_currency_symbol()} {babel_format_decimal(amount, format='#,##0', locale=LOCALE)}"


def format_due_date(value: date) -> str:
    """Format a date in the locale's long form (e.g., '5 Juli 2024')."""
    return babel_format_date(value, format="long", locale=LOCALE)


def month_name(month: int) -> str:
    """Localized wide month name for 1-12 (e.g., 'Juni')."""
    return get_month_names("wide", locale=LOCALE)[month]


def format_period(month: int, year: int) -> str:
    """Billing period label (e.g., 'Juni 2024')."""
    return f"{month_name(month)} {year}"


__all__ = [
    "LOCALE",
    "CURRENCY",
    "get_currency_symbol",
    "format_amount",
    "format_due_date",
    "month_name",
    "format_period",
]
