"""Billing period arithmetic.

Pure functions shared by the invoice generator and the reconciliation engine so
period rollover and due dates are defined in one place.
"""

import math
from datetime import date, datetime, time

from src.services.errors import ValidationError

DUE_DAY = 5
"""Invoices fall due on this day of the month after the billing period."""


def validate_period(month: int, year: int) -> None:
    """Raise ValidationError unless (month, year) is a real calendar period."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid period month: {month}", reason="invalid_period")
    if not 1 <= year <= 9998:
        raise ValidationError(f"Invalid period year: {year}", reason="invalid_period")


def next_period(month: int, year: int) -> tuple[int, int]:
    """Return the (month, year) following the given period.

    Example:
        >>> next_period(12, 2024)
        (1, 2025)
    """
    validate_period(month, year)
    if month == 12:
        return 1, year + 1
    return month + 1, year


def due_date(month: int, year: int) -> date:
    """Return the due date for the given billing period.

    Example:
        >>> due_date(6, 2024)
        datetime.date(2024, 7, 5)
    """
    due_month, due_year = next_period(month, year)
    return date(due_year, due_month, DUE_DAY)


def current_period(today: date) -> tuple[int, int]:
    """Return the billing period that contains the given day."""
    return today.month, today.year


def days_until_due(due: date, today: date | datetime) -> int:
    """Whole days from today until the due date, negative once past due.

    A datetime is measured against midnight of the due date and rounded to the
    nearest day, halves rounding up.
    """
    if isinstance(today, datetime):
        due_at = datetime.combine(due, time.min, tzinfo=today.tzinfo)
        return math.floor((due_at - today).total_seconds() / 86400 + 0.5)
    return (due - today).days


def as_date(today: date | datetime) -> date:
    if isinstance(today, datetime):
        return today.date()
    return today


__all__ = [
    "DUE_DAY",
    "validate_period",
    "next_period",
    "due_date",
    "current_period",
    "days_until_due",
    "as_date",
]
