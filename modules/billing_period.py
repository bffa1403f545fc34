"""
Billing period calculation.

A billing period runs from the day after the cutoff in one month to the
cutoff day in the next month. With the default cutoff of 17:

    18/10/2025-17/11/2025, paid on 01/12/2025

Dinners are billed in the period their date falls in.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Tuple, Union

from models.billing import BillingPeriod, DATE_FORMAT


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _validate_cutoff(cutoff_day: int) -> None:
    if not 1 <= cutoff_day <= 27:
        raise ValueError(f"Billing cutoff day must be between 1 and 27, got {cutoff_day}")


def billing_period_range(reference: date, offset: int = 0, cutoff_day: int = 17) -> BillingPeriod:
    """
    Billing period relative to the one containing ``reference``.

    Args:
        reference: Any date
        offset: 0 for the period containing the date, -1 for the one before, ...
        cutoff_day: Last day of a period

    Returns:
        BillingPeriod with start, end and payment date
    """
    _validate_cutoff(cutoff_day)
    base = -1 if reference.day <= cutoff_day else 0

    start_year, start_month = _shift_month(reference.year, reference.month, base + offset)
    end_year, end_month = _shift_month(start_year, start_month, 1)
    pay_year, pay_month = _shift_month(end_year, end_month, 1)

    return BillingPeriod(
        start=date(start_year, start_month, cutoff_day + 1),
        end=date(end_year, end_month, cutoff_day),
        payment_date=date(pay_year, pay_month, 1),
    )


def billing_period_for_date(day: date, cutoff_day: int = 17) -> BillingPeriod:
    """The period a dinner on ``day`` is billed in."""
    return billing_period_range(day, 0, cutoff_day)


def closed_billing_period(reference: Union[date, datetime], cutoff_day: int = 17) -> BillingPeriod:
    """Most recent period whose cutoff has passed on ``reference``."""
    if isinstance(reference, datetime):
        reference = reference.date()
    return billing_period_range(reference, -1, cutoff_day)


def parse_billing_period(label: str) -> Tuple[date, date]:
    """
    Split a period label into its start and end dates.

    Raises:
        ValueError: If the label is not 'dd/mm/yyyy-dd/mm/yyyy'
    """
    start_text, separator, end_text = label.partition("-")
    if not separator:
        raise ValueError(f"Invalid billing period '{label}'")
    return (
        datetime.strptime(start_text.strip(), DATE_FORMAT).date(),
        datetime.strptime(end_text.strip(), DATE_FORMAT).date(),
    )


def current_billing_period(reference: Union[date, datetime], cutoff_day: int = 17) -> BillingPeriod:
    """Period that is still collecting dinners on ``reference``."""
    if isinstance(reference, datetime):
        reference = reference.date()
    return billing_period_range(reference, 0, cutoff_day)


def format_billing_period(start: date, end: date) -> str:
    return f"{start.strftime(DATE_FORMAT)}-{end.strftime(DATE_FORMAT)}"
