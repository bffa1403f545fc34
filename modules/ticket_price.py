"""
Ticket price resolution.

Maps an inhabitant to the price row they should be booked at:

    1. Birth date known -> age at the dinner date picks the category
       (first row, by ascending maximum age, whose limit exceeds the age;
       rows without a limit come last). The cheapest row of that category
       wins, ties broken by list order.
    2. Otherwise an explicit price picks the row with exactly that amount.
    3. Otherwise the cheapest ADULT row, or the last row of the list.

Age limits are exclusive: with a BABY limit of 2 a child is BABY up to and
including the day before its second birthday.

Example:
    prices = season.ticket_prices
    price = resolve_ticket_price(inhabitant.birth_date, None, prices, event.date)
    if price is None:
        raise ValidationError("Season has no ticket prices")
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from core.exceptions import ValidationError
from models.dinner import TicketPrice
from models.enums import TicketType
from models.order import Order


def calculate_age(birth_date: date, reference_date: date) -> int:
    """Age in complete years on ``reference_date``."""
    age = reference_date.year - birth_date.year
    if (reference_date.month, reference_date.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _by_age_limit(prices: Iterable[TicketPrice]) -> List[TicketPrice]:
    # Stable sort: unbounded rows last, list order kept within equal limits
    return sorted(
        prices,
        key=lambda p: (p.maximum_age_limit is None, p.maximum_age_limit or 0),
    )


def determine_ticket_type(age: int, prices: Sequence[TicketPrice]) -> TicketType:
    """
    Ticket category for an age.

    Args:
        age: Age in complete years
        prices: Season price rows, any order

    Returns:
        Category of the first row whose (exclusive) limit exceeds ``age``;
        ADULT when no row fits
    """
    for price in _by_age_limit(prices):
        if price.maximum_age_limit is None or age < price.maximum_age_limit:
            return price.ticket_type
    return TicketType.ADULT


def cheapest_price(
    prices: Sequence[TicketPrice],
    ticket_type: TicketType
) -> Optional[TicketPrice]:
    """Cheapest row of a category; first in list order on ties."""
    candidates = [p for p in prices if p.ticket_type == ticket_type]
    if not candidates:
        return None
    return min(candidates, key=lambda p: p.price)


def validate_ticket_prices(prices: Sequence[TicketPrice]) -> None:
    """
    Check a season's price list before it is stored or used.

    Raises:
        ValidationError: Empty list, rows from several seasons, negative
            prices or non-positive age limits
    """
    if not prices:
        raise ValidationError("At least one ticket price is required")

    season_ids = {p.season_id for p in prices}
    if len(season_ids) > 1:
        raise ValidationError(
            "Ticket prices must belong to a single season",
            details={"season_ids": sorted(season_ids)},
        )

    field_errors: Dict[str, List[str]] = {}
    for index, price in enumerate(prices):
        errors = []
        if price.price < 0:
            errors.append("Price must not be negative")
        if price.maximum_age_limit is not None and price.maximum_age_limit <= 0:
            errors.append("Maximum age limit must be positive")
        if errors:
            field_errors[f"ticketPrices[{index}]"] = errors
    if field_errors:
        raise ValidationError("Invalid ticket prices", field_errors=field_errors)


def resolve_ticket_price(
    birth_date: Optional[date],
    price_at_booking: Optional[int],
    prices: Optional[Sequence[TicketPrice]],
    reference_date: Optional[date] = None,
) -> Optional[TicketPrice]:
    """
    Resolve the price row for an inhabitant.

    Args:
        birth_date: Inhabitant's birth date, if known
        price_at_booking: Explicit price (øre) to match when no birth date
        prices: Price rows of ONE season, any order
        reference_date: Date the age is computed at (the dinner date);
            defaults to today

    Returns:
        Matching row, or None (missing configuration the caller must
        handle) when the price list is empty, or when a birth date puts the
        inhabitant above every age limit and the list has no ADULT row

    Raises:
        ValidationError: If the rows belong to more than one season
    """
    if not prices:
        return None

    if len({p.season_id for p in prices}) > 1:
        raise ValidationError(
            "Ticket prices must belong to a single season",
            details={"season_ids": sorted({p.season_id for p in prices})},
        )

    if birth_date is not None:
        age = calculate_age(birth_date, reference_date or date.today())
        return cheapest_price(prices, determine_ticket_type(age, prices))

    if price_at_booking is not None:
        for price in prices:
            if price.price == price_at_booking:
                return price

    return cheapest_price(prices, TicketType.ADULT) or prices[-1]


def ticket_type_for_price(price_at_booking: int, prices: Sequence[TicketPrice]) -> Optional[TicketType]:
    """Category of the first row with exactly this price, if any."""
    for price in prices:
        if price.price == price_at_booking:
            return price.ticket_type
    return None


def ticket_type_for_order(order: Order, prices: Sequence[TicketPrice]) -> Optional[TicketType]:
    """
    Stored category of an order.

    The order's own price row decides; when that row is gone, the category of
    the row matching its booked price.
    """
    if order.ticket_price_id is not None:
        for price in prices:
            if price.id == order.ticket_price_id:
                return price.ticket_type
    return ticket_type_for_price(order.price_at_booking, prices)


def format_price_dkk(amount: int) -> int:
    """Øre to whole kroner, half up (4050 -> 41)."""
    kroner = (Decimal(amount) / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(kroner)
