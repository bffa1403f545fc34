"""
Season, dinner event and ticket price models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Any, List, Optional

from .enums import DinnerState, TicketType, WEEKDAYS


def _to_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class TicketPrice:
    """
    One price row of a season.

    Prices are in øre (minor unit). Several rows may share a ticket type,
    e.g. a regular and a reduced ADULT tier.
    """

    id: int
    season_id: int
    ticket_type: TicketType
    price: int
    maximum_age_limit: Optional[int] = None
    """Exclusive upper age bound. None means unbounded."""

    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "seasonId": self.season_id,
            "ticketType": self.ticket_type.value,
            "price": self.price,
            "maximumAgeLimit": self.maximum_age_limit,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TicketPrice":
        return cls(
            id=data.get("id"),
            season_id=data.get("seasonId", data.get("season_id")),
            ticket_type=TicketType(data.get("ticketType", data.get("ticket_type"))),
            price=int(data["price"]),
            maximum_age_limit=data.get("maximumAgeLimit", data.get("maximum_age_limit")),
            description=data.get("description") or "",
        )


@dataclass
class DinnerEvent:
    """A single communal dinner on a date."""

    id: int
    season_id: int
    date: date
    menu_title: str = ""
    state: DinnerState = DinnerState.SCHEDULED
    total_cost: int = 0

    @property
    def weekday(self) -> str:
        return WEEKDAYS[self.date.weekday()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "seasonId": self.season_id,
            "date": self.date.isoformat(),
            "menuTitle": self.menu_title,
            "state": self.state.value,
            "totalCost": self.total_cost,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DinnerEvent":
        return cls(
            id=data["id"],
            season_id=data.get("seasonId", data.get("season_id")),
            date=_to_date(data["date"]),
            menu_title=data.get("menuTitle", data.get("menu_title", "")),
            state=DinnerState(data.get("state", DinnerState.SCHEDULED.value)),
            total_cost=data.get("totalCost", data.get("total_cost", 0)),
        )


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range, used for holidays."""

    start: date
    end: date

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass
class Season:
    """
    A cooking season.

    Carries its own calendar (cooking weekdays minus holidays), its ticket
    prices and its deadline settings.
    """

    id: int
    short_name: str
    season_dates: DateRange
    cooking_days: Dict[str, bool] = field(
        default_factory=lambda: {day: True for day in WEEKDAYS}
    )
    holidays: List[DateRange] = field(default_factory=list)
    ticket_prices: List[TicketPrice] = field(default_factory=list)
    dinner_events: List[DinnerEvent] = field(default_factory=list)
    ticket_is_cancellable_days_before: int = 8
    dining_mode_is_editable_minutes_before: int = 90
    is_active: bool = False

    def is_holiday(self, day: date) -> bool:
        return any(day in holiday for holiday in self.holidays)

    def is_cooking_day(self, day: date) -> bool:
        """True when dinners are served on this date (cooking weekday, not a holiday)."""
        if day not in self.season_dates:
            return False
        if not self.cooking_days.get(WEEKDAYS[day.weekday()], False):
            return False
        return not self.is_holiday(day)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shortName": self.short_name,
            "seasonDates": {
                "start": self.season_dates.start.isoformat(),
                "end": self.season_dates.end.isoformat(),
            },
            "cookingDays": dict(self.cooking_days),
            "holidays": [
                {"start": h.start.isoformat(), "end": h.end.isoformat()} for h in self.holidays
            ],
            "ticketPrices": [price.to_dict() for price in self.ticket_prices],
            "ticketIsCancellableDaysBefore": self.ticket_is_cancellable_days_before,
            "diningModeIsEditableMinutesBefore": self.dining_mode_is_editable_minutes_before,
            "isActive": self.is_active,
        }
