"""
Booking deadlines.

Every dinner starts at a fixed hour on its date. Two deadlines hang off that
start time:

    booking deadline     = start - N days     (cancel = delete before, release after)
    dining-mode deadline = start - M minutes  (dine in / late / takeaway editable before)
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from models.dinner import DinnerEvent, Season
from models.enums import DinnerState


class SeasonDeadlines:
    """Deadline calculator for one season's settings."""

    def __init__(
        self,
        cancellable_days_before: int = 8,
        dining_mode_minutes_before: int = 90,
        dinner_start_hour: int = 18,
    ):
        self.cancellable_days_before = cancellable_days_before
        self.dining_mode_minutes_before = dining_mode_minutes_before
        self.dinner_start_hour = dinner_start_hour

    @classmethod
    def for_season(cls, season: Season, dinner_start_hour: int = 18) -> "SeasonDeadlines":
        return cls(
            cancellable_days_before=season.ticket_is_cancellable_days_before,
            dining_mode_minutes_before=season.dining_mode_is_editable_minutes_before,
            dinner_start_hour=dinner_start_hour,
        )

    def dinner_start_time(self, dinner_date: date) -> datetime:
        return datetime.combine(dinner_date, time(hour=self.dinner_start_hour))

    def booking_deadline(self, dinner_date: date) -> datetime:
        return self.dinner_start_time(dinner_date) - timedelta(days=self.cancellable_days_before)

    def dining_mode_deadline(self, dinner_date: date) -> datetime:
        return self.dinner_start_time(dinner_date) - timedelta(minutes=self.dining_mode_minutes_before)

    def can_modify_orders(self, dinner_date: date, now: datetime) -> bool:
        """True strictly before the booking deadline."""
        return now < self.booking_deadline(dinner_date)

    def can_edit_dining_mode(self, dinner_date: date, now: datetime) -> bool:
        return now < self.dining_mode_deadline(dinner_date)

    def is_dinner_past(self, dinner_date: date, now: datetime) -> bool:
        """True once the dinner has started."""
        return now >= self.dinner_start_time(dinner_date)

    def scaffoldable_events(
        self,
        events: Iterable[DinnerEvent],
        now: datetime,
        window_days: int = 60,
    ) -> List[DinnerEvent]:
        """
        Dinners the scaffold may still touch.

        Not cancelled, not yet started, and within the prebooking window.
        """
        last_day = now.date() + timedelta(days=window_days)
        return [
            event for event in events
            if event.state != DinnerState.CANCELLED
            and not self.is_dinner_past(event.date, now)
            and event.date <= last_day
        ]
