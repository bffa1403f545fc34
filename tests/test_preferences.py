"""
Unit tests for weekday preferences and booking deadlines.
"""

from datetime import date, datetime

import pytest

from core.exceptions import ValidationError
from models.dinner import DateRange, DinnerEvent, Season
from models.enums import DinnerMode, DinnerState, WEEKDAYS
from models.household import Inhabitant
from modules.deadlines import SeasonDeadlines
from modules.preferences import (
    clip_preferences,
    default_preferences,
    deserialize_preferences,
    desired_dinner_mode,
    preference_updates,
    serialize_preferences,
    validate_preferences,
)


@pytest.fixture
def season():
    cooking = {day: day in ("mandag", "tirsdag", "torsdag") for day in WEEKDAYS}
    return Season(
        id=1,
        short_name="Test",
        season_dates=DateRange(date(2025, 8, 1), date(2026, 6, 30)),
        cooking_days=cooking,
        holidays=[DateRange(date(2025, 10, 13), date(2025, 10, 19))],
    )


class TestValidatePreferences:
    """Tests for validate_preferences."""

    def test_accepts_json_string(self):
        raw = '{"mandag": "DINEIN", "tirsdag": "TAKEAWAY", "onsdag": "NONE", "torsdag": "DINEINLATE", ' \
              '"fredag": "NONE", "lørdag": "NONE", "søndag": "NONE"}'
        prefs = validate_preferences(raw)
        assert prefs["tirsdag"] == DinnerMode.TAKEAWAY
        assert prefs["torsdag"] == DinnerMode.DINEINLATE

    def test_reports_each_bad_day(self):
        raw = {day: "DINEIN" for day in WEEKDAYS}
        raw["mandag"] = "BRUNCH"
        del raw["søndag"]
        raw["someday"] = "DINEIN"

        with pytest.raises(ValidationError) as exc_info:
            validate_preferences(raw)

        field_errors = exc_info.value.details["field_errors"]
        assert set(field_errors) == {"mandag", "søndag", "someday"}

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            validate_preferences(["DINEIN"])
        with pytest.raises(ValidationError):
            validate_preferences("{not json")

    def test_serialize_round_trip_keeps_danish_keys(self):
        text = serialize_preferences(default_preferences(DinnerMode.TAKEAWAY))
        assert "lørdag" in text
        assert deserialize_preferences(text) == default_preferences(DinnerMode.TAKEAWAY)
        assert deserialize_preferences(None) is None


class TestClipPreferences:
    """Tests for aligning preferences with cooking days."""

    def test_non_cooking_days_become_none(self, season):
        clipped = clip_preferences(default_preferences(DinnerMode.TAKEAWAY), season.cooking_days)
        assert clipped["mandag"] == DinnerMode.TAKEAWAY
        assert clipped["onsdag"] == DinnerMode.NONE

    def test_missing_preferences_dine_in_on_cooking_days(self, season):
        clipped = clip_preferences(None, season.cooking_days)
        assert clipped["torsdag"] == DinnerMode.DINEIN
        assert clipped["fredag"] == DinnerMode.NONE

    def test_preference_updates_only_lists_changes(self, season):
        already = Inhabitant(id=1, household_id=1, name="A",
                             dinner_preferences=clip_preferences(None, season.cooking_days))
        stale = Inhabitant(id=2, household_id=1, name="B", dinner_preferences=default_preferences())
        updates = preference_updates([already, stale], season.cooking_days)
        assert [inhabitant.id for inhabitant, _ in updates] == [2]


class TestDesiredDinnerMode:
    """Tests for desired_dinner_mode."""

    def test_holiday_and_non_cooking_day(self, season):
        inhabitant = Inhabitant(id=1, household_id=1, name="A")
        holiday = DinnerEvent(id=1, season_id=1, date=date(2025, 10, 14))
        wednesday = DinnerEvent(id=2, season_id=1, date=date(2025, 11, 5))
        assert desired_dinner_mode(inhabitant, holiday, season) == DinnerMode.NONE
        assert desired_dinner_mode(inhabitant, wednesday, season) == DinnerMode.NONE

    def test_uses_weekday_preference(self, season):
        prefs = default_preferences(DinnerMode.DINEIN)
        prefs["tirsdag"] = DinnerMode.TAKEAWAY
        inhabitant = Inhabitant(id=1, household_id=1, name="A", dinner_preferences=prefs)
        tuesday = DinnerEvent(id=1, season_id=1, date=date(2025, 11, 18))
        assert desired_dinner_mode(inhabitant, tuesday, season) == DinnerMode.TAKEAWAY


class TestSeasonDeadlines:
    """Tests for booking and dining-mode deadlines."""

    def test_booking_deadline_is_exclusive(self):
        deadlines = SeasonDeadlines(cancellable_days_before=10, dinner_start_hour=18)
        dinner = date(2025, 11, 18)
        assert deadlines.booking_deadline(dinner) == datetime(2025, 11, 8, 18, 0)
        assert deadlines.can_modify_orders(dinner, datetime(2025, 11, 8, 17, 59))
        assert not deadlines.can_modify_orders(dinner, datetime(2025, 11, 8, 18, 0))

    def test_dining_mode_deadline(self):
        deadlines = SeasonDeadlines(dining_mode_minutes_before=90, dinner_start_hour=18)
        dinner = date(2025, 11, 18)
        assert deadlines.can_edit_dining_mode(dinner, datetime(2025, 11, 18, 16, 29))
        assert not deadlines.can_edit_dining_mode(dinner, datetime(2025, 11, 18, 16, 30))

    def test_dinner_past_from_start_time(self):
        deadlines = SeasonDeadlines(dinner_start_hour=18)
        dinner = date(2025, 11, 18)
        assert not deadlines.is_dinner_past(dinner, datetime(2025, 11, 18, 17, 59))
        assert deadlines.is_dinner_past(dinner, datetime(2025, 11, 18, 18, 0))

    def test_scaffoldable_events(self):
        deadlines = SeasonDeadlines()
        now = datetime(2025, 11, 3, 12, 0)
        events = [
            DinnerEvent(id=1, season_id=1, date=date(2025, 11, 2)),
            DinnerEvent(id=2, season_id=1, date=date(2025, 11, 4)),
            DinnerEvent(id=3, season_id=1, date=date(2025, 11, 5), state=DinnerState.CANCELLED),
            DinnerEvent(id=4, season_id=1, date=date(2026, 1, 2)),
            DinnerEvent(id=5, season_id=1, date=date(2026, 1, 3)),
        ]
        # 2025-11-03 + 60 days == 2026-01-02
        ids = [e.id for e in deadlines.scaffoldable_events(events, now, window_days=60)]
        assert ids == [2, 4]
