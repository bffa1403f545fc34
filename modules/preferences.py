"""
Weekday dinner preferences.

An inhabitant's preferences map every weekday key (mandag..søndag) to a
DinnerMode. They are stored as a JSON object and are the only input the
scaffold uses to decide what an inhabitant wants for a given dinner.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.exceptions import ValidationError
from models.dinner import DinnerEvent, Season
from models.enums import DinnerMode, WEEKDAYS
from models.household import Inhabitant


WeekDayMap = Dict[str, DinnerMode]


def default_preferences(mode: DinnerMode = DinnerMode.DINEIN) -> WeekDayMap:
    return {day: mode for day in WEEKDAYS}


def validate_preferences(raw: Any) -> WeekDayMap:
    """
    Validate raw preferences from a request body or the database.

    Args:
        raw: Dict of weekday -> mode name, or its JSON string

    Returns:
        Complete weekday map

    Raises:
        ValidationError: With one message per offending weekday
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Dinner preferences are not valid JSON: {e.msg}")

    if not isinstance(raw, Mapping):
        raise ValidationError("Dinner preferences must be an object keyed by weekday")

    field_errors: Dict[str, List[str]] = {}
    for key in raw:
        if key not in WEEKDAYS:
            field_errors.setdefault(str(key), []).append("Unknown weekday")

    result: WeekDayMap = {}
    for day in WEEKDAYS:
        if day not in raw:
            field_errors.setdefault(day, []).append("Missing weekday")
            continue
        value = raw[day]
        if isinstance(value, DinnerMode):
            result[day] = value
            continue
        try:
            result[day] = DinnerMode(value)
        except ValueError:
            allowed = ", ".join(mode.value for mode in DinnerMode)
            field_errors.setdefault(day, []).append(f"Invalid dinner mode '{value}' (allowed: {allowed})")

    if field_errors:
        raise ValidationError("Invalid dinner preferences", field_errors=field_errors)
    return result


def serialize_preferences(preferences: Optional[WeekDayMap]) -> Optional[str]:
    if preferences is None:
        return None
    return json.dumps({day: preferences[day].value for day in WEEKDAYS}, ensure_ascii=False)


def deserialize_preferences(text: Optional[str]) -> Optional[WeekDayMap]:
    """Stored JSON back to a weekday map; None stays None."""
    if text is None or text == "":
        return None
    return validate_preferences(text)


def clip_preferences(preferences: Optional[WeekDayMap], cooking_days: Mapping[str, bool]) -> WeekDayMap:
    """
    Align preferences with a season's cooking days.

    Non-cooking days become NONE. Cooking days keep their mode, or get
    DINEIN when the inhabitant had none.
    """
    clipped: WeekDayMap = {}
    for day in WEEKDAYS:
        if not cooking_days.get(day, False):
            clipped[day] = DinnerMode.NONE
        elif preferences is None:
            clipped[day] = DinnerMode.DINEIN
        else:
            clipped[day] = preferences.get(day, DinnerMode.DINEIN)
    return clipped


def preference_updates(
    inhabitants: List[Inhabitant],
    cooking_days: Mapping[str, bool]
) -> List[Tuple[Inhabitant, WeekDayMap]]:
    """Inhabitants whose stored preferences differ from their clipped version."""
    updates = []
    for inhabitant in inhabitants:
        clipped = clip_preferences(inhabitant.dinner_preferences, cooking_days)
        if clipped != inhabitant.dinner_preferences:
            updates.append((inhabitant, clipped))
    return updates


def desired_dinner_mode(inhabitant: Inhabitant, event: DinnerEvent, season: Season) -> DinnerMode:
    """
    What the inhabitant wants for this dinner according to preferences alone.

    NONE on holidays and non-cooking days. Inhabitants without preferences
    dine in.
    """
    if not season.is_cooking_day(event.date):
        return DinnerMode.NONE
    if inhabitant.dinner_preferences is None:
        return DinnerMode.DINEIN
    return inhabitant.dinner_preferences.get(event.weekday, DinnerMode.NONE)
