"""
Household and inhabitant models.

A household is the billing unit (one PBS id, one address). Inhabitants belong
to exactly one household and carry the weekday dinner preferences that the
scaffold turns into orders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Any, List, Optional

from .enums import DinnerMode


_DOT_BEFORE_WORD = re.compile(r"\.(?=[0-9A-Za-z])")
_NON_WORD = re.compile(r"[^\w]")


def household_short_name(address: str) -> str:
    """
    Derive the short household name used on rosters and in CSV imports.

    Words before the first number contribute their initial letter, the number
    and everything after it are kept whole:

        "Skråningen 31"     -> "S_31"
        "Tvethøjvej 43, 1"  -> "T_43_1"
        "Abbey Road 1 th."  -> "AR_1_th"

    Args:
        address: Street address as stored on the household

    Returns:
        Short name; empty string for an empty address
    """
    words = _DOT_BEFORE_WORD.sub(" ", address.strip()).split()

    letters = []
    tail = []
    found_number = False
    for word in words:
        cleaned = _NON_WORD.sub("", word)
        if cleaned[:1].isdigit():
            found_number = True
        if found_number:
            tail.append(cleaned)
        elif cleaned:
            letters.append(cleaned[0].upper())

    parts = ["".join(letters)] + tail
    return "_".join(part for part in parts if part)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass
class Inhabitant:
    """A person living in a household."""

    id: int
    household_id: int
    name: str
    last_name: str = ""
    birth_date: Optional[date] = None
    """Drives the ticket category. None means the explicit price decides."""

    user_id: Optional[int] = None
    """Login account, if the inhabitant has one."""

    dinner_preferences: Optional[Dict[str, DinnerMode]] = None
    """Weekday -> dining mode. None means 'dine in on every cooking day'."""

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "householdId": self.household_id,
            "name": self.name,
            "lastName": self.last_name,
            "birthDate": self.birth_date.isoformat() if self.birth_date else None,
            "userId": self.user_id,
            "dinnerPreferences": (
                {day: mode.value for day, mode in self.dinner_preferences.items()}
                if self.dinner_preferences is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Inhabitant":
        prefs = data.get("dinnerPreferences")
        return cls(
            id=data["id"],
            household_id=data.get("householdId", data.get("household_id")),
            name=data.get("name", ""),
            last_name=data.get("lastName", data.get("last_name", "")),
            birth_date=_parse_date(data.get("birthDate", data.get("birth_date"))),
            user_id=data.get("userId", data.get("user_id")),
            dinner_preferences=(
                {day: DinnerMode(mode) for day, mode in prefs.items()}
                if prefs is not None else None
            ),
        )


@dataclass
class Household:
    """A billing household."""

    id: int
    pbs_id: int
    """Unique identifier towards the payment service (PBS)."""

    address: str
    name: str = ""
    inhabitants: List[Inhabitant] = field(default_factory=list)

    @property
    def short_name(self) -> str:
        return household_short_name(self.address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pbsId": self.pbs_id,
            "address": self.address,
            "name": self.name,
            "shortName": self.short_name,
            "inhabitants": [inhabitant.to_dict() for inhabitant in self.inhabitants],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Household":
        return cls(
            id=data["id"],
            pbs_id=data.get("pbsId", data.get("pbs_id")),
            address=data.get("address", ""),
            name=data.get("name", ""),
            inhabitants=[Inhabitant.from_dict(i) for i in data.get("inhabitants", [])],
        )
