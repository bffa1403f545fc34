"""
Scaffold plan and result models.

The planner produces a ScaffoldPlan per household: every intended write,
grouped into buckets. Nothing is written until the whole plan exists. The
applier walks the buckets in BUCKET_ORDER and adds its counts to a
ScaffoldResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Iterator, List, Optional

from .dinner import TicketPrice
from .enums import DinnerMode
from .order import Order


class Bucket(Enum):
    """Kind of write the scaffold wants to make."""

    CREATE = "create"
    """New BOOKED order."""

    UPDATE = "update"
    """RELEASED order of the same inhabitant restored to BOOKED."""

    MODE_UPDATE = "mode_update"
    """BOOKED order with a different dining mode."""

    CLAIM = "claim"
    """Released ticket of a housemate taken over after the deadline."""

    RELEASE = "release"
    """BOOKED order given up after the deadline."""

    DELETE = "delete"
    """Order removed before the deadline."""

    PRICE_UPDATE = "price_update"
    """Ticket category healed after an age or price change."""


# Creates first, releases before deletes, price healing last
BUCKET_ORDER = (
    Bucket.CREATE,
    Bucket.UPDATE,
    Bucket.MODE_UPDATE,
    Bucket.CLAIM,
    Bucket.RELEASE,
    Bucket.DELETE,
    Bucket.PRICE_UPDATE,
)

_RESULT_FIELDS = {
    Bucket.CREATE: "created",
    Bucket.UPDATE: "reclaimed",
    Bucket.MODE_UPDATE: "mode_updated",
    Bucket.CLAIM: "claimed",
    Bucket.RELEASE: "released",
    Bucket.DELETE: "deleted",
    Bucket.PRICE_UPDATE: "price_updated",
}


@dataclass(frozen=True)
class PlannedChange:
    """One intended write for an (inhabitant, dinner event) pair."""

    bucket: Bucket
    household_id: int
    inhabitant_id: int
    dinner_event_id: int
    dinner_mode: DinnerMode
    order_id: Optional[int] = None
    """Order being changed; None for creates."""

    ticket_price: Optional[TicketPrice] = None
    """Price row to book at. None keeps the order's current price."""

    existing: Optional[Order] = None
    """The order as the planner saw it."""


@dataclass
class ScaffoldPlan:
    """All intended writes for one household."""

    household_id: int
    changes: Dict[Bucket, List[PlannedChange]] = field(
        default_factory=lambda: {bucket: [] for bucket in BUCKET_ORDER}
    )
    unchanged: int = 0

    def add(self, change: PlannedChange) -> None:
        self.changes[change.bucket].append(change)

    def counts(self) -> Dict[str, int]:
        return {bucket.value: len(self.changes[bucket]) for bucket in BUCKET_ORDER}

    @property
    def is_empty(self) -> bool:
        return not any(self.changes[bucket] for bucket in BUCKET_ORDER)

    def in_apply_order(self) -> Iterator[PlannedChange]:
        for bucket in BUCKET_ORDER:
            yield from self.changes[bucket]


@dataclass
class ScaffoldResult:
    """
    Counts of a scaffold run.

    Stored as the result summary of SCAFFOLD_PREBOOKINGS job runs, so
    to_dict/from_dict must stay compatible with older summaries.
    """

    season_id: Optional[int] = None
    created: int = 0
    reclaimed: int = 0
    mode_updated: int = 0
    claimed: int = 0
    released: int = 0
    deleted: int = 0
    price_updated: int = 0
    unchanged: int = 0
    households: int = 0

    def record(self, bucket: Bucket, count: int = 1) -> None:
        name = _RESULT_FIELDS[bucket]
        setattr(self, name, getattr(self, name) + count)

    def merge(self, other: "ScaffoldResult") -> None:
        for name in _RESULT_FIELDS.values():
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.unchanged += other.unchanged
        self.households += other.households

    @property
    def total_changes(self) -> int:
        return sum(getattr(self, name) for name in _RESULT_FIELDS.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seasonId": self.season_id,
            "created": self.created,
            "reclaimed": self.reclaimed,
            "modeUpdated": self.mode_updated,
            "claimed": self.claimed,
            "released": self.released,
            "deleted": self.deleted,
            "priceUpdated": self.price_updated,
            "unchanged": self.unchanged,
            "households": self.households,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScaffoldResult":
        return cls(
            season_id=data.get("seasonId"),
            created=data.get("created", 0),
            reclaimed=data.get("reclaimed", 0),
            mode_updated=data.get("modeUpdated", 0),
            claimed=data.get("claimed", 0),
            released=data.get("released", 0),
            deleted=data.get("deleted", 0),
            price_updated=data.get("priceUpdated", 0),
            unchanged=data.get("unchanged", 0),
            households=data.get("households", 0),
        )
