"""
Order data models.

An order is one inhabitant's ticket for one dinner event. Its history is an
append-only log that outlives the order row itself: the scaffold reads the
latest user intent from it to honour cancellations of deleted orders.

Lifecycle:
    (none) -> BOOKED -> RELEASED -> (claimed) BOOKED
    BOOKED | RELEASED -> CLOSED
    BOOKED | RELEASED -> deleted (before the booking deadline only)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Any, Optional, Tuple

from .enums import DinnerMode, OrderAuditAction, OrderProvenance, OrderState


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Order:
    """
    A ticket for one inhabitant at one dinner event.

    ``price_at_booking`` only changes through the scaffold's price-update
    step (or a claim), and always with a history entry.
    """

    id: Optional[int]
    """None until persisted."""

    dinner_event_id: int
    inhabitant_id: int
    price_at_booking: int
    """Price in øre frozen when the ticket was booked."""

    ticket_price_id: Optional[int] = None
    """Weak link; nulled when the price row is deleted."""

    booked_by_user_id: Optional[int] = None
    dinner_mode: DinnerMode = DinnerMode.DINEIN
    state: OrderState = OrderState.BOOKED
    is_guest_ticket: bool = False
    provenance: OrderProvenance = OrderProvenance.SCAFFOLD
    released_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[int, int]:
        """(inhabitant_id, dinner_event_id) - the pair the scaffold reasons about."""
        return (self.inhabitant_id, self.dinner_event_id)

    def copy(self, **changes: Any) -> "Order":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dinnerEventId": self.dinner_event_id,
            "inhabitantId": self.inhabitant_id,
            "priceAtBooking": self.price_at_booking,
            "ticketPriceId": self.ticket_price_id,
            "bookedByUserId": self.booked_by_user_id,
            "dinnerMode": self.dinner_mode.value,
            "state": self.state.value,
            "isGuestTicket": self.is_guest_ticket,
            "provenance": self.provenance.value,
            "releasedAt": _iso(self.released_at),
            "closedAt": _iso(self.closed_at),
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            id=data.get("id"),
            dinner_event_id=data["dinnerEventId"],
            inhabitant_id=data["inhabitantId"],
            price_at_booking=int(data.get("priceAtBooking", 0)),
            ticket_price_id=data.get("ticketPriceId"),
            booked_by_user_id=data.get("bookedByUserId"),
            dinner_mode=DinnerMode(data.get("dinnerMode", DinnerMode.DINEIN.value)),
            state=OrderState(data.get("state", OrderState.BOOKED.value)),
            is_guest_ticket=bool(data.get("isGuestTicket", False)),
            provenance=OrderProvenance(data.get("provenance", OrderProvenance.SCAFFOLD.value)),
            released_at=_to_datetime(data.get("releasedAt")),
            closed_at=_to_datetime(data.get("closedAt")),
            created_at=_to_datetime(data.get("createdAt")),
        )


@dataclass
class OrderHistoryEntry:
    """
    One append-only audit record.

    Inhabitant and dinner event ids are copied in so the entry still answers
    "what did the user last ask for this dinner" after the order is deleted.
    """

    id: Optional[int]
    order_id: Optional[int]
    inhabitant_id: int
    dinner_event_id: int
    action: OrderAuditAction
    performed_by_user_id: Optional[int] = None
    """None for system actions."""

    audit_data: str = "{}"
    """JSON document describing the change."""

    timestamp: Optional[datetime] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.inhabitant_id, self.dinner_event_id)

    @classmethod
    def for_order(
        cls,
        order: Order,
        action: OrderAuditAction,
        performed_by_user_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
        **audit: Any
    ) -> "OrderHistoryEntry":
        """Build an entry describing ``order`` after the change."""
        data = {
            "dinnerMode": order.dinner_mode.value,
            "state": order.state.value,
            "priceAtBooking": order.price_at_booking,
            "ticketPriceId": order.ticket_price_id,
        }
        data.update(audit)
        return cls(
            id=None,
            order_id=order.id,
            inhabitant_id=order.inhabitant_id,
            dinner_event_id=order.dinner_event_id,
            action=action,
            performed_by_user_id=performed_by_user_id,
            audit_data=json.dumps(data, default=str),
            timestamp=timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "inhabitantId": self.inhabitant_id,
            "dinnerEventId": self.dinner_event_id,
            "action": self.action.value,
            "performedByUserId": self.performed_by_user_id,
            "auditData": json.loads(self.audit_data or "{}"),
            "timestamp": _iso(self.timestamp),
        }
