"""
Billing snapshot serializer.

When a transaction is created, the facts billing needs (dinner, inhabitant,
household identity, ticket category, guest flag, provenance) are frozen into
``Transaction.order_snapshot``. Later views prefer live rows and fall back
to the snapshot one field at a time: a deleted price row must not hide a
still-existing household, and a deleted household must not hide the ticket
category.

Snapshot JSON:
    {
      "dinnerEvent": {"id": 12, "date": "2025-11-03", "menuTitle": "Lasagne"},
      "inhabitant": {"id": 7, "name": "Anna Berg",
                     "household": {"id": 3, "pbsId": 1031, "address": "Skråningen 31"}},
      "ticketType": "ADULT",
      "isGuestTicket": false,
      "provenance": "scaffold",
      "dinnerMode": "DINEIN",
      "priceAtBooking": 4000
    }
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any, List, Optional

from core.exceptions import SnapshotError
from models.billing import (
    DisplayTransaction,
    LiveTransactionRelations,
    OrderForTransaction,
    OrderSnapshot,
    Transaction,
)
from models.enums import TicketType
from models.household import Inhabitant
from logging_config import get_logger


logger = get_logger(__name__)


# =============================================================================
# SERIALIZE (once, at transaction creation)
# =============================================================================

def serialize_order_snapshot(source: OrderForTransaction) -> str:
    """Freeze the billing-relevant facts of an order into JSON."""
    order = source.order
    return json.dumps({
        "dinnerEvent": {
            "id": source.dinner_event.id,
            "date": source.dinner_event.date.isoformat(),
            "menuTitle": source.dinner_event.menu_title,
        },
        "inhabitant": {
            "id": source.inhabitant.id,
            "name": source.inhabitant.full_name,
            "household": {
                "id": source.household.id,
                "pbsId": source.household.pbs_id,
                "address": source.household.address,
            },
        },
        "ticketType": source.ticket_type.value if source.ticket_type else None,
        "isGuestTicket": order.is_guest_ticket,
        "provenance": order.provenance.value,
        "dinnerMode": order.dinner_mode.value,
        "priceAtBooking": order.price_at_booking,
    }, ensure_ascii=False)


def serialize_user_snapshot(inhabitant: Inhabitant, email: str = "") -> str:
    """Who was charged, as far as the booking user is concerned."""
    return json.dumps({
        "inhabitantId": inhabitant.id,
        "userId": inhabitant.user_id,
        "name": inhabitant.full_name,
        "email": email,
    }, ensure_ascii=False)


# =============================================================================
# PARSE
# =============================================================================

def parse_order_snapshot(transaction: Transaction) -> OrderSnapshot:
    """
    Parse a transaction's snapshot.

    Raises:
        SnapshotError: If the JSON is malformed or lacks dinner/inhabitant ids
    """
    try:
        data = json.loads(transaction.order_snapshot)
    except (TypeError, json.JSONDecodeError) as e:
        raise SnapshotError(transaction.id, f"invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise SnapshotError(transaction.id, "snapshot is not an object")

    try:
        event = data["dinnerEvent"]
        inhabitant = data["inhabitant"]
        household = inhabitant.get("household") or {}
        ticket_type = data.get("ticketType")
        return OrderSnapshot(
            dinner_event_id=int(event["id"]),
            dinner_event_date=date.fromisoformat(event["date"]),
            menu_title=event.get("menuTitle") or "",
            inhabitant_id=int(inhabitant["id"]),
            inhabitant_name=inhabitant.get("name") or "",
            household_id=household.get("id"),
            household_pbs_id=household.get("pbsId"),
            household_address=household.get("address"),
            ticket_type=TicketType(ticket_type) if ticket_type else None,
            is_guest_ticket=data.get("isGuestTicket"),
            provenance=data.get("provenance"),
            dinner_mode=data.get("dinnerMode"),
            price_at_booking=data.get("priceAtBooking"),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SnapshotError(transaction.id, f"missing or invalid field ({e})") from e


# =============================================================================
# DESERIALIZE (live first, snapshot per field)
# =============================================================================

def _pick(
    name: str,
    live: Any,
    snapshot: Any,
    fallbacks: List[str],
) -> Any:
    if live is not None:
        return live
    if snapshot is not None:
        fallbacks.append(name)
    return snapshot


def deserialize_transaction(
    transaction: Transaction,
    live: Optional[LiveTransactionRelations] = None,
) -> DisplayTransaction:
    """
    Build the billing view of a transaction.

    Each of household identity, ticket category, guest flag, provenance,
    dinner event and inhabitant is taken from the live relation when it is
    there, otherwise from the snapshot, independently of the others.

    Args:
        transaction: Transaction with its frozen snapshot
        live: Live rows still reachable from the transaction

    Returns:
        DisplayTransaction; ``fields_from_snapshot`` names the fallbacks

    Raises:
        SnapshotError: Snapshot unreadable and no live order to use instead
    """
    live = live or LiveTransactionRelations()
    snapshot: Optional[OrderSnapshot] = None
    try:
        snapshot = parse_order_snapshot(transaction)
    except SnapshotError as e:
        if live.order is None:
            raise
        logger.warning(f"{e.message}; using live order {live.order.id}")

    fallbacks: List[str] = []
    order = live.order
    household = live.household
    inhabitant = live.inhabitant
    event = live.dinner_event

    household_id = _pick("household", household.id if household else None,
                         snapshot.household_id if snapshot else None, fallbacks)
    pbs_id = household.pbs_id if household else (snapshot.household_pbs_id if snapshot else None)
    address = household.address if household else (snapshot.household_address if snapshot else None)

    ticket_type = _pick("ticketType", live.ticket_price.ticket_type if live.ticket_price else None,
                        snapshot.ticket_type if snapshot else None, fallbacks)
    is_guest = _pick("isGuestTicket", order.is_guest_ticket if order else None,
                     snapshot.is_guest_ticket if snapshot else None, fallbacks)
    provenance = _pick("provenance", order.provenance.value if order else None,
                       snapshot.provenance if snapshot else None, fallbacks)

    event_id = _pick("dinnerEvent", event.id if event else None,
                     snapshot.dinner_event_id if snapshot else None, fallbacks)
    event_date = event.date if event else (snapshot.dinner_event_date if snapshot else None)
    menu_title = event.menu_title if event else (snapshot.menu_title if snapshot else "")

    inhabitant_id = _pick("inhabitant", inhabitant.id if inhabitant else None,
                          snapshot.inhabitant_id if snapshot else None, fallbacks)
    inhabitant_name = inhabitant.full_name if inhabitant else (snapshot.inhabitant_name if snapshot else "")

    return DisplayTransaction(
        transaction_id=transaction.id,
        order_id=transaction.order_id,
        amount=transaction.amount,
        dinner_event_id=event_id,
        dinner_event_date=event_date,
        menu_title=menu_title or "",
        inhabitant_id=inhabitant_id,
        inhabitant_name=inhabitant_name or "",
        household_id=household_id,
        pbs_id=pbs_id,
        address=address,
        ticket_type=ticket_type,
        is_guest_ticket=bool(is_guest),
        provenance=provenance,
        created_at=transaction.created_at,
        fields_from_snapshot=fallbacks,
    )

