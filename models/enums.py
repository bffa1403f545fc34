"""
Shared enumerations.

This is the only place ticket categories, dining modes, order states and
audit actions are spelled out. Everything else imports them from here.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple


class TicketType(Enum):
    """Ticket category. Several price rows (tiers) may share one category."""

    ADULT = "ADULT"
    CHILD = "CHILD"
    BABY = "BABY"


class DinnerMode(Enum):
    """How an inhabitant attends a dinner. NONE means not attending."""

    DINEIN = "DINEIN"
    DINEINLATE = "DINEINLATE"
    TAKEAWAY = "TAKEAWAY"
    NONE = "NONE"


class OrderState(Enum):
    """
    State of an order.

    Lifecycle:
        BOOKED -> RELEASED -> (claimed) BOOKED
        BOOKED | RELEASED -> CLOSED (dinner consumed)

    Cancellation before the booking deadline deletes the row instead.
    """

    BOOKED = "BOOKED"
    """Active ticket, will be charged."""

    RELEASED = "RELEASED"
    """Given up after the deadline; still charged unless someone claims it."""

    CLOSED = "CLOSED"
    """Dinner has happened; ready for a transaction."""


class DinnerState(Enum):
    """State of a dinner event."""

    SCHEDULED = "SCHEDULED"
    ANNOUNCED = "ANNOUNCED"
    CONSUMED = "CONSUMED"
    CANCELLED = "CANCELLED"


class OrderAuditAction(Enum):
    """Action recorded in the append-only order history."""

    USER_BOOKED = "USER_BOOKED"
    USER_CANCELLED = "USER_CANCELLED"
    USER_CLAIMED = "USER_CLAIMED"
    SYSTEM_SCAFFOLD = "SYSTEM_SCAFFOLD"
    SYSTEM_CREATED = "SYSTEM_CREATED"
    SYSTEM_UPDATED = "SYSTEM_UPDATED"
    SYSTEM_DELETED = "SYSTEM_DELETED"
    SYSTEM_CLOSED = "SYSTEM_CLOSED"


# Actions that express what the user wants for an (inhabitant, dinner) pair.
# The most recent of these decides whether the scaffold may touch the pair.
USER_INTENT_ACTIONS = (
    OrderAuditAction.USER_BOOKED,
    OrderAuditAction.USER_CANCELLED,
    OrderAuditAction.USER_CLAIMED,
)


class JobType(Enum):
    """Kind of tracked background job."""

    SCAFFOLD_PREBOOKINGS = "SCAFFOLD_PREBOOKINGS"
    DAILY_MAINTENANCE = "DAILY_MAINTENANCE"
    MONTHLY_BILLING = "MONTHLY_BILLING"
    BILLING_IMPORT = "BILLING_IMPORT"


class JobStatus(Enum):
    """
    Status of a tracked job run.

    Lifecycle:
        RUNNING -> (COMPLETED | FAILED)
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OrderProvenance(Enum):
    """Where an order came from. Frozen into billing snapshots."""

    SCAFFOLD = "scaffold"
    USER = "user"
    CLAIM = "claim"
    CSV_BILLING = "csv_billing"


# Weekday keys, index aligned with date.weekday() (Monday == 0)
WEEKDAYS: Tuple[str, ...] = (
    "mandag",
    "tirsdag",
    "onsdag",
    "torsdag",
    "fredag",
    "lørdag",
    "søndag",
)
