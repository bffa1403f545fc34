"""
Billing data models.

Flow:
    closed Order -> Transaction (frozen snapshot) -> Invoice (per household)
    -> BillingPeriodSummary (per billing period)

A transaction's snapshot is written once and never rewritten. Everything a
billing view needs must be recoverable from it after the order, the
inhabitant or the whole household is gone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Any, List, Optional

from .dinner import DinnerEvent, TicketPrice
from .enums import TicketType
from .household import Household, Inhabitant
from .order import Order


DATE_FORMAT = "%d/%m/%Y"


@dataclass(frozen=True)
class BillingPeriod:
    """A billing period: (cutoff + 1) of one month to cutoff of the next."""

    start: date
    end: date
    payment_date: date

    @property
    def label(self) -> str:
        """e.g. '18/10/2025-17/11/2025'"""
        return f"{self.start.strftime(DATE_FORMAT)}-{self.end.strftime(DATE_FORMAT)}"

    @property
    def cutoff_date(self) -> date:
        return self.end

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass
class Transaction:
    """A charge for one closed order."""

    id: Optional[int]
    order_id: Optional[int]
    """Weak link; None once the order is deleted."""

    order_snapshot: str
    """JSON written at creation, never rewritten."""

    user_snapshot: str
    amount: int
    """Øre. Equals the order's price_at_booking when created."""

    user_email_handle: str = ""
    created_at: Optional[datetime] = None
    invoice_id: Optional[int] = None


@dataclass
class OrderForTransaction:
    """Everything the snapshot serializer freezes, gathered by the billing service."""

    order: Order
    dinner_event: DinnerEvent
    inhabitant: Inhabitant
    household: Household
    ticket_type: Optional[TicketType]
    """Category of the booked price row; None when the row is gone."""


@dataclass
class LiveTransactionRelations:
    """
    Live rows reachable from a transaction right now.

    Any of them may be None: orders get deleted, price rows get deleted,
    households move out.
    """

    order: Optional[Order] = None
    dinner_event: Optional[DinnerEvent] = None
    inhabitant: Optional[Inhabitant] = None
    household: Optional[Household] = None
    ticket_price: Optional[TicketPrice] = None


@dataclass
class OrderSnapshot:
    """Parsed form of Transaction.order_snapshot."""

    dinner_event_id: int
    dinner_event_date: date
    inhabitant_id: int
    menu_title: str = ""
    inhabitant_name: str = ""
    household_id: Optional[int] = None
    household_pbs_id: Optional[int] = None
    household_address: Optional[str] = None
    ticket_type: Optional[TicketType] = None
    is_guest_ticket: Optional[bool] = None
    provenance: Optional[str] = None
    dinner_mode: Optional[str] = None
    price_at_booking: Optional[int] = None


@dataclass
class DisplayTransaction:
    """A transaction as billing views show it, with live-or-snapshot fields."""

    transaction_id: Optional[int]
    order_id: Optional[int]
    amount: int
    dinner_event_id: Optional[int]
    dinner_event_date: Optional[date]
    menu_title: str
    inhabitant_id: Optional[int]
    inhabitant_name: str
    household_id: Optional[int]
    pbs_id: Optional[int]
    address: Optional[str]
    ticket_type: Optional[TicketType]
    is_guest_ticket: bool
    provenance: Optional[str]
    created_at: Optional[datetime] = None
    fields_from_snapshot: List[str] = field(default_factory=list)
    """Names of the fields that fell back to the snapshot."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.transaction_id,
            "orderId": self.order_id,
            "amount": self.amount,
            "dinnerEvent": {
                "id": self.dinner_event_id,
                "date": self.dinner_event_date.isoformat() if self.dinner_event_date else None,
                "menuTitle": self.menu_title,
            },
            "inhabitant": {
                "id": self.inhabitant_id,
                "name": self.inhabitant_name,
            },
            "household": {
                "id": self.household_id,
                "pbsId": self.pbs_id,
                "address": self.address,
            },
            "ticketType": self.ticket_type.value if self.ticket_type else None,
            "isGuestTicket": self.is_guest_ticket,
            "provenance": self.provenance,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "fieldsFromSnapshot": list(self.fields_from_snapshot),
        }


@dataclass
class Invoice:
    """One household's bill for one billing period."""

    id: Optional[int]
    billing_period_summary_id: Optional[int]
    household_id: Optional[int]
    """None once the household is deleted; pbs_id and address stay."""

    pbs_id: int
    address: str
    amount: int
    cutoff_date: date
    payment_date: date
    billing_period: str
    created_at: Optional[datetime] = None
    transactions: List[Transaction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "billingPeriodSummaryId": self.billing_period_summary_id,
            "householdId": self.household_id,
            "pbsId": self.pbs_id,
            "address": self.address,
            "amount": self.amount,
            "cutoffDate": self.cutoff_date.isoformat(),
            "paymentDate": self.payment_date.isoformat(),
            "billingPeriod": self.billing_period,
            "transactionCount": len(self.transactions),
        }


@dataclass
class BillingPeriodSummary:
    """Totals of one billing period, plus its invoices."""

    id: Optional[int]
    billing_period: str
    cutoff_date: date
    payment_date: date
    total_amount: int = 0
    household_count: int = 0
    ticket_count: int = 0
    share_token: str = ""
    created_at: Optional[datetime] = None
    invoices: List[Invoice] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "billingPeriod": self.billing_period,
            "cutoffDate": self.cutoff_date.isoformat(),
            "paymentDate": self.payment_date.isoformat(),
            "totalAmount": self.total_amount,
            "householdCount": self.household_count,
            "ticketCount": self.ticket_count,
            "shareToken": self.share_token,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class BillingStats:
    """
    Aggregated statistics of a set of invoices.

    ``transaction_sum`` is recomputed from transaction amounts and is the
    control sum for ``stored_total`` (the invoices' own amounts).
    """

    dinner_count: int = 0
    ticket_counts: Dict[TicketType, int] = field(
        default_factory=lambda: {ticket_type: 0 for ticket_type in TicketType}
    )
    transaction_count: int = 0
    invoice_count: int = 0
    transaction_sum: int = 0
    stored_total: int = 0
    invoice_sums: Dict[int, int] = field(default_factory=dict)
    """Invoice id -> sum of its transaction amounts."""

    mismatched_invoice_ids: List[int] = field(default_factory=list)
    skipped_snapshots: int = 0

    @property
    def ticket_count(self) -> int:
        return sum(self.ticket_counts.values())

    @property
    def is_balanced(self) -> bool:
        return self.transaction_sum == self.stored_total and not self.mismatched_invoice_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dinnerCount": self.dinner_count,
            "ticketCounts": {t.value: n for t, n in self.ticket_counts.items()},
            "ticketCount": self.ticket_count,
            "transactionCount": self.transaction_count,
            "invoiceCount": self.invoice_count,
            "transactionSum": self.transaction_sum,
            "storedTotal": self.stored_total,
            "invoiceSums": {str(k): v for k, v in self.invoice_sums.items()},
            "mismatchedInvoiceIds": list(self.mismatched_invoice_ids),
            "skippedSnapshots": self.skipped_snapshots,
            "isBalanced": self.is_balanced,
        }
