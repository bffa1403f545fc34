"""
Repository interface (repository pattern).

Services talk to persistence only through DinnerRepository. Implementations
must be swappable and return model dataclasses, never storage rows.

Referential rules every implementation honours:
    - deleting a household deletes its inhabitants and their orders
    - deleting an order keeps its transactions (order_id becomes None)
      and its history entries
    - deleting a ticket price keeps orders booked at it (ticket_price_id
      becomes None)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from models.billing import (
    BillingPeriodSummary,
    Invoice,
    LiveTransactionRelations,
    Transaction,
)
from models.dinner import DinnerEvent, Season, TicketPrice
from models.enums import JobType, OrderState
from models.household import Household, Inhabitant
from models.job_run import JobRun
from models.order import Order, OrderHistoryEntry


class DinnerRepository(ABC):
    """Persistence operations used by the services."""

    # =========================================================================
    # Seasons and dinner events
    # =========================================================================

    @abstractmethod
    def get_season(self, season_id: int) -> Optional[Season]:
        """Season with its ticket prices and dinner events, or None."""
        ...

    @abstractmethod
    def get_active_season(self) -> Optional[Season]:
        ...

    @abstractmethod
    def get_dinner_event(self, dinner_event_id: int) -> Optional[DinnerEvent]:
        ...

    @abstractmethod
    def find_dinner_events(self, season_id: Optional[int] = None) -> List[DinnerEvent]:
        """Dinner events ordered by date, optionally of one season."""
        ...

    @abstractmethod
    def replace_ticket_prices(self, season_id: int, prices: List[TicketPrice]) -> List[TicketPrice]:
        """
        Store a season's new price list.

        Rows whose id matches an existing row are updated; existing rows
        missing from ``prices`` are deleted (orders keep their booked price).
        """
        ...

    # =========================================================================
    # Households
    # =========================================================================

    @abstractmethod
    def get_household(self, household_id: int) -> Optional[Household]:
        """Household with its inhabitants, or None."""
        ...

    @abstractmethod
    def list_households(self, household_ids: Optional[Iterable[int]] = None) -> List[Household]:
        """Households (with inhabitants) ordered by id, optionally filtered."""
        ...

    @abstractmethod
    def get_inhabitant(self, inhabitant_id: int) -> Optional[Inhabitant]:
        ...

    @abstractmethod
    def save_inhabitant(self, inhabitant: Inhabitant) -> Inhabitant:
        ...

    @abstractmethod
    def get_user_email(self, user_id: int) -> Optional[str]:
        ...

    # =========================================================================
    # Orders and history
    # =========================================================================

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Order]:
        ...

    @abstractmethod
    def find_orders(
        self,
        inhabitant_ids: Optional[Iterable[int]] = None,
        dinner_event_ids: Optional[Iterable[int]] = None,
        states: Optional[Iterable[OrderState]] = None,
    ) -> List[Order]:
        """Orders ordered by id; every given filter must match."""
        ...

    @abstractmethod
    def create_order(self, order: Order) -> Order:
        """Persist a new order; returns it with id and created_at set."""
        ...

    @abstractmethod
    def update_order(self, order: Order) -> Order:
        ...

    @abstractmethod
    def delete_order(self, order_id: int) -> Optional[Order]:
        """Delete an order; returns the deleted order, or None if missing."""
        ...

    @abstractmethod
    def add_history(self, entry: OrderHistoryEntry) -> OrderHistoryEntry:
        """Append a history entry; returns it with id and timestamp set."""
        ...

    @abstractmethod
    def find_history(
        self,
        inhabitant_ids: Optional[Iterable[int]] = None,
        dinner_event_ids: Optional[Iterable[int]] = None,
    ) -> List[OrderHistoryEntry]:
        """History entries in append order."""
        ...

    # =========================================================================
    # Transactions and invoices
    # =========================================================================

    @abstractmethod
    def create_transaction(self, transaction: Transaction) -> Transaction:
        ...

    @abstractmethod
    def find_transactions(
        self,
        order_ids: Optional[Iterable[int]] = None,
        invoice_id: Optional[int] = None,
        uninvoiced: bool = False,
    ) -> List[Transaction]:
        ...

    @abstractmethod
    def live_relations(self, transaction: Transaction) -> LiveTransactionRelations:
        """Rows still reachable from a transaction through its order."""
        ...

    @abstractmethod
    def link_transactions(self, invoice_id: int, transaction_ids: Iterable[int]) -> int:
        """Attach transactions to an invoice; returns how many were linked."""
        ...

    @abstractmethod
    def find_billing_summary(self, billing_period: str) -> Optional[BillingPeriodSummary]:
        ...

    @abstractmethod
    def get_billing_summary(self, summary_id: int) -> Optional[BillingPeriodSummary]:
        ...

    @abstractmethod
    def save_billing_summary(self, summary: BillingPeriodSummary) -> BillingPeriodSummary:
        """Create (id None) or update a summary."""
        ...

    @abstractmethod
    def find_invoices(
        self,
        summary_id: int,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Invoice]:
        """Invoices of a summary ordered by pbs_id, transactions loaded."""
        ...

    @abstractmethod
    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        ...

    @abstractmethod
    def save_invoice(self, invoice: Invoice) -> Invoice:
        """Create (id None) or update an invoice."""
        ...

    # =========================================================================
    # Job runs
    # =========================================================================

    @abstractmethod
    def save_job_run(self, run: JobRun) -> JobRun:
        """Create (id None) or update a job run."""
        ...

    @abstractmethod
    def find_job_runs(self, job_type: Optional[JobType] = None, limit: int = 20) -> List[JobRun]:
        """Most recent first."""
        ...
