"""
In-memory DinnerRepository.

Backs the Flask app when no database-backed repository is injected, and the
test suite. Values are deep-copied in and out so callers never mutate stored
state without going through the repository.

Thread Safety:
    - One re-entrant lock guards every operation
    - Sufficient for request-scoped use; it does not serialize whole
      scaffold runs (callers do that per household)
"""

from __future__ import annotations

import copy
import itertools
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

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
from services.repository import DinnerRepository
from logging_config import get_logger


logger = get_logger(__name__)


def _ids(values: Optional[Iterable[int]]) -> Optional[set]:
    return None if values is None else set(values)


class InMemoryRepository(DinnerRepository):
    """Dict-backed repository with the same referential rules as a database."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: Dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))

        self._seasons: Dict[int, Season] = {}
        self._prices: Dict[int, TicketPrice] = {}
        self._events: Dict[int, DinnerEvent] = {}
        self._households: Dict[int, Household] = {}
        self._inhabitants: Dict[int, Inhabitant] = {}
        self._users: Dict[int, str] = {}
        self._orders: Dict[int, Order] = {}
        self._history: List[OrderHistoryEntry] = []
        self._transactions: Dict[int, Transaction] = {}
        self._summaries: Dict[int, BillingPeriodSummary] = {}
        self._invoices: Dict[int, Invoice] = {}
        self._job_runs: Dict[int, JobRun] = {}

    def _next_id(self, kind: str) -> int:
        return next(self._counters[kind])

    # =========================================================================
    # Seeding (what the household/season sync does in production)
    # =========================================================================

    def add_season(self, season: Season) -> Season:
        with self._lock:
            stored = copy.deepcopy(season)
            for price in stored.ticket_prices:
                self._prices[price.id] = price
            for event in stored.dinner_events:
                self._events[event.id] = event
            stored.ticket_prices = []
            stored.dinner_events = []
            self._seasons[stored.id] = stored
            return self.get_season(season.id)

    def add_dinner_event(self, event: DinnerEvent) -> DinnerEvent:
        with self._lock:
            self._events[event.id] = copy.deepcopy(event)
            return copy.deepcopy(event)

    def add_household(self, household: Household) -> Household:
        with self._lock:
            stored = copy.deepcopy(household)
            for inhabitant in stored.inhabitants:
                inhabitant.household_id = stored.id
                self._inhabitants[inhabitant.id] = inhabitant
            stored.inhabitants = []
            self._households[stored.id] = stored
            return self.get_household(household.id)

    def add_user(self, user_id: int, email: str) -> None:
        with self._lock:
            self._users[user_id] = email

    def delete_household(self, household_id: int) -> None:
        """Household, its inhabitants and their orders go; billing records stay."""
        with self._lock:
            self._households.pop(household_id, None)
            gone = [i.id for i in self._inhabitants.values() if i.household_id == household_id]
            for inhabitant_id in gone:
                del self._inhabitants[inhabitant_id]
            for order in list(self._orders.values()):
                if order.inhabitant_id in gone:
                    self._delete_order(order.id)
            logger.info(f"Deleted household {household_id} with {len(gone)} inhabitants")

    def delete_ticket_price(self, price_id: int) -> None:
        with self._lock:
            self._delete_price(price_id)

    def _delete_price(self, price_id: int) -> None:
        self._prices.pop(price_id, None)
        for order in self._orders.values():
            if order.ticket_price_id == price_id:
                order.ticket_price_id = None

    # =========================================================================
    # Seasons and dinner events
    # =========================================================================

    def get_season(self, season_id: int) -> Optional[Season]:
        with self._lock:
            season = self._seasons.get(season_id)
            if season is None:
                return None
            result = copy.deepcopy(season)
            result.ticket_prices = [
                copy.deepcopy(p) for p in sorted(self._prices.values(), key=lambda p: p.id)
                if p.season_id == season_id
            ]
            result.dinner_events = self.find_dinner_events(season_id)
            return result

    def get_active_season(self) -> Optional[Season]:
        with self._lock:
            for season in sorted(self._seasons.values(), key=lambda s: s.id):
                if season.is_active:
                    return self.get_season(season.id)
            return None

    def get_dinner_event(self, dinner_event_id: int) -> Optional[DinnerEvent]:
        with self._lock:
            return copy.deepcopy(self._events.get(dinner_event_id))

    def find_dinner_events(self, season_id: Optional[int] = None) -> List[DinnerEvent]:
        with self._lock:
            events = [
                e for e in self._events.values()
                if season_id is None or e.season_id == season_id
            ]
            return copy.deepcopy(sorted(events, key=lambda e: (e.date, e.id)))

    def replace_ticket_prices(self, season_id: int, prices: List[TicketPrice]) -> List[TicketPrice]:
        with self._lock:
            kept_ids = set()
            for price in prices:
                existing = self._prices.get(price.id)
                if existing is not None and existing.season_id == season_id:
                    stored = copy.deepcopy(price)
                else:
                    stored = TicketPrice(
                        id=self._fresh_price_id(),
                        season_id=season_id,
                        ticket_type=price.ticket_type,
                        price=price.price,
                        maximum_age_limit=price.maximum_age_limit,
                        description=price.description,
                    )
                self._prices[stored.id] = stored
                kept_ids.add(stored.id)

            for price_id in [p.id for p in self._prices.values() if p.season_id == season_id]:
                if price_id not in kept_ids:
                    self._delete_price(price_id)

            return [copy.deepcopy(self._prices[i]) for i in sorted(kept_ids)]

    def _fresh_price_id(self) -> int:
        price_id = self._next_id("price")
        while price_id in self._prices:
            price_id = self._next_id("price")
        return price_id

    # =========================================================================
    # Households
    # =========================================================================

    def get_household(self, household_id: int) -> Optional[Household]:
        with self._lock:
            household = self._households.get(household_id)
            if household is None:
                return None
            result = copy.deepcopy(household)
            result.inhabitants = copy.deepcopy(sorted(
                (i for i in self._inhabitants.values() if i.household_id == household_id),
                key=lambda i: i.id,
            ))
            return result

    def list_households(self, household_ids: Optional[Iterable[int]] = None) -> List[Household]:
        with self._lock:
            wanted = _ids(household_ids)
            return [
                self.get_household(household_id) for household_id in sorted(self._households)
                if wanted is None or household_id in wanted
            ]

    def get_inhabitant(self, inhabitant_id: int) -> Optional[Inhabitant]:
        with self._lock:
            return copy.deepcopy(self._inhabitants.get(inhabitant_id))

    def save_inhabitant(self, inhabitant: Inhabitant) -> Inhabitant:
        with self._lock:
            self._inhabitants[inhabitant.id] = copy.deepcopy(inhabitant)
            return copy.deepcopy(inhabitant)

    def get_user_email(self, user_id: int) -> Optional[str]:
        with self._lock:
            return self._users.get(user_id)

    # =========================================================================
    # Orders and history
    # =========================================================================

    def get_order(self, order_id: int) -> Optional[Order]:
        with self._lock:
            return copy.deepcopy(self._orders.get(order_id))

    def find_orders(
        self,
        inhabitant_ids: Optional[Iterable[int]] = None,
        dinner_event_ids: Optional[Iterable[int]] = None,
        states: Optional[Iterable[OrderState]] = None,
    ) -> List[Order]:
        inhabitants, events = _ids(inhabitant_ids), _ids(dinner_event_ids)
        wanted_states = None if states is None else set(states)
        with self._lock:
            return [
                copy.deepcopy(order) for order_id, order in sorted(self._orders.items())
                if (inhabitants is None or order.inhabitant_id in inhabitants)
                and (events is None or order.dinner_event_id in events)
                and (wanted_states is None or order.state in wanted_states)
            ]

    def create_order(self, order: Order) -> Order:
        with self._lock:
            stored = copy.deepcopy(order)
            stored.id = self._next_id("order")
            stored.created_at = stored.created_at or self._clock()
            self._orders[stored.id] = stored
            return copy.deepcopy(stored)

    def update_order(self, order: Order) -> Order:
        with self._lock:
            if order.id not in self._orders:
                raise KeyError(f"Order {order.id} does not exist")
            self._orders[order.id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def delete_order(self, order_id: int) -> Optional[Order]:
        with self._lock:
            return self._delete_order(order_id)

    def _delete_order(self, order_id: int) -> Optional[Order]:
        order = self._orders.pop(order_id, None)
        if order is not None:
            for transaction in self._transactions.values():
                if transaction.order_id == order_id:
                    transaction.order_id = None
        return order

    def add_history(self, entry: OrderHistoryEntry) -> OrderHistoryEntry:
        with self._lock:
            stored = copy.deepcopy(entry)
            stored.id = self._next_id("history")
            stored.timestamp = stored.timestamp or self._clock()
            self._history.append(stored)
            return copy.deepcopy(stored)

    def find_history(
        self,
        inhabitant_ids: Optional[Iterable[int]] = None,
        dinner_event_ids: Optional[Iterable[int]] = None,
    ) -> List[OrderHistoryEntry]:
        inhabitants, events = _ids(inhabitant_ids), _ids(dinner_event_ids)
        with self._lock:
            return [
                copy.deepcopy(entry) for entry in self._history
                if (inhabitants is None or entry.inhabitant_id in inhabitants)
                and (events is None or entry.dinner_event_id in events)
            ]

    # =========================================================================
    # Transactions and invoices
    # =========================================================================

    def create_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            stored = copy.deepcopy(transaction)
            stored.id = self._next_id("transaction")
            stored.created_at = stored.created_at or self._clock()
            self._transactions[stored.id] = stored
            return copy.deepcopy(stored)

    def find_transactions(
        self,
        order_ids: Optional[Iterable[int]] = None,
        invoice_id: Optional[int] = None,
        uninvoiced: bool = False,
    ) -> List[Transaction]:
        orders = _ids(order_ids)
        with self._lock:
            return [
                copy.deepcopy(t) for _, t in sorted(self._transactions.items())
                if (orders is None or t.order_id in orders)
                and (invoice_id is None or t.invoice_id == invoice_id)
                and (not uninvoiced or t.invoice_id is None)
            ]

    def live_relations(self, transaction: Transaction) -> LiveTransactionRelations:
        with self._lock:
            order = self._orders.get(transaction.order_id) if transaction.order_id else None
            if order is None:
                return LiveTransactionRelations()
            inhabitant = self._inhabitants.get(order.inhabitant_id)
            household = self.get_household(inhabitant.household_id) if inhabitant else None
            return LiveTransactionRelations(
                order=copy.deepcopy(order),
                dinner_event=copy.deepcopy(self._events.get(order.dinner_event_id)),
                inhabitant=copy.deepcopy(inhabitant),
                household=household,
                ticket_price=copy.deepcopy(self._prices.get(order.ticket_price_id))
                if order.ticket_price_id is not None else None,
            )

    def link_transactions(self, invoice_id: int, transaction_ids: Iterable[int]) -> int:
        with self._lock:
            linked = 0
            for transaction_id in transaction_ids:
                transaction = self._transactions.get(transaction_id)
                if transaction is not None:
                    transaction.invoice_id = invoice_id
                    linked += 1
            return linked

    def find_billing_summary(self, billing_period: str) -> Optional[BillingPeriodSummary]:
        with self._lock:
            for summary in self._summaries.values():
                if summary.billing_period == billing_period:
                    return copy.deepcopy(summary)
            return None

    def get_billing_summary(self, summary_id: int) -> Optional[BillingPeriodSummary]:
        with self._lock:
            return copy.deepcopy(self._summaries.get(summary_id))

    def save_billing_summary(self, summary: BillingPeriodSummary) -> BillingPeriodSummary:
        with self._lock:
            stored = copy.deepcopy(summary)
            stored.invoices = []
            if stored.id is None:
                stored.id = self._next_id("summary")
                stored.created_at = stored.created_at or self._clock()
            self._summaries[stored.id] = stored
            return copy.deepcopy(stored)

    def find_invoices(
        self,
        summary_id: int,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Invoice]:
        with self._lock:
            invoices = sorted(
                (i for i in self._invoices.values() if i.billing_period_summary_id == summary_id),
                key=lambda i: (i.pbs_id, i.id),
            )
            end = None if limit is None else offset + limit
            return [self.get_invoice(invoice.id) for invoice in invoices[offset:end]]

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            if invoice is None:
                return None
            result = copy.deepcopy(invoice)
            result.transactions = self.find_transactions(invoice_id=invoice_id)
            return result

    def save_invoice(self, invoice: Invoice) -> Invoice:
        with self._lock:
            stored = copy.deepcopy(invoice)
            stored.transactions = []
            if stored.id is None:
                stored.id = self._next_id("invoice")
                stored.created_at = stored.created_at or self._clock()
            self._invoices[stored.id] = stored
            return copy.deepcopy(stored)

    # =========================================================================
    # Job runs
    # =========================================================================

    def save_job_run(self, run: JobRun) -> JobRun:
        with self._lock:
            stored = copy.deepcopy(run)
            if stored.id is None:
                stored.id = self._next_id("job_run")
            self._job_runs[stored.id] = stored
            return copy.deepcopy(stored)

    def find_job_runs(self, job_type: Optional[JobType] = None, limit: int = 20) -> List[JobRun]:
        with self._lock:
            runs = [r for r in self._job_runs.values() if job_type is None or r.job_type == job_type]
            runs.sort(key=lambda r: (r.started_at, r.id), reverse=True)
            return copy.deepcopy(runs[:limit])
