"""
Billing service.

Turns consumed dinners into money, in three idempotent steps:

    close_orders         BOOKED/RELEASED orders of started dinners -> CLOSED
    create_transactions  one Transaction (frozen snapshot) per CLOSED order
    generate_billing     unbilled transactions of closed billing periods
                         -> Invoice per PBS id -> BillingPeriodSummary

Released tickets are closed and charged like booked ones: releasing after the
deadline does not refund, only a claim moves the charge.

Read side: period statistics (streamed), invoice transaction views with
live-or-snapshot fields, and the PBS CSV export.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from config import ServiceSettings
from core.exceptions import NotFoundError, SnapshotError
from models.billing import (
    BillingPeriod,
    BillingPeriodSummary,
    BillingStats,
    DisplayTransaction,
    Invoice,
    OrderForTransaction,
    Transaction,
)
from models.dinner import Season, TicketPrice
from models.enums import DinnerState, OrderAuditAction, OrderState
from models.job_run import BillingGenerationResult
from models.order import OrderHistoryEntry
from modules.batching import chunked
from modules.billing_csv import billing_csv_filename, generate_billing_csv
from modules.billing_period import billing_period_for_date, closed_billing_period
from modules.billing_stats import compute_stats
from modules.deadlines import SeasonDeadlines
from modules.snapshot import deserialize_transaction, serialize_order_snapshot, serialize_user_snapshot
from modules.ticket_price import ticket_type_for_order
from services.repository import DinnerRepository
from logging_config import get_logger


logger = get_logger(__name__)


class BillingService:
    """Closing, transaction creation, invoicing and billing views."""

    def __init__(
        self,
        repository: DinnerRepository,
        settings: Optional[ServiceSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.settings = settings or ServiceSettings()
        self._clock = clock

    # =========================================================================
    # Close orders
    # =========================================================================

    def close_orders(self) -> int:
        """
        Close every open order of dinners that have started.

        Returns:
            Number of orders closed
        """
        now = self._clock()
        deadlines = SeasonDeadlines(dinner_start_hour=self.settings.dinner_start_hour)
        started = [
            event.id for event in self.repository.find_dinner_events()
            if event.state != DinnerState.CANCELLED and deadlines.is_dinner_past(event.date, now)
        ]
        if not started:
            return 0

        orders = self.repository.find_orders(
            dinner_event_ids=started, states=[OrderState.BOOKED, OrderState.RELEASED]
        )
        closed = 0
        for batch in chunked(orders, self.settings.order_batch_size):
            for order in batch:
                order.state = OrderState.CLOSED
                order.closed_at = now
                order = self.repository.update_order(order)
                self.repository.add_history(
                    OrderHistoryEntry.for_order(order, OrderAuditAction.SYSTEM_CLOSED)
                )
                closed += 1

        logger.info(f"Closed {closed} orders on {len(started)} started dinners")
        return closed

    # =========================================================================
    # Transactions
    # =========================================================================

    def create_transactions(self) -> int:
        """
        Create a transaction for every CLOSED order that has none.

        Returns:
            Number of transactions created
        """
        closed = self.repository.find_orders(states=[OrderState.CLOSED])
        if not closed:
            return 0
        billed = {t.order_id for t in self.repository.find_transactions(order_ids=[o.id for o in closed])}
        pending = [order for order in closed if order.id not in billed]

        seasons: Dict[int, Optional[Season]] = {}
        created = 0
        for batch in chunked(pending, self.settings.transaction_batch_size):
            for order in batch:
                source = self._transaction_source(order, seasons)
                if source is None:
                    continue
                user_id = order.booked_by_user_id or source.inhabitant.user_id
                email = (self.repository.get_user_email(user_id) if user_id else None) or ""
                self.repository.create_transaction(Transaction(
                    id=None,
                    order_id=order.id,
                    order_snapshot=serialize_order_snapshot(source),
                    user_snapshot=serialize_user_snapshot(source.inhabitant, email),
                    amount=order.price_at_booking,
                    user_email_handle=email,
                ))
                created += 1

        logger.info(f"Created {created} transactions ({len(closed) - len(pending)} already billed)")
        return created

    def _transaction_source(self, order, seasons: Dict[int, Optional[Season]]) -> Optional[OrderForTransaction]:
        event = self.repository.get_dinner_event(order.dinner_event_id)
        inhabitant = self.repository.get_inhabitant(order.inhabitant_id)
        household = self.repository.get_household(inhabitant.household_id) if inhabitant else None
        if event is None or inhabitant is None or household is None:
            logger.warning(f"Order {order.id} lost its dinner, inhabitant or household; not billed")
            return None

        if event.season_id not in seasons:
            seasons[event.season_id] = self.repository.get_season(event.season_id)
        season = seasons[event.season_id]
        ticket_type = ticket_type_for_order(order, season.ticket_prices) if season else None

        return OrderForTransaction(
            order=order,
            dinner_event=event,
            inhabitant=inhabitant,
            household=household,
            ticket_type=ticket_type,
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    def generate_billing(self) -> BillingGenerationResult:
        """
        Invoice every unbilled transaction of closed billing periods.

        Safe to re-run: transactions already linked are not picked up again,
        existing summaries and invoices are reused.
        """
        cutoff = self.settings.billing_cutoff_day
        last_closed = closed_billing_period(self._clock(), cutoff)
        result = BillingGenerationResult()

        periods: Dict[str, BillingPeriod] = {}
        grouped: Dict[str, Dict[int, List[Tuple[Transaction, DisplayTransaction]]]] = defaultdict(
            lambda: defaultdict(list)
        )
        for transaction in self.repository.find_transactions(uninvoiced=True):
            try:
                view = deserialize_transaction(transaction, self.repository.live_relations(transaction))
            except SnapshotError as e:
                logger.warning(f"Cannot bill transaction {transaction.id}: {e.message}")
                continue
            if view.dinner_event_date is None or view.pbs_id is None:
                logger.warning(f"Transaction {transaction.id} has no dinner date or PBS id; not billed")
                continue
            period = billing_period_for_date(view.dinner_event_date, cutoff)
            if period.end > last_closed.end:
                continue
            periods[period.label] = period
            grouped[period.label][view.pbs_id].append((transaction, view))

        for label in sorted(grouped, key=lambda key: periods[key].start):
            created, linked = self._invoice_period(periods[label], grouped[label])
            result.billing_periods.append(label)
            result.invoices_created += created
            result.transactions_linked += linked

        logger.info(
            f"Billing generated for {len(result.billing_periods)} periods: "
            f"{result.invoices_created} invoices, {result.transactions_linked} transactions"
        )
        return result

    def _invoice_period(
        self,
        period: BillingPeriod,
        by_pbs_id: Dict[int, List[Tuple[Transaction, DisplayTransaction]]],
    ) -> Tuple[int, int]:
        summary = self.repository.find_billing_summary(period.label)
        if summary is None:
            summary = self.repository.save_billing_summary(BillingPeriodSummary(
                id=None,
                billing_period=period.label,
                cutoff_date=period.cutoff_date,
                payment_date=period.payment_date,
                share_token=uuid.uuid4().hex,
            ))

        existing = {invoice.pbs_id: invoice for invoice in self.repository.find_invoices(summary.id)}
        created = linked = 0
        for pbs_id, items in sorted(by_pbs_id.items()):
            invoice = existing.get(pbs_id)
            if invoice is None:
                _, first = items[0]
                household_id = first.household_id
                if household_id is not None and self.repository.get_household(household_id) is None:
                    household_id = None
                invoice = Invoice(
                    id=None,
                    billing_period_summary_id=summary.id,
                    household_id=household_id,
                    pbs_id=pbs_id,
                    address=first.address or "",
                    amount=0,
                    cutoff_date=period.cutoff_date,
                    payment_date=period.payment_date,
                    billing_period=period.label,
                )
                created += 1
            invoice.amount += sum(transaction.amount for transaction, _ in items)
            invoice = self.repository.save_invoice(invoice)
            linked += self.repository.link_transactions(invoice.id, [t.id for t, _ in items])

        invoices = self.repository.find_invoices(summary.id)
        summary.total_amount = sum(invoice.amount for invoice in invoices)
        summary.household_count = len(invoices)
        summary.ticket_count = sum(len(invoice.transactions) for invoice in invoices)
        self.repository.save_billing_summary(summary)
        return created, linked

    # =========================================================================
    # Views
    # =========================================================================

    def get_summary(self, summary_id: int) -> BillingPeriodSummary:
        summary = self.repository.get_billing_summary(summary_id)
        if summary is None:
            raise NotFoundError("BillingPeriodSummary", summary_id)
        return summary

    def iter_invoices(self, summary_id: int) -> Iterator[Invoice]:
        """Invoices of a summary, fetched in batches."""
        offset = 0
        batch_size = self.settings.transaction_batch_size
        while True:
            batch = self.repository.find_invoices(summary_id, offset=offset, limit=batch_size)
            yield from batch
            if len(batch) < batch_size:
                return
            offset += batch_size

    def period_stats(self, summary_id: int) -> Tuple[BillingPeriodSummary, BillingStats]:
        """
        Statistics of a billing period with control sums.

        Snapshots without a ticket category are categorised with the prices
        of the season their dinner belongs to (the active season when the
        dinner or its season is gone).
        """
        summary = self.get_summary(summary_id)
        stats = compute_stats(self.iter_invoices(summary_id), prices_for_event=self._season_prices_lookup())
        if stats.transaction_sum != summary.total_amount:
            logger.warning(
                f"Billing period {summary.billing_period}: stored total {summary.total_amount} "
                f"differs from transactions {stats.transaction_sum}"
            )
        return summary, stats

    def _season_prices_lookup(self) -> Callable[[Optional[int]], List[TicketPrice]]:
        """Dinner event id -> ticket prices of its season, cached per season."""
        by_season: Dict[Optional[int], List[TicketPrice]] = {}

        def prices_for_event(dinner_event_id: Optional[int]) -> List[TicketPrice]:
            event = self.repository.get_dinner_event(dinner_event_id) if dinner_event_id is not None else None
            season_id = event.season_id if event else None
            if season_id not in by_season:
                season = self.repository.get_season(season_id) if season_id is not None else None
                if season is None:
                    season = self.repository.get_active_season()
                by_season[season_id] = season.ticket_prices if season else []
            return by_season[season_id]

        return prices_for_event

    def invoice_transactions(self, invoice_id: int) -> Tuple[Invoice, List[DisplayTransaction]]:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        views = []
        for transaction in invoice.transactions:
            try:
                views.append(deserialize_transaction(transaction, self.repository.live_relations(transaction)))
            except SnapshotError as e:
                logger.warning(f"Invoice {invoice_id}: {e.message}")
        return invoice, views

    def export_csv(self, summary_id: int) -> Tuple[str, str]:
        """
        PBS export of a billing period.

        Returns:
            (filename, csv content)
        """
        summary = self.get_summary(summary_id)
        content = generate_billing_csv(list(self.iter_invoices(summary_id)))
        return billing_csv_filename(summary, self.settings.community_name), content
