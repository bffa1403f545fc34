"""
Billing period aggregator.

Folds invoices and their transactions into BillingStats by replaying the
frozen snapshots. Counts never depend on rows that may have been deleted
since billing: dinners and ticket categories come from the snapshots, sums
from the transaction amounts.

Invoices are consumed as an iterable, so a caller can stream them in
batches instead of loading a whole period.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence, Set

from core.exceptions import SnapshotError
from models.billing import BillingStats, Invoice, OrderSnapshot, Transaction
from models.dinner import TicketPrice
from models.enums import TicketType
from modules.snapshot import parse_order_snapshot
from modules.ticket_price import resolve_ticket_price
from logging_config import get_logger


logger = get_logger(__name__)


def snapshot_ticket_type(
    snapshot: OrderSnapshot,
    transaction: Transaction,
    prices: Sequence[TicketPrice],
) -> TicketType:
    """
    Ticket category of a billed ticket.

    Snapshots written before the category was frozen (or of orders whose
    price row was already gone) carry None; the amount then decides, and
    ADULT when no price row has that amount.
    """
    if snapshot.ticket_type is not None:
        return snapshot.ticket_type
    if prices:
        resolved = resolve_ticket_price(None, transaction.amount, prices)
        if resolved is not None and resolved.price == transaction.amount:
            return resolved.ticket_type
    return TicketType.ADULT


def compute_stats(
    invoices: Iterable[Invoice],
    prices: Optional[Sequence[TicketPrice]] = None,
    prices_for_event: Optional[Callable[[Optional[int]], Sequence[TicketPrice]]] = None,
) -> BillingStats:
    """
    Aggregate a billing period.

    Args:
        invoices: Invoices with their transactions loaded
        prices: The season's ticket prices, used only for snapshots without
            a ticket category
        prices_for_event: Ticket prices of the season a dinner event belongs
            to; takes precedence over ``prices`` when given

    Returns:
        BillingStats with control sums; unreadable snapshots are skipped
        (counted in ``skipped_snapshots``) but their amounts still summed
    """
    prices = list(prices or [])
    stats = BillingStats()
    dinner_ids: Set[int] = set()

    for invoice in invoices:
        stats.invoice_count += 1
        stats.stored_total += invoice.amount
        invoice_sum = 0

        for transaction in invoice.transactions:
            stats.transaction_count += 1
            invoice_sum += transaction.amount

            try:
                snapshot = parse_order_snapshot(transaction)
            except SnapshotError as e:
                stats.skipped_snapshots += 1
                logger.warning(f"Skipping transaction in invoice {invoice.id}: {e.message}")
                continue

            dinner_ids.add(snapshot.dinner_event_id)
            event_prices = prices_for_event(snapshot.dinner_event_id) if prices_for_event else prices
            stats.ticket_counts[snapshot_ticket_type(snapshot, transaction, event_prices)] += 1

        stats.transaction_sum += invoice_sum
        if invoice.id is not None:
            stats.invoice_sums[invoice.id] = invoice_sum
            if invoice_sum != invoice.amount:
                stats.mismatched_invoice_ids.append(invoice.id)
                logger.warning(
                    f"Invoice {invoice.id} stored amount {invoice.amount} "
                    f"differs from transaction sum {invoice_sum}"
                )

    stats.dinner_count = len(dinner_ids)
    return stats
