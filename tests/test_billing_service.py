"""
Unit tests for the Billing Service.

close -> transactions -> invoices, then the read side (stats, views, export).
"""

import json
from datetime import date, datetime

import pytest

from core.exceptions import NotFoundError
from models.billing import BillingPeriodSummary, Invoice, Transaction
from models.dinner import DateRange, Season, TicketPrice
from models.enums import OrderAuditAction, OrderState, TicketType
from models.order import Order
from services.billing_service import BillingService
from services.memory_repository import InMemoryRepository

from conftest import ADULT_PRICE, CHILD_PRICE, make_season


PAST_EVENT = 1    # 2025-10-28, period 18/10/2025-17/11/2025
CLOSED_EVENT = 2  # 2025-11-06, same period

PERIOD = "18/10/2025-17/11/2025"
AFTER_CUTOFF = datetime(2025, 11, 20, 3, 0)


def add_order(repository, inhabitant_id, event_id, price, price_id, **kwargs):
    return repository.create_order(Order(
        id=None, dinner_event_id=event_id, inhabitant_id=inhabitant_id,
        price_at_booking=price, ticket_price_id=price_id, **kwargs,
    ))


@pytest.fixture
def consumed_dinner(repository):
    """Three tickets for the dinner that already happened; Carl's was released."""
    return [
        add_order(repository, 11, PAST_EVENT, ADULT_PRICE, 3),
        add_order(repository, 12, PAST_EVENT, CHILD_PRICE, 2),
        add_order(repository, 21, PAST_EVENT, ADULT_PRICE, 3, state=OrderState.RELEASED),
    ]


@pytest.fixture
def billed(billing_service, consumed_dinner, clock):
    """Closed, transacted and invoiced after the November cutoff."""
    billing_service.close_orders()
    billing_service.create_transactions()
    clock.now = AFTER_CUTOFF
    billing_service.generate_billing()
    return billing_service.repository.find_billing_summary(PERIOD)


class TestCloseOrders:
    """Tests for close_orders."""

    def test_closes_booked_and_released_of_started_dinners(self, billing_service, repository, consumed_dinner):
        future = add_order(repository, 11, CLOSED_EVENT, ADULT_PRICE, 3)

        assert billing_service.close_orders() == 3

        states = {o.id: o.state for o in repository.find_orders()}
        assert all(states[o.id] == OrderState.CLOSED for o in consumed_dinner)
        assert states[future.id] == OrderState.BOOKED
        closed_history = [e for e in repository.find_history() if e.action == OrderAuditAction.SYSTEM_CLOSED]
        assert len(closed_history) == 3

    def test_second_run_closes_nothing(self, billing_service, consumed_dinner):
        billing_service.close_orders()
        assert billing_service.close_orders() == 0


class TestCreateTransactions:
    """Tests for create_transactions."""

    def test_one_transaction_per_closed_order(self, billing_service, repository, consumed_dinner):
        billing_service.close_orders()

        assert billing_service.create_transactions() == 3
        assert billing_service.create_transactions() == 0

        transactions = repository.find_transactions()
        assert sorted(t.amount for t in transactions) == [CHILD_PRICE, ADULT_PRICE, ADULT_PRICE]
        anna = next(t for t in transactions if t.order_id == consumed_dinner[0].id)
        assert anna.user_email_handle == "anna@example.dk"
        snapshot = json.loads(anna.order_snapshot)
        assert snapshot["ticketType"] == "ADULT"
        assert snapshot["inhabitant"]["household"]["pbsId"] == 1001

    def test_open_orders_not_billed(self, billing_service, consumed_dinner):
        assert billing_service.create_transactions() == 0


class TestGenerateBilling:
    """Tests for generate_billing."""

    def test_open_period_is_not_invoiced(self, billing_service, consumed_dinner):
        billing_service.close_orders()
        billing_service.create_transactions()

        result = billing_service.generate_billing()

        assert result.billing_periods == []
        assert result.invoices_created == 0

    def test_invoices_per_household(self, billed, repository):
        assert billed.total_amount == 2 * ADULT_PRICE + CHILD_PRICE
        assert billed.household_count == 2
        assert billed.ticket_count == 3
        assert billed.share_token

        invoices = repository.find_invoices(billed.id)
        assert [(i.pbs_id, i.amount, len(i.transactions)) for i in invoices] == [
            (1001, ADULT_PRICE + CHILD_PRICE, 2),
            (1002, ADULT_PRICE, 1),
        ]

    def test_rerun_is_idempotent(self, billed, billing_service):
        result = billing_service.generate_billing()
        assert result.invoices_created == 0
        assert result.transactions_linked == 0

    def test_late_transaction_added_to_existing_invoice(self, billed, billing_service, repository):
        add_order(repository, 11, CLOSED_EVENT, ADULT_PRICE, 3)
        billing_service.close_orders()
        billing_service.create_transactions()

        result = billing_service.generate_billing()

        assert result.invoices_created == 0
        assert result.transactions_linked == 1
        summary = repository.get_billing_summary(billed.id)
        assert summary.total_amount == 3 * ADULT_PRICE + CHILD_PRICE

    def test_deleted_household_billed_from_snapshot(self, billing_service, repository, consumed_dinner, clock):
        billing_service.close_orders()
        billing_service.create_transactions()
        repository.delete_household(2)
        clock.now = AFTER_CUTOFF

        billing_service.generate_billing()

        summary = repository.find_billing_summary(PERIOD)
        moved_out = next(i for i in repository.find_invoices(summary.id) if i.pbs_id == 1002)
        assert moved_out.household_id is None
        assert moved_out.address == "Skråningen 33"
        assert moved_out.amount == ADULT_PRICE


class TestBillingViews:
    """Read side of a billed period."""

    def test_period_stats(self, billed, billing_service):
        summary, stats = billing_service.period_stats(billed.id)

        assert summary.billing_period == PERIOD
        assert stats.dinner_count == 1
        assert stats.ticket_count == 3
        assert stats.transaction_sum == summary.total_amount
        assert stats.is_balanced

    def test_untyped_snapshot_uses_prices_of_its_season(self, clock, settings):
        repository = InMemoryRepository(clock=clock)
        repository.add_season(make_season(1, is_active=False))
        repository.add_season(Season(
            id=2,
            short_name="Forår 2026",
            season_dates=DateRange(date(2026, 8, 1), date(2027, 6, 30)),
            ticket_prices=[
                TicketPrice(id=21, season_id=2, ticket_type=TicketType.CHILD, price=2000, maximum_age_limit=12),
                TicketPrice(id=22, season_id=2, ticket_type=TicketType.ADULT, price=4500),
            ],
            is_active=True,
        ))
        summary = repository.save_billing_summary(BillingPeriodSummary(
            id=None, billing_period=PERIOD, cutoff_date=date(2025, 11, 17),
            payment_date=date(2025, 12, 1), total_amount=CHILD_PRICE,
        ))
        invoice = repository.save_invoice(Invoice(
            id=None, billing_period_summary_id=summary.id, household_id=1, pbs_id=1001,
            address="Skråningen 31", amount=CHILD_PRICE, cutoff_date=date(2025, 11, 17),
            payment_date=date(2025, 12, 1), billing_period=PERIOD,
        ))
        untyped = repository.create_transaction(Transaction(
            id=None, order_id=None, user_snapshot="{}", amount=CHILD_PRICE,
            order_snapshot=json.dumps({
                "dinnerEvent": {"id": PAST_EVENT, "date": "2025-10-28", "menuTitle": ""},
                "inhabitant": {"id": 12, "name": "Bo Hansen",
                               "household": {"id": 1, "pbsId": 1001, "address": "Skråningen 31"}},
                "ticketType": None,
                "isGuestTicket": False,
                "provenance": "user",
            }),
        ))
        repository.link_transactions(invoice.id, [untyped.id])

        _, stats = BillingService(repository, settings, clock).period_stats(summary.id)

        assert stats.ticket_counts[TicketType.CHILD] == 1
        assert stats.ticket_counts[TicketType.ADULT] == 0

    def test_invoice_transactions(self, billed, billing_service, repository):
        invoice = repository.find_invoices(billed.id)[0]

        found, views = billing_service.invoice_transactions(invoice.id)

        assert found.id == invoice.id
        assert {v.inhabitant_name for v in views} == {"Anna Hansen", "Bo Hansen"}
        assert all(v.fields_from_snapshot == [] for v in views)

    def test_export_csv(self, billed, billing_service):
        filename, content = billing_service.export_csv(billed.id)

        assert filename == "PBS-Opgørelse-Skråningen-18.10.2025-17.11.2025.csv"
        lines = content.split("\n")
        assert len(lines) == 3
        assert lines[1].startswith("1001,Skråningen 31,57,")

    def test_unknown_summary(self, billing_service):
        with pytest.raises(NotFoundError):
            billing_service.period_stats(404)
        with pytest.raises(NotFoundError):
            billing_service.invoice_transactions(404)
