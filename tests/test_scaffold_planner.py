"""
Unit tests for the pure scaffold planner.

No repository involved: the planner gets a season, orders and history and
returns a plan.
"""

from datetime import date, datetime

import pytest

from core.exceptions import ValidationError
from models.enums import DinnerMode, OrderAuditAction, OrderProvenance, OrderState
from models.household import Household, Inhabitant
from models.order import Order, OrderHistoryEntry
from models.scaffold import Bucket
from modules.deadlines import SeasonDeadlines
from modules.preferences import default_preferences
from modules.scaffold import OrderScaffolder, index_orders, latest_user_intents

from conftest import ADULT_PRICE, CHILD_PRICE, NOW, make_season


OPEN_EVENT = 3    # 15 days ahead, before the 10-day deadline
CLOSED_EVENT = 2  # 3 days ahead, after the deadline


@pytest.fixture
def season():
    return make_season()


@pytest.fixture
def scaffolder(season):
    deadlines = SeasonDeadlines.for_season(season)
    events = deadlines.scaffoldable_events(season.dinner_events, NOW, 60)
    return OrderScaffolder(season, deadlines, NOW, events)


@pytest.fixture
def household():
    return Household(
        id=1,
        pbs_id=1001,
        address="Skråningen 31",
        inhabitants=[
            Inhabitant(id=11, household_id=1, name="Anna", birth_date=date(1980, 5, 1)),
            Inhabitant(id=12, household_id=1, name="Bo", birth_date=date(2015, 6, 1)),
        ],
    )


def booked(order_id, inhabitant_id, event_id, price=ADULT_PRICE, price_id=3, **kwargs):
    return Order(
        id=order_id,
        dinner_event_id=event_id,
        inhabitant_id=inhabitant_id,
        price_at_booking=price,
        ticket_price_id=price_id,
        **kwargs,
    )


def history(entry_id, inhabitant_id, event_id, action, minute=0):
    return OrderHistoryEntry(
        id=entry_id,
        order_id=None,
        inhabitant_id=inhabitant_id,
        dinner_event_id=event_id,
        action=action,
        timestamp=datetime(2025, 11, 1, 10, minute),
    )


class TestHelpers:
    """Tests for intent and order indexing."""

    def test_latest_user_intent_ignores_system_actions(self):
        entries = [
            history(1, 11, 3, OrderAuditAction.USER_CANCELLED, minute=1),
            history(2, 11, 3, OrderAuditAction.SYSTEM_SCAFFOLD, minute=2),
            history(3, 12, 3, OrderAuditAction.USER_CANCELLED, minute=1),
            history(4, 12, 3, OrderAuditAction.USER_BOOKED, minute=5),
        ]
        intents = latest_user_intents(entries)
        assert intents[(11, 3)] == OrderAuditAction.USER_CANCELLED
        assert intents[(12, 3)] == OrderAuditAction.USER_BOOKED

    def test_index_orders_prefers_booked_duplicate(self):
        released = booked(1, 11, 3, state=OrderState.RELEASED)
        active = booked(2, 11, 3)
        guest = booked(3, 11, 3, is_guest_ticket=True)
        foreign = booked(4, 99, 3)
        managed, untouched = index_orders([released, active, guest, foreign], [11, 12], [3])
        assert managed[(11, 3)].id == 2
        assert sorted(o.id for o in untouched) == [1, 3]


class TestPlan:
    """Decision table of the planner."""

    def test_requires_ticket_prices(self, season):
        season.ticket_prices = []
        with pytest.raises(ValidationError):
            OrderScaffolder(season, SeasonDeadlines(), NOW, season.dinner_events)

    def test_scope_is_window_and_not_started(self, scaffolder):
        assert scaffolder.event_ids == [2, 3]

    def test_creates_before_deadline_with_age_price(self, scaffolder, household):
        plan = scaffolder.plan(household, [], [])

        creates = plan.changes[Bucket.CREATE]
        assert [(c.inhabitant_id, c.dinner_event_id) for c in creates] == [(11, OPEN_EVENT), (12, OPEN_EVENT)]
        assert creates[0].ticket_price.price == ADULT_PRICE
        assert creates[1].ticket_price.price == CHILD_PRICE
        assert all(c.dinner_mode == DinnerMode.DINEIN for c in creates)
        # Nothing to claim after the deadline
        assert plan.changes[Bucket.CLAIM] == []

    def test_delete_before_deadline_release_after(self, scaffolder, household):
        household.inhabitants[0].dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [booked(1, 11, OPEN_EVENT), booked(2, 11, CLOSED_EVENT)]

        plan = scaffolder.plan(household, orders, [])

        assert [c.order_id for c in plan.changes[Bucket.DELETE]] == [1]
        assert [c.order_id for c in plan.changes[Bucket.RELEASE]] == [2]

    def test_released_order_restored_when_wanted(self, scaffolder, household):
        orders = [booked(1, 11, CLOSED_EVENT, state=OrderState.RELEASED, dinner_mode=DinnerMode.NONE)]
        plan = scaffolder.plan(household, orders, [])
        updates = plan.changes[Bucket.UPDATE]
        assert [c.order_id for c in updates] == [1]
        assert updates[0].dinner_mode == DinnerMode.DINEIN

    def test_released_order_stays_released_after_deadline(self, scaffolder, household):
        household.inhabitants[0].dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [booked(1, 11, CLOSED_EVENT, state=OrderState.RELEASED, dinner_mode=DinnerMode.NONE)]
        plan = scaffolder.plan(household, orders, [])
        assert plan.counts()["delete"] == 0
        assert plan.counts()["release"] == 0

    def test_mode_update_and_price_heal(self, scaffolder, household):
        household.inhabitants[1].dinner_preferences = default_preferences(DinnerMode.TAKEAWAY)
        # Bo is a child but was booked as adult
        orders = [booked(1, 12, OPEN_EVENT), booked(2, 11, OPEN_EVENT)]

        plan = scaffolder.plan(household, orders, [])

        assert [c.order_id for c in plan.changes[Bucket.MODE_UPDATE]] == [1]
        heals = plan.changes[Bucket.PRICE_UPDATE]
        assert [c.order_id for c in heals] == [1]
        assert heals[0].ticket_price.price == CHILD_PRICE

    def test_user_cancellation_is_sticky(self, scaffolder, household):
        entries = [history(1, 11, OPEN_EVENT, OrderAuditAction.USER_CANCELLED)]
        plan = scaffolder.plan(household, [], entries)
        assert [c.inhabitant_id for c in plan.changes[Bucket.CREATE]] == [12]

    def test_user_booking_keeps_mode(self, scaffolder, household):
        household.inhabitants[0].dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [booked(1, 11, OPEN_EVENT, dinner_mode=DinnerMode.TAKEAWAY)]
        entries = [history(1, 11, OPEN_EVENT, OrderAuditAction.USER_BOOKED)]
        plan = scaffolder.plan(household, orders, entries)
        assert plan.counts()["delete"] == 0
        assert plan.counts()["mode_update"] == 0

    def test_claims_released_housemate_ticket_after_deadline(self, scaffolder, household):
        household.inhabitants[0].dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [booked(1, 11, CLOSED_EVENT, state=OrderState.RELEASED, dinner_mode=DinnerMode.NONE)]

        plan = scaffolder.plan(household, orders, [])

        claims = plan.changes[Bucket.CLAIM]
        assert len(claims) == 1
        assert claims[0].order_id == 1
        assert claims[0].inhabitant_id == 12
        assert claims[0].ticket_price.price == CHILD_PRICE
        assert plan.unchanged == 0

    def test_unclaimed_released_ticket_counts_as_unchanged(self, scaffolder, household):
        for inhabitant in household.inhabitants:
            inhabitant.dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [booked(1, 11, CLOSED_EVENT, state=OrderState.RELEASED, dinner_mode=DinnerMode.NONE)]

        plan = scaffolder.plan(household, orders, [])

        assert plan.is_empty
        assert plan.unchanged == 1

    def test_guest_and_imported_tickets_untouched(self, scaffolder, household):
        household.inhabitants[0].dinner_preferences = default_preferences(DinnerMode.NONE)
        orders = [
            booked(1, 11, OPEN_EVENT, is_guest_ticket=True),
            booked(2, 12, OPEN_EVENT, provenance=OrderProvenance.CSV_BILLING),
        ]
        plan = scaffolder.plan(household, orders, [])
        assert plan.is_empty
        assert plan.unchanged == 2

    def test_plan_is_empty_for_reconciled_household(self, scaffolder, household):
        orders = [booked(1, 11, OPEN_EVENT), booked(2, 12, OPEN_EVENT, price=CHILD_PRICE, price_id=2)]
        plan = scaffolder.plan(household, orders, [])
        assert plan.is_empty
        assert plan.unchanged == 2
