"""
Unit tests for the Scaffold Service.

Runs planner and applier against the seeded in-memory repository.
"""

from datetime import date
from unittest.mock import patch

import pytest

from core.exceptions import ForbiddenError, NotFoundError, ReconciliationError, ValidationError
from models.dinner import TicketPrice
from models.enums import (
    DinnerMode,
    OrderAuditAction,
    OrderProvenance,
    OrderState,
    TicketType,
    WEEKDAYS,
)
from models.order import Order
from services.memory_repository import InMemoryRepository
from services.scaffold_service import ScaffoldService

from conftest import ADULT_PRICE, CHILD_PRICE


OPEN_EVENT = 3
CLOSED_EVENT = 2

NO_DINNERS = {day: "NONE" for day in WEEKDAYS}


def orders_of(repository, inhabitant_id):
    return repository.find_orders([inhabitant_id])


class TestScaffoldPrebookings:
    """Season-wide runs."""

    def test_first_run_creates_open_dinners(self, scaffold_service, repository):
        result = scaffold_service.scaffold_prebookings()

        assert result.season_id == 1
        assert result.households == 2
        assert result.created == 3
        orders = repository.find_orders()
        assert {(o.inhabitant_id, o.dinner_event_id) for o in orders} == {
            (11, OPEN_EVENT), (12, OPEN_EVENT), (21, OPEN_EVENT)
        }
        assert all(o.provenance == OrderProvenance.SCAFFOLD for o in orders)
        child = next(o for o in orders if o.inhabitant_id == 12)
        assert child.price_at_booking == CHILD_PRICE

        actions = [entry.action for entry in repository.find_history()]
        assert actions == [OrderAuditAction.SYSTEM_SCAFFOLD] * 3

    def test_second_run_changes_nothing(self, scaffold_service, repository):
        scaffold_service.scaffold_prebookings()
        before = repository.find_orders()

        result = scaffold_service.scaffold_prebookings()

        assert result.total_changes == 0
        assert result.unchanged == 3
        assert repository.find_orders() == before

    def test_no_active_season(self, clock):
        service = ScaffoldService(InMemoryRepository(clock=clock), clock=clock)
        result = service.scaffold_prebookings()
        assert result.season_id is None
        assert result.total_changes == 0

    def test_unknown_season(self, scaffold_service):
        with pytest.raises(NotFoundError):
            scaffold_service.scaffold_prebookings(season_id=99)

    def test_cancelled_by_user_is_not_recreated(self, scaffold_service, booking_service, repository):
        scaffold_service.scaffold_prebookings()
        anna_order = orders_of(repository, 11)[0]

        assert booking_service.cancel_order(anna_order.id, user_id=100, acting_household_id=1) is None

        result = scaffold_service.scaffold_prebookings()
        assert result.created == 0
        assert orders_of(repository, 11) == []

    def test_failure_reports_partial_counts_and_rerun_converges(self, scaffold_service, repository):
        original_create = repository.create_order
        calls = []

        def flaky_create(order):
            if calls:
                raise RuntimeError("connection lost")
            calls.append(order)
            return original_create(order)

        with patch.object(repository, "create_order", side_effect=flaky_create):
            with pytest.raises(ReconciliationError) as exc_info:
                scaffold_service.scaffold_prebookings()

        error = exc_info.value
        assert error.household_id == 1
        assert error.bucket == "create"
        assert error.completed["create"] == 1
        assert len(repository.find_orders()) == 1

        result = scaffold_service.scaffold_prebookings()
        assert result.created == 2
        assert len(repository.find_orders()) == 3


    def test_failure_in_later_household_reports_earlier_ones(self, scaffold_service, repository):
        original_create = repository.create_order

        def create_except_carl(order):
            if order.inhabitant_id == 21:
                raise RuntimeError("connection lost")
            return original_create(order)

        with patch.object(repository, "create_order", side_effect=create_except_carl):
            with pytest.raises(ReconciliationError) as exc_info:
                scaffold_service.scaffold_prebookings()

        error = exc_info.value
        assert error.household_id == 2
        assert error.completed["create"] == 0
        assert error.households_done == [1]
        assert error.season_result["created"] == 2
        assert error.details["season_result"]["households"] == 1
        assert len(repository.find_orders()) == 2


class TestHouseholdTriggers:
    """Preference, birth date and household-scoped runs."""

    def test_preferences_delete_before_deadline_release_after(self, scaffold_service, repository):
        scaffold_service.scaffold_prebookings()
        late = repository.create_order(Order(
            id=None, dinner_event_id=CLOSED_EVENT, inhabitant_id=11,
            price_at_booking=ADULT_PRICE, ticket_price_id=3,
        ))

        inhabitant, result = scaffold_service.update_preferences(11, NO_DINNERS, acting_household_id=1)

        assert inhabitant.dinner_preferences["mandag"] == DinnerMode.NONE
        assert result.households == 1
        assert result.deleted == 1
        assert result.released == 1
        remaining = orders_of(repository, 11)
        assert [o.id for o in remaining] == [late.id]
        assert remaining[0].state == OrderState.RELEASED
        assert remaining[0].released_at is not None

    def test_released_ticket_claimed_by_housemate(self, scaffold_service, repository):
        repository.create_order(Order(
            id=None, dinner_event_id=CLOSED_EVENT, inhabitant_id=11,
            price_at_booking=ADULT_PRICE, ticket_price_id=3,
            state=OrderState.RELEASED, dinner_mode=DinnerMode.NONE,
        ))
        scaffold_service.update_preferences(11, NO_DINNERS)

        claimed = [o for o in orders_of(repository, 12) if o.dinner_event_id == CLOSED_EVENT]
        assert len(claimed) == 1
        assert claimed[0].state == OrderState.BOOKED
        assert claimed[0].provenance == OrderProvenance.CLAIM
        assert claimed[0].price_at_booking == CHILD_PRICE

    def test_invalid_preferences(self, scaffold_service):
        with pytest.raises(ValidationError):
            scaffold_service.update_preferences(11, {"mandag": "DINEIN"})

    def test_other_household_is_forbidden(self, scaffold_service, repository):
        with pytest.raises(ForbiddenError):
            scaffold_service.update_preferences(21, NO_DINNERS, acting_household_id=1)
        with pytest.raises(ForbiddenError):
            scaffold_service.reconcile_household(2, acting_household_id=1)
        assert repository.find_orders() == []

    def test_reconcile_household_only_touches_that_household(self, scaffold_service, repository):
        result = scaffold_service.reconcile_household(1, acting_household_id=1)

        assert result.created == 2
        assert orders_of(repository, 21) == []

    def test_unknown_household(self, scaffold_service):
        with pytest.raises(NotFoundError):
            scaffold_service.reconcile_household(404)

    def test_birth_date_heals_ticket_category(self, scaffold_service, repository):
        scaffold_service.scaffold_prebookings()

        inhabitant, result = scaffold_service.update_birth_date(12, date(2000, 1, 1), acting_household_id=1)

        assert inhabitant.birth_date == date(2000, 1, 1)
        assert result.price_updated == 1
        order = orders_of(repository, 12)[0]
        assert order.price_at_booking == ADULT_PRICE
        assert order.ticket_price_id == 3

    def test_future_birth_date_rejected(self, scaffold_service):
        with pytest.raises(ValidationError):
            scaffold_service.update_birth_date(12, date(2030, 1, 1))


class TestTicketPriceUpdate:
    """Replacing a season's price list."""

    def test_removed_category_is_repriced(self, scaffold_service, repository, season):
        scaffold_service.scaffold_prebookings()
        without_child = [p for p in season.ticket_prices if p.ticket_type != TicketType.CHILD]

        stored, result = scaffold_service.update_ticket_prices(1, without_child)

        assert [p.id for p in stored] == [1, 3]
        assert result.price_updated == 1
        assert orders_of(repository, 12)[0].price_at_booking == ADULT_PRICE

    def test_same_category_keeps_booked_price(self, scaffold_service, repository, season):
        scaffold_service.scaffold_prebookings()
        raised = [
            TicketPrice(id=p.id, season_id=1, ticket_type=p.ticket_type,
                        price=p.price + 500, maximum_age_limit=p.maximum_age_limit)
            for p in season.ticket_prices
        ]

        _, result = scaffold_service.update_ticket_prices(1, raised)

        assert result.price_updated == 0
        assert orders_of(repository, 11)[0].price_at_booking == ADULT_PRICE

    def test_rejects_prices_of_other_season(self, scaffold_service):
        foreign = [TicketPrice(id=None, season_id=2, ticket_type=TicketType.ADULT, price=4000)]
        with pytest.raises(ValidationError):
            scaffold_service.update_ticket_prices(1, foreign)

    def test_unknown_season(self, scaffold_service, season):
        with pytest.raises(NotFoundError):
            scaffold_service.update_ticket_prices(99, season.ticket_prices)
