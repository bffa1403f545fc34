"""
Shared fixtures.

The clock is fixed at Monday 2025-11-03 12:00. The active season has a
10-day booking deadline, so of the seeded dinners:

    2025-10-28  started        -> closable / billable
    2025-11-06  3 days ahead   -> past the booking deadline
    2025-11-18  15 days ahead  -> still open for booking
    2026-03-03  outside the 60-day prebooking window
"""

from datetime import date, datetime, timedelta

import pytest

from config import ServiceSettings
from models.dinner import DateRange, DinnerEvent, Season, TicketPrice
from models.enums import TicketType
from models.household import Household, Inhabitant
from services.billing_service import BillingService
from services.booking_service import BookingService
from services.import_service import BillingImportService
from services.job_ledger import JobRunLedger
from services.maintenance_service import MaintenanceService
from services.memory_repository import InMemoryRepository
from services.scaffold_service import ScaffoldService


NOW = datetime(2025, 11, 3, 12, 0)

PAST_DINNER = date(2025, 10, 28)
CLOSE_DINNER = date(2025, 11, 6)
OPEN_DINNER = date(2025, 11, 18)
FAR_DINNER = date(2026, 3, 3)

ADULT_PRICE = 4000
CHILD_PRICE = 1700


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_prices(season_id: int = 1):
    return [
        TicketPrice(id=1, season_id=season_id, ticket_type=TicketType.BABY, price=0, maximum_age_limit=2),
        TicketPrice(id=2, season_id=season_id, ticket_type=TicketType.CHILD, price=CHILD_PRICE, maximum_age_limit=12),
        TicketPrice(id=3, season_id=season_id, ticket_type=TicketType.ADULT, price=ADULT_PRICE),
    ]


def make_season(season_id: int = 1, is_active: bool = True) -> Season:
    dates = [PAST_DINNER, CLOSE_DINNER, OPEN_DINNER, FAR_DINNER]
    return Season(
        id=season_id,
        short_name="Efterår 2025",
        season_dates=DateRange(date(2025, 8, 1), date(2026, 6, 30)),
        ticket_prices=make_prices(season_id),
        dinner_events=[
            DinnerEvent(id=index, season_id=season_id, date=day, menu_title=f"Menu {index}")
            for index, day in enumerate(dates, start=1)
        ],
        ticket_is_cancellable_days_before=10,
        dining_mode_is_editable_minutes_before=90,
        is_active=is_active,
    )


def make_households():
    return [
        Household(
            id=1,
            pbs_id=1001,
            address="Skråningen 31",
            name="Hansen",
            inhabitants=[
                Inhabitant(id=11, household_id=1, name="Anna", last_name="Hansen",
                           birth_date=date(1980, 5, 1), user_id=100),
                Inhabitant(id=12, household_id=1, name="Bo", last_name="Hansen",
                           birth_date=date(2015, 6, 1)),
            ],
        ),
        Household(
            id=2,
            pbs_id=1002,
            address="Skråningen 33",
            name="Jensen",
            inhabitants=[
                Inhabitant(id=21, household_id=2, name="Carl", last_name="Jensen",
                           birth_date=date(1975, 2, 14), user_id=200),
            ],
        ),
    ]


# Fixtures

@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def settings():
    return ServiceSettings()


@pytest.fixture
def season():
    return make_season()


@pytest.fixture
def repository(clock, season):
    """In-memory repository seeded with the season and two households."""
    repo = InMemoryRepository(clock=clock)
    repo.add_season(season)
    for household in make_households():
        repo.add_household(household)
    repo.add_user(100, "anna@example.dk")
    repo.add_user(200, "carl@example.dk")
    return repo


@pytest.fixture
def scaffold_service(repository, settings, clock):
    return ScaffoldService(repository, settings, clock)


@pytest.fixture
def booking_service(repository, settings, clock):
    return BookingService(repository, settings, clock)


@pytest.fixture
def billing_service(repository, settings, clock):
    return BillingService(repository, settings, clock)


@pytest.fixture
def import_service(repository, settings, clock):
    return BillingImportService(repository, settings, clock)


@pytest.fixture
def ledger(repository, clock):
    return JobRunLedger(repository, clock)


@pytest.fixture
def maintenance_service(ledger, scaffold_service, billing_service, import_service):
    return MaintenanceService(ledger, scaffold_service, billing_service, import_service)
