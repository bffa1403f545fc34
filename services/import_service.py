"""
Billing import service.

Books the tickets recorded in the legacy pivot sheet (see
modules/billing_csv.py) as orders, so they flow through closing,
transactions and invoicing like any other order.

Mapping:
    address     -> household (by short name, "Skråningen 31" == "S_31")
    date        -> dinner event of the season on that date
    counts      -> ADULT / CHILD orders on the household's first inhabitant

Re-importing the same sheet creates nothing new: per household, dinner and
category only the shortfall against earlier imports is booked.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Optional

from config import ServiceSettings
from core.exceptions import NotFoundError, ValidationError
from models.dinner import Season
from models.enums import DinnerMode, OrderAuditAction, OrderProvenance, OrderState, TicketType
from models.household import Household, household_short_name
from models.job_run import ImportResult
from models.order import Order, OrderHistoryEntry
from modules.billing_csv import parse_billing_import
from modules.ticket_price import cheapest_price, ticket_type_for_order
from services.repository import DinnerRepository
from logging_config import get_logger


logger = get_logger(__name__)


class BillingImportService:
    """Imports pivot-sheet billing data as orders."""

    def __init__(
        self,
        repository: DinnerRepository,
        settings: Optional[ServiceSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.settings = settings or ServiceSettings()
        self._clock = clock

    def import_csv(self, content: str, season_id: Optional[int] = None) -> ImportResult:
        """
        Import a pivot sheet.

        Args:
            content: CSV text
            season_id: Season the dinners belong to; active season when None

        Returns:
            ImportResult with created and already-imported ticket counts

        Raises:
            ValidationError: Unparseable sheet, unknown addresses, unknown
                dinner dates, households without inhabitants, or a season
                without ADULT/CHILD prices
            NotFoundError: If the season does not exist
        """
        rows = parse_billing_import(content)
        season = self._load_season(season_id)

        adult_price = cheapest_price(season.ticket_prices, TicketType.ADULT)
        child_price = cheapest_price(season.ticket_prices, TicketType.CHILD)
        if adult_price is None or child_price is None:
            raise ValidationError(
                f"Season {season.short_name} needs ADULT and CHILD ticket prices to import billing",
                details={"season_id": season.id},
            )

        households = {h.short_name: h for h in self.repository.list_households()}
        unknown = sorted({
            row.address for row in rows if household_short_name(row.address) not in households
        })
        if unknown:
            raise ValidationError(
                f"Unknown addresses in CSV: {', '.join(unknown)}",
                field_errors={address: ["No household with this address"] for address in unknown},
            )

        events = {event.date: event for event in season.dinner_events}
        missing_dates = sorted({row.dinner_date for row in rows if row.dinner_date not in events})
        if missing_dates:
            raise ValidationError(
                "No dinner events on: " + ", ".join(d.isoformat() for d in missing_dates),
                details={"season_id": season.id},
            )

        result = ImportResult(
            households=len({row.address for row in rows}),
            dinner_dates=len({row.dinner_date for row in rows}),
        )
        for row in rows:
            household = households[household_short_name(row.address)]
            inhabitant_id = self._first_inhabitant_id(household)
            event = events[row.dinner_date]
            already = self._imported_counts(inhabitant_id, event.id, season)

            for ticket_type, price, wanted in (
                (TicketType.ADULT, adult_price, row.adult_count),
                (TicketType.CHILD, child_price, row.child_count),
            ):
                existing = already[ticket_type]
                result.already_imported += min(existing, wanted)
                for _ in range(max(wanted - existing, 0)):
                    order = self.repository.create_order(Order(
                        id=None,
                        dinner_event_id=event.id,
                        inhabitant_id=inhabitant_id,
                        price_at_booking=price.price,
                        ticket_price_id=price.id,
                        dinner_mode=DinnerMode.DINEIN,
                        state=OrderState.BOOKED,
                        provenance=OrderProvenance.CSV_BILLING,
                    ))
                    self.repository.add_history(OrderHistoryEntry.for_order(
                        order, OrderAuditAction.SYSTEM_CREATED, source="csv_billing"
                    ))
                    result.created += 1

        logger.info(
            f"Billing import into season {season.short_name}: created {result.created} orders, "
            f"{result.already_imported} already imported"
        )
        return result

    def _load_season(self, season_id: Optional[int]) -> Season:
        if season_id is None:
            season = self.repository.get_active_season()
            if season is None:
                raise ValidationError("No active season to import billing into")
            return season
        season = self.repository.get_season(season_id)
        if season is None:
            raise NotFoundError("Season", season_id)
        return season

    @staticmethod
    def _first_inhabitant_id(household: Household) -> int:
        if not household.inhabitants:
            raise ValidationError(
                f"Household {household.address} has no inhabitants to book on",
                details={"household_id": household.id},
            )
        return household.inhabitants[0].id

    def _imported_counts(self, inhabitant_id: int, dinner_event_id: int, season: Season) -> Dict[TicketType, int]:
        counts: Dict[TicketType, int] = Counter()
        for order in self.repository.find_orders([inhabitant_id], [dinner_event_id]):
            if order.provenance == OrderProvenance.CSV_BILLING:
                counts[ticket_type_for_order(order, season.ticket_prices) or TicketType.ADULT] += 1
        return counts
