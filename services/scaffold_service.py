"""
Scaffold service - reconciles preferences with orders.

Loads what the planner needs, runs modules.scaffold.OrderScaffolder per
household and applies the plan bucket by bucket, in batches, writing one
history entry per mutation.

Flow (per household):
    1. Load inhabitants, orders and history for the scaffoldable dinners
    2. Plan (pure, nothing written)
    3. Apply buckets: create -> update -> mode update -> claim -> release
       -> delete -> price update
    4. Add the counts to the ScaffoldResult

Triggers:
    - Daily maintenance / admin: whole season
    - Preference or birth date change: the inhabitant's household
    - Ticket price change: whole season

A failure during step 3 raises ReconciliationError with the counts already
applied for that household, plus the merged result and ids of the households
finished earlier in the run. Nothing is rolled back; re-running converges.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config import ServiceSettings
from core.exceptions import (
    ForbiddenError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from models.dinner import Season, TicketPrice
from models.enums import OrderAuditAction, OrderProvenance, OrderState
from models.household import Household, Inhabitant
from models.order import Order, OrderHistoryEntry
from models.scaffold import BUCKET_ORDER, Bucket, PlannedChange, ScaffoldPlan, ScaffoldResult
from modules.batching import chunked
from modules.deadlines import SeasonDeadlines
from modules.preferences import clip_preferences, validate_preferences
from modules.scaffold import OrderScaffolder
from modules.ticket_price import validate_ticket_prices
from services.repository import DinnerRepository
from logging_config import get_logger


logger = get_logger(__name__)


class ScaffoldService:
    """Runs and applies order scaffolding."""

    def __init__(
        self,
        repository: DinnerRepository,
        settings: Optional[ServiceSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.settings = settings or ServiceSettings()
        self._clock = clock

    def deadlines_for(self, season: Season) -> SeasonDeadlines:
        return SeasonDeadlines.for_season(season, self.settings.dinner_start_hour)

    # =========================================================================
    # Season / household runs
    # =========================================================================

    def scaffold_prebookings(
        self,
        season_id: Optional[int] = None,
        household_ids: Optional[Iterable[int]] = None,
    ) -> ScaffoldResult:
        """
        Reconcile orders of a season with preferences.

        Args:
            season_id: Season to scaffold; the active season when None
            household_ids: Limit to these households (all when None)

        Returns:
            ScaffoldResult; ``season_id`` is None when there is no active season

        Raises:
            NotFoundError: If ``season_id`` does not exist
            ValidationError: If the season has no ticket prices
            ReconciliationError: If applying a plan fails; carries the progress
                of households already reconciled in this run
        """
        if season_id is None:
            season = self.repository.get_active_season()
            if season is None:
                logger.info("No active season, nothing to scaffold")
                return ScaffoldResult()
        else:
            season = self.repository.get_season(season_id)
            if season is None:
                raise NotFoundError("Season", season_id)

        now = self._clock()
        deadlines = self.deadlines_for(season)
        events = deadlines.scaffoldable_events(
            season.dinner_events, now, self.settings.prebooking_window_days
        )
        scaffolder = OrderScaffolder(season, deadlines, now, events)

        result = ScaffoldResult(season_id=season.id)
        households_done: List[int] = []
        for household in self.repository.list_households(household_ids):
            try:
                household_result = self._reconcile(scaffolder, household)
            except ReconciliationError as e:
                e.add_season_progress(result.to_dict(), households_done)
                raise
            result.merge(household_result)
            households_done.append(household.id)

        logger.info(
            f"Scaffold season {season.short_name}: {len(events)} dinners, "
            f"{result.households} households, created={result.created} "
            f"reclaimed={result.reclaimed} mode_updated={result.mode_updated} "
            f"claimed={result.claimed} released={result.released} deleted={result.deleted} "
            f"price_updated={result.price_updated} unchanged={result.unchanged}"
        )
        return result

    def reconcile_household(
        self,
        household_id: int,
        acting_household_id: Optional[int] = None,
    ) -> ScaffoldResult:
        """
        Reconcile one household against the active season.

        Args:
            household_id: Household to reconcile
            acting_household_id: Caller's household; None for admin/system

        Raises:
            ForbiddenError: If the caller belongs to another household
            NotFoundError: If the household does not exist
        """
        self._check_household_access(household_id, acting_household_id)
        if self.repository.get_household(household_id) is None:
            raise NotFoundError("Household", household_id)
        return self.scaffold_prebookings(household_ids=[household_id])

    # =========================================================================
    # Triggers
    # =========================================================================

    def update_preferences(
        self,
        inhabitant_id: int,
        raw_preferences: Any,
        acting_household_id: Optional[int] = None,
    ) -> Tuple[Inhabitant, ScaffoldResult]:
        """Validate and store new weekday preferences, then reconcile the household."""
        inhabitant = self._load_inhabitant(inhabitant_id, acting_household_id)
        preferences = validate_preferences(raw_preferences)

        season = self.repository.get_active_season()
        if season is not None:
            preferences = clip_preferences(preferences, season.cooking_days)

        inhabitant.dinner_preferences = preferences
        inhabitant = self.repository.save_inhabitant(inhabitant)
        logger.info(f"Preferences updated for inhabitant {inhabitant_id}")
        return inhabitant, self.scaffold_prebookings(household_ids=[inhabitant.household_id])

    def update_birth_date(
        self,
        inhabitant_id: int,
        birth_date: Optional[date],
        acting_household_id: Optional[int] = None,
    ) -> Tuple[Inhabitant, ScaffoldResult]:
        """Store a birth date and reconcile, so ticket categories heal."""
        inhabitant = self._load_inhabitant(inhabitant_id, acting_household_id)
        if birth_date is not None and birth_date > self._clock().date():
            raise ValidationError(
                "Birth date cannot be in the future",
                field_errors={"birthDate": ["Must not be in the future"]},
            )
        inhabitant.birth_date = birth_date
        inhabitant = self.repository.save_inhabitant(inhabitant)
        return inhabitant, self.scaffold_prebookings(household_ids=[inhabitant.household_id])

    def update_ticket_prices(
        self,
        season_id: int,
        prices: List[TicketPrice],
    ) -> Tuple[List[TicketPrice], ScaffoldResult]:
        """Replace a season's price list and re-price its orders."""
        if self.repository.get_season(season_id) is None:
            raise NotFoundError("Season", season_id)
        validate_ticket_prices(prices)
        if any(price.season_id != season_id for price in prices):
            raise ValidationError(
                f"Ticket prices must belong to season {season_id}",
                details={"season_id": season_id},
            )
        stored = self.repository.replace_ticket_prices(season_id, prices)
        logger.info(f"Season {season_id} now has {len(stored)} ticket prices")
        return stored, self.scaffold_prebookings(season_id=season_id)

    # =========================================================================
    # Plan application
    # =========================================================================

    def _reconcile(self, scaffolder: OrderScaffolder, household: Household) -> ScaffoldResult:
        result = ScaffoldResult(season_id=scaffolder.season.id, households=1)
        inhabitant_ids = [i.id for i in household.inhabitants]
        if not inhabitant_ids or not scaffolder.events:
            return result

        orders = self.repository.find_orders(inhabitant_ids, scaffolder.event_ids)
        history = self.repository.find_history(inhabitant_ids, scaffolder.event_ids)
        plan = scaffolder.plan(household, orders, history)
        result.unchanged = plan.unchanged

        if not plan.is_empty:
            self.apply_plan(plan, result)
            logger.info(f"Household {household.short_name or household.id}: {plan.counts()}")
        return result

    def apply_plan(self, plan: ScaffoldPlan, result: ScaffoldResult) -> None:
        """
        Write a plan bucket by bucket.

        Raises:
            ReconciliationError: On the first failing write, with the counts
                applied so far for this household
        """
        completed: Dict[str, int] = {bucket.value: 0 for bucket in BUCKET_ORDER}
        now = self._clock()

        for bucket in BUCKET_ORDER:
            for batch in chunked(plan.changes[bucket], self.settings.order_batch_size):
                for change in batch:
                    try:
                        self._apply_change(change, now)
                    except ReconciliationError:
                        raise
                    except Exception as e:
                        logger.error(
                            f"Scaffold failed for household {plan.household_id} "
                            f"in {bucket.value}: {e}"
                        )
                        raise ReconciliationError(
                            f"Failed to apply {bucket.value} for household {plan.household_id}: {e}",
                            household_id=plan.household_id,
                            bucket=bucket.value,
                            dinner_event_id=change.dinner_event_id,
                            order_id=change.order_id,
                            completed=completed,
                        ) from e
                    completed[bucket.value] += 1
                    result.record(bucket)

    def _apply_change(self, change: PlannedChange, now: datetime) -> None:
        if change.bucket == Bucket.CREATE:
            price = change.ticket_price
            order = self.repository.create_order(Order(
                id=None,
                dinner_event_id=change.dinner_event_id,
                inhabitant_id=change.inhabitant_id,
                price_at_booking=price.price,
                ticket_price_id=price.id,
                dinner_mode=change.dinner_mode,
                state=OrderState.BOOKED,
                provenance=OrderProvenance.SCAFFOLD,
            ))
            self._audit(order, OrderAuditAction.SYSTEM_SCAFFOLD, change)
            return

        order = self.repository.get_order(change.order_id)
        if order is None:
            raise NotFoundError("Order", change.order_id)

        if change.bucket == Bucket.DELETE:
            self.repository.delete_order(order.id)
            self._audit(order, OrderAuditAction.SYSTEM_DELETED, change)
            return

        audit: Dict[str, Any] = {}
        if change.bucket in (Bucket.UPDATE, Bucket.CLAIM):
            order.state = OrderState.BOOKED
            order.dinner_mode = change.dinner_mode
            order.released_at = None
        if change.bucket == Bucket.CLAIM:
            audit["previousInhabitantId"] = order.inhabitant_id
            order.inhabitant_id = change.inhabitant_id
            order.provenance = OrderProvenance.CLAIM
        elif change.bucket == Bucket.MODE_UPDATE:
            audit["previousDinnerMode"] = order.dinner_mode.value
            order.dinner_mode = change.dinner_mode
        elif change.bucket == Bucket.RELEASE:
            order.state = OrderState.RELEASED
            order.dinner_mode = change.dinner_mode
            order.released_at = now

        if change.ticket_price is not None and change.bucket != Bucket.RELEASE:
            audit["previousPriceAtBooking"] = order.price_at_booking
            order.ticket_price_id = change.ticket_price.id
            order.price_at_booking = change.ticket_price.price

        order = self.repository.update_order(order)
        self._audit(order, OrderAuditAction.SYSTEM_UPDATED, change, **audit)

    def _audit(self, order: Order, action: OrderAuditAction, change: PlannedChange, **audit: Any) -> None:
        self.repository.add_history(
            OrderHistoryEntry.for_order(order, action, bucket=change.bucket.value, **audit)
        )

    # =========================================================================
    # Access
    # =========================================================================

    @staticmethod
    def _check_household_access(household_id: int, acting_household_id: Optional[int]) -> None:
        if acting_household_id is not None and acting_household_id != household_id:
            raise ForbiddenError(
                f"Household {acting_household_id} cannot change household {household_id}",
                household_id=household_id,
            )

    def _load_inhabitant(self, inhabitant_id: int, acting_household_id: Optional[int]) -> Inhabitant:
        inhabitant = self.repository.get_inhabitant(inhabitant_id)
        if inhabitant is None:
            raise NotFoundError("Inhabitant", inhabitant_id)
        self._check_household_access(inhabitant.household_id, acting_household_id)
        return inhabitant
