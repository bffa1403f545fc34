"""
Order scaffold planner.

Turns weekday preferences into a plan of order writes for one household.
Pure and synchronous: it reads the season, the household's current orders
and their history, and returns a ScaffoldPlan. Nothing is written here; see
services/scaffold_service.py for the applier.

Decision per (inhabitant, dinner event) pair:

    guest ticket                          -> untouched
    latest user intent USER_CANCELLED     -> untouched, never recreated
    latest user intent USER_BOOKED/CLAIMED-> only ticket category healed
    no order,  wants dinner, before dl    -> CREATE
    no order,  wants dinner, after dl     -> CLAIM a released housemate ticket, if any
    RELEASED,  wants dinner               -> UPDATE (same order back to BOOKED)
    RELEASED,  no dinner,    before dl    -> DELETE
    BOOKED,    no dinner,    before dl    -> DELETE
    BOOKED,    no dinner,    after dl     -> RELEASE
    BOOKED,    other mode,   mode editable-> MODE_UPDATE
    BOOKED,    wrong ticket category      -> PRICE_UPDATE

("dl" is the booking deadline of the dinner.)

Running the planner again after its plan was applied yields an empty plan.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.exceptions import ValidationError
from models.dinner import DinnerEvent, Season, TicketPrice
from models.enums import DinnerMode, OrderAuditAction, OrderProvenance, OrderState, USER_INTENT_ACTIONS
from models.household import Household, Inhabitant
from models.order import Order, OrderHistoryEntry
from models.scaffold import Bucket, PlannedChange, ScaffoldPlan
from modules.deadlines import SeasonDeadlines
from modules.preferences import desired_dinner_mode
from modules.ticket_price import resolve_ticket_price, ticket_type_for_order, validate_ticket_prices
from logging_config import get_logger


logger = get_logger(__name__)

Key = Tuple[int, int]

_CONFIRMING_ACTIONS = (OrderAuditAction.USER_BOOKED, OrderAuditAction.USER_CLAIMED)


def latest_user_intents(history: Iterable[OrderHistoryEntry]) -> Dict[Key, OrderAuditAction]:
    """
    Most recent user action per (inhabitant, dinner event) pair.

    System actions are ignored: they never override what a user asked for.
    """
    ordered = sorted(
        (entry for entry in history if entry.action in USER_INTENT_ACTIONS),
        key=lambda entry: (entry.timestamp or datetime.min, entry.id or 0),
    )
    intents: Dict[Key, OrderAuditAction] = {}
    for entry in ordered:
        intents[entry.key] = entry.action
    return intents


def index_orders(
    orders: Iterable[Order],
    inhabitant_ids: Iterable[int],
    event_ids: Iterable[int],
) -> Tuple[Dict[Key, Order], List[Order]]:
    """
    Split orders into the one the scaffold manages per pair and the rest.

    Guest tickets, closed orders, imported billing orders and duplicates are
    returned as untouched. Orders outside the household or the event window
    are dropped.
    """
    members = set(inhabitant_ids)
    events = set(event_ids)
    managed: Dict[Key, Order] = {}
    untouched: List[Order] = []

    for order in sorted(orders, key=lambda o: o.id or 0):
        if order.inhabitant_id not in members or order.dinner_event_id not in events:
            continue
        if (
            order.is_guest_ticket
            or order.state == OrderState.CLOSED
            or order.provenance == OrderProvenance.CSV_BILLING
        ):
            untouched.append(order)
            continue
        current = managed.get(order.key)
        if current is None:
            managed[order.key] = order
        elif current.state == OrderState.RELEASED and order.state == OrderState.BOOKED:
            untouched.append(current)
            managed[order.key] = order
        else:
            untouched.append(order)

    return managed, untouched


class OrderScaffolder:
    """
    Plans order writes for households of one season.

    Args:
        season: Season whose calendar and prices apply
        deadlines: Deadline calculator for the season
        now: Reference time for every deadline check
        events: Dinner events in scope (already limited to scaffoldable ones)

    Raises:
        ValidationError: If the season has no usable ticket prices
    """

    def __init__(
        self,
        season: Season,
        deadlines: SeasonDeadlines,
        now: datetime,
        events: Sequence[DinnerEvent],
    ):
        if not season.ticket_prices:
            raise ValidationError(
                f"Season {season.short_name} has no ticket prices",
                details={"season_id": season.id},
            )
        validate_ticket_prices(season.ticket_prices)

        self.season = season
        self.prices: List[TicketPrice] = list(season.ticket_prices)
        self.deadlines = deadlines
        self.now = now
        self.events = sorted(events, key=lambda e: (e.date, e.id))
        self._events_by_id = {event.id: event for event in self.events}

    @property
    def event_ids(self) -> List[int]:
        return [event.id for event in self.events]

    def plan(
        self,
        household: Household,
        orders: Iterable[Order],
        history: Iterable[OrderHistoryEntry],
    ) -> ScaffoldPlan:
        """
        Build the plan for one household.

        Args:
            household: Household with its inhabitants
            orders: The household's orders for the events in scope
            history: Order history of the household's inhabitants for those events

        Returns:
            ScaffoldPlan; empty when the household is already reconciled
        """
        plan = ScaffoldPlan(household_id=household.id)
        intents = latest_user_intents(history)
        managed, untouched = index_orders(
            orders, (i.id for i in household.inhabitants), self.event_ids
        )
        imported_keys = {o.key for o in untouched if o.provenance == OrderProvenance.CSV_BILLING}

        wanted_claims: List[Tuple[DinnerEvent, Inhabitant, DinnerMode]] = []
        touched_ids = set()

        for event in self.events:
            open_for_booking = self.deadlines.can_modify_orders(event.date, self.now)
            for inhabitant in household.inhabitants:
                key = (inhabitant.id, event.id)
                order = managed.get(key)
                desired = desired_dinner_mode(inhabitant, event, self.season)
                intent = intents.get(key)

                if order is None:
                    if (
                        desired == DinnerMode.NONE
                        or intent == OrderAuditAction.USER_CANCELLED
                        or key in imported_keys
                    ):
                        continue
                    if open_for_booking:
                        plan.add(PlannedChange(
                            bucket=Bucket.CREATE,
                            household_id=household.id,
                            inhabitant_id=inhabitant.id,
                            dinner_event_id=event.id,
                            dinner_mode=desired,
                            ticket_price=self._resolve(inhabitant, None, event),
                        ))
                    else:
                        wanted_claims.append((event, inhabitant, desired))
                    continue

                changes = self._changes_for_order(
                    household.id, event, inhabitant, order, desired, intent, open_for_booking
                )
                for change in changes:
                    touched_ids.add(order.id)
                    plan.add(change)

        if wanted_claims:
            self._plan_claims(plan, household, managed.values(), touched_ids, wanted_claims)

        plan.unchanged = len(untouched) + sum(1 for o in managed.values() if o.id not in touched_ids)

        logger.debug(f"Plan for household {household.id}: {plan.counts()} unchanged={plan.unchanged}")
        return plan

    # =========================================================================
    # Decisions
    # =========================================================================

    def _changes_for_order(
        self,
        household_id: int,
        event: DinnerEvent,
        inhabitant: Inhabitant,
        order: Order,
        desired: DinnerMode,
        intent: Optional[OrderAuditAction],
        open_for_booking: bool,
    ) -> List[PlannedChange]:
        if intent == OrderAuditAction.USER_CANCELLED:
            return []

        if intent in _CONFIRMING_ACTIONS:
            if order.state == OrderState.BOOKED:
                return self._price_heal(household_id, event, inhabitant, order)
            return []

        def change(bucket: Bucket, mode: DinnerMode, price: Optional[TicketPrice] = None) -> PlannedChange:
            return PlannedChange(
                bucket=bucket,
                household_id=household_id,
                inhabitant_id=inhabitant.id,
                dinner_event_id=event.id,
                dinner_mode=mode,
                order_id=order.id,
                ticket_price=price,
                existing=order,
            )

        if order.state == OrderState.RELEASED:
            if desired != DinnerMode.NONE:
                return [change(Bucket.UPDATE, desired, self._healed_price(inhabitant, order, event))]
            if open_for_booking:
                return [change(Bucket.DELETE, DinnerMode.NONE)]
            # Stays released and claimable
            return []

        if desired == DinnerMode.NONE:
            if open_for_booking:
                return [change(Bucket.DELETE, DinnerMode.NONE)]
            return [change(Bucket.RELEASE, DinnerMode.NONE)]

        changes = []
        if order.dinner_mode != desired and self.deadlines.can_edit_dining_mode(event.date, self.now):
            changes.append(change(Bucket.MODE_UPDATE, desired))
        changes.extend(self._price_heal(household_id, event, inhabitant, order))
        return changes

    def _plan_claims(
        self,
        plan: ScaffoldPlan,
        household: Household,
        managed_orders: Iterable[Order],
        touched_ids: set,
        wanted_claims: List[Tuple[DinnerEvent, Inhabitant, DinnerMode]],
    ) -> None:
        pool: Dict[int, List[Order]] = defaultdict(list)
        for order in managed_orders:
            event = self._events_by_id[order.dinner_event_id]
            if (
                order.state == OrderState.RELEASED
                and order.id not in touched_ids
                and not self.deadlines.can_modify_orders(event.date, self.now)
            ):
                pool[event.id].append(order)

        for event, inhabitant, desired in wanted_claims:
            available = pool.get(event.id)
            if not available:
                logger.debug(
                    f"No released ticket for inhabitant {inhabitant.id} at dinner {event.id}"
                )
                continue
            released = available.pop(0)
            touched_ids.add(released.id)
            plan.add(PlannedChange(
                bucket=Bucket.CLAIM,
                household_id=household.id,
                inhabitant_id=inhabitant.id,
                dinner_event_id=event.id,
                dinner_mode=desired,
                order_id=released.id,
                ticket_price=self._resolve(inhabitant, released.price_at_booking, event),
                existing=released,
            ))

    # =========================================================================
    # Prices
    # =========================================================================

    def _resolve(
        self,
        inhabitant: Inhabitant,
        price_at_booking: Optional[int],
        event: DinnerEvent
    ) -> TicketPrice:
        resolved = resolve_ticket_price(
            inhabitant.birth_date, price_at_booking, self.prices, event.date
        )
        if resolved is None:
            raise ValidationError(f"No ticket price for inhabitant {inhabitant.id}")
        return resolved

    def _healed_price(self, inhabitant: Inhabitant, order: Order, event: DinnerEvent) -> Optional[TicketPrice]:
        """Price row to move to when the stored category is wrong, else None."""
        resolved = self._resolve(inhabitant, order.price_at_booking, event)
        if ticket_type_for_order(order, self.prices) == resolved.ticket_type:
            return None
        return resolved

    def _price_heal(
        self,
        household_id: int,
        event: DinnerEvent,
        inhabitant: Inhabitant,
        order: Order
    ) -> List[PlannedChange]:
        healed = self._healed_price(inhabitant, order, event)
        if healed is None:
            return []
        return [PlannedChange(
            bucket=Bucket.PRICE_UPDATE,
            household_id=household_id,
            inhabitant_id=inhabitant.id,
            dinner_event_id=event.id,
            dinner_mode=order.dinner_mode,
            order_id=order.id,
            ticket_price=healed,
            existing=order,
        )]
