"""
Booking service - explicit user actions on orders.

Every action here appends a USER_* history entry. Those entries are what the
scaffold treats as user intent: a USER_CANCELLED pair is never recreated
from preferences, a USER_BOOKED/USER_CLAIMED pair keeps its mode and state.

Cancellation semantics:
    before the booking deadline -> order deleted
    after the booking deadline  -> order RELEASED (still charged unless claimed)
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Tuple

from config import ServiceSettings
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models.dinner import DinnerEvent, Season
from models.enums import DinnerMode, DinnerState, OrderAuditAction, OrderProvenance, OrderState
from models.household import Inhabitant
from models.order import Order, OrderHistoryEntry
from modules.deadlines import SeasonDeadlines
from modules.ticket_price import resolve_ticket_price
from services.repository import DinnerRepository
from logging_config import get_logger


logger = get_logger(__name__)


class BookingService:
    """User-initiated booking, cancellation, claim and dining-mode changes."""

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
    # Actions
    # =========================================================================

    def book_order(
        self,
        inhabitant_id: int,
        dinner_event_id: int,
        dinner_mode: DinnerMode = DinnerMode.DINEIN,
        user_id: Optional[int] = None,
        acting_household_id: Optional[int] = None,
    ) -> Order:
        """
        Book a ticket before the booking deadline.

        Raises:
            ValidationError: If ``dinner_mode`` is NONE
            ConflictError: Deadline passed, dinner cancelled, or already booked
        """
        if dinner_mode == DinnerMode.NONE:
            raise ValidationError("Cannot book a ticket with dinner mode NONE")
        inhabitant = self._load_inhabitant(inhabitant_id, acting_household_id)
        event, season = self._load_event(dinner_event_id)
        now = self._clock()

        if event.state == DinnerState.CANCELLED:
            raise ConflictError(f"Dinner {event.id} is cancelled")
        if not self._deadlines(season).can_modify_orders(event.date, now):
            raise ConflictError(
                f"Booking deadline for dinner {event.id} has passed",
                details={"resolution": "Claim a released ticket instead"},
            )
        existing = self.repository.find_orders([inhabitant.id], [event.id], [OrderState.BOOKED])
        if any(not order.is_guest_ticket for order in existing):
            raise ConflictError(f"Inhabitant {inhabitant.id} already has a ticket for dinner {event.id}")

        price = resolve_ticket_price(inhabitant.birth_date, None, season.ticket_prices, event.date)
        if price is None:
            raise ValidationError(f"Season {season.short_name} has no ticket prices")

        order = self.repository.create_order(Order(
            id=None,
            dinner_event_id=event.id,
            inhabitant_id=inhabitant.id,
            price_at_booking=price.price,
            ticket_price_id=price.id,
            booked_by_user_id=user_id,
            dinner_mode=dinner_mode,
            provenance=OrderProvenance.USER,
        ))
        self._audit(order, OrderAuditAction.USER_BOOKED, user_id)
        logger.info(f"Inhabitant {inhabitant.id} booked dinner {event.id} ({dinner_mode.value})")
        return order

    def cancel_order(
        self,
        order_id: int,
        user_id: Optional[int] = None,
        acting_household_id: Optional[int] = None,
    ) -> Optional[Order]:
        """
        Cancel a ticket.

        Returns:
            The released order, or None when it was deleted

        Raises:
            ConflictError: If the order is already closed or released
        """
        order = self._load_order(order_id, acting_household_id)
        if order.state != OrderState.BOOKED:
            raise ConflictError(
                f"Order {order.id} is {order.state.value} and cannot be cancelled",
                details={"state": order.state.value},
            )
        event, season = self._load_event(order.dinner_event_id)
        now = self._clock()

        if self._deadlines(season).can_modify_orders(event.date, now):
            self.repository.delete_order(order.id)
            self._audit(order, OrderAuditAction.USER_CANCELLED, user_id, deleted=True)
            logger.info(f"Order {order.id} deleted by user cancellation")
            return None

        order.state = OrderState.RELEASED
        order.dinner_mode = DinnerMode.NONE
        order.released_at = now
        order = self.repository.update_order(order)
        self._audit(order, OrderAuditAction.USER_CANCELLED, user_id, deleted=False)
        logger.info(f"Order {order.id} released by user cancellation")
        return order

    def claim_order(
        self,
        order_id: int,
        inhabitant_id: int,
        user_id: Optional[int] = None,
        acting_household_id: Optional[int] = None,
        dinner_mode: DinnerMode = DinnerMode.DINEIN,
    ) -> Order:
        """
        Take over a released ticket, from any household.

        The claimant is charged at their own ticket category.

        Raises:
            ConflictError: If the order is not RELEASED, or the claimant already
                holds a ticket for the dinner
            ForbiddenError: If the claimant is not in the caller's household
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        claimant = self._load_inhabitant(inhabitant_id, acting_household_id)
        if order.state != OrderState.RELEASED:
            raise ConflictError(
                f"Order {order.id} is {order.state.value}, only RELEASED tickets can be claimed",
                details={"state": order.state.value},
            )
        event, season = self._load_event(order.dinner_event_id)
        if self._deadlines(season).is_dinner_past(event.date, self._clock()):
            raise ConflictError(f"Dinner {event.id} has already started")
        held = self.repository.find_orders([claimant.id], [event.id], [OrderState.BOOKED])
        if any(not o.is_guest_ticket and o.id != order.id for o in held):
            raise ConflictError(
                f"Inhabitant {claimant.id} already has a ticket for dinner {event.id}",
                details={"resolution": "Leave the released ticket for someone without one"},
            )

        price = resolve_ticket_price(
            claimant.birth_date, order.price_at_booking, season.ticket_prices, event.date
        )
        previous_inhabitant_id = order.inhabitant_id
        order.inhabitant_id = claimant.id
        order.state = OrderState.BOOKED
        order.dinner_mode = dinner_mode if dinner_mode != DinnerMode.NONE else DinnerMode.DINEIN
        order.released_at = None
        order.booked_by_user_id = user_id
        order.provenance = OrderProvenance.CLAIM
        if price is not None:
            order.ticket_price_id = price.id
            order.price_at_booking = price.price
        order = self.repository.update_order(order)
        self._audit(order, OrderAuditAction.USER_CLAIMED, user_id,
                    previousInhabitantId=previous_inhabitant_id)
        logger.info(f"Order {order.id} claimed by inhabitant {claimant.id}")
        return order

    def change_dinner_mode(
        self,
        order_id: int,
        dinner_mode: DinnerMode,
        user_id: Optional[int] = None,
        acting_household_id: Optional[int] = None,
    ) -> Order:
        """
        Switch between dine in, late and takeaway.

        Raises:
            ValidationError: For NONE (cancel instead)
            ConflictError: If the dining-mode deadline has passed
        """
        if dinner_mode == DinnerMode.NONE:
            raise ValidationError("Use cancellation to drop a ticket")
        order = self._load_order(order_id, acting_household_id)
        if order.state != OrderState.BOOKED:
            raise ConflictError(f"Order {order.id} is {order.state.value}")
        event, season = self._load_event(order.dinner_event_id)
        if not self._deadlines(season).can_edit_dining_mode(event.date, self._clock()):
            raise ConflictError(f"Dining mode for dinner {event.id} can no longer be changed")

        order.dinner_mode = dinner_mode
        order = self.repository.update_order(order)
        # Counts as a confirmed booking for the scaffold
        self._audit(order, OrderAuditAction.USER_BOOKED, user_id)
        return order

    # =========================================================================
    # Helpers
    # =========================================================================

    def _deadlines(self, season: Season) -> SeasonDeadlines:
        return SeasonDeadlines.for_season(season, self.settings.dinner_start_hour)

    def _audit(self, order: Order, action: OrderAuditAction, user_id: Optional[int], **audit) -> None:
        self.repository.add_history(
            OrderHistoryEntry.for_order(order, action, performed_by_user_id=user_id, **audit)
        )

    def _load_event(self, dinner_event_id: int) -> Tuple[DinnerEvent, Season]:
        event = self.repository.get_dinner_event(dinner_event_id)
        if event is None:
            raise NotFoundError("DinnerEvent", dinner_event_id)
        season = self.repository.get_season(event.season_id)
        if season is None:
            raise NotFoundError("Season", event.season_id)
        return event, season

    def _load_inhabitant(self, inhabitant_id: int, acting_household_id: Optional[int]) -> Inhabitant:
        inhabitant = self.repository.get_inhabitant(inhabitant_id)
        if inhabitant is None:
            raise NotFoundError("Inhabitant", inhabitant_id)
        if acting_household_id is not None and inhabitant.household_id != acting_household_id:
            raise ForbiddenError(
                f"Inhabitant {inhabitant_id} is not in household {acting_household_id}",
                household_id=inhabitant.household_id,
            )
        return inhabitant

    def _load_order(self, order_id: int, acting_household_id: Optional[int]) -> Order:
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        self._load_inhabitant(order.inhabitant_id, acting_household_id)
        return order
