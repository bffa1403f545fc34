"""
Household routes.

User-facing actions. Everything here is scoped to the caller's household
(X-Household-Id); acting on another household's inhabitants is 403.

Handles:
- POST   /api/household/<id>/scaffold                  - Reconcile one household
- POST   /api/household/inhabitants/<id>/preferences   - Save weekday preferences
- POST   /api/household/inhabitants/<id>/birth-date    - Save birth date
- PUT    /api/order                                    - Book a ticket
- DELETE /api/order/<id>                               - Cancel (delete or release)
- POST   /api/order/<id>/claim                         - Claim a released ticket
- POST   /api/order/<id>/mode                          - Change dining mode
"""

from datetime import date

from flask import Blueprint, jsonify, request

from core.exceptions import ValidationError
from models.enums import DinnerMode
from routes.common import acting_household_id, get_service, json_body, require_int, user_id_from
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

household_bp = Blueprint("household", __name__)


def _dinner_mode(data, default=None) -> DinnerMode:
    raw = data.get("dinnerMode", default)
    try:
        return DinnerMode(raw)
    except ValueError:
        raise ValidationError(
            f"Invalid dinner mode: {raw}",
            field_errors={"dinnerMode": [f"One of {', '.join(m.value for m in DinnerMode)}"]},
        )


# =============================================================================
# Scaffold triggers
# =============================================================================

@household_bp.route("/api/household/<int:household_id>/scaffold", methods=["POST"])
def scaffold_household(household_id: int):
    result = get_service("SCAFFOLD_SERVICE").reconcile_household(
        household_id, acting_household_id()
    )
    return jsonify(result.to_dict())


@household_bp.route("/api/household/inhabitants/<int:inhabitant_id>/preferences", methods=["POST"])
def update_preferences(inhabitant_id: int):
    """
    Save weekday preferences and reconcile the household.

    Body: {"dinnerPreferences": {"mandag": "DINEIN", ...}}
    """
    data = json_body()
    if "dinnerPreferences" not in data:
        raise ValidationError(
            "dinnerPreferences is required",
            field_errors={"dinnerPreferences": ["Required"]},
        )
    inhabitant, result = get_service("SCAFFOLD_SERVICE").update_preferences(
        inhabitant_id, data["dinnerPreferences"], acting_household_id()
    )
    return jsonify({"inhabitant": inhabitant.to_dict(), "scaffoldResult": result.to_dict()})


@household_bp.route("/api/household/inhabitants/<int:inhabitant_id>/birth-date", methods=["POST"])
def update_birth_date(inhabitant_id: int):
    """
    Save a birth date (ISO, or null to clear) and reconcile ticket categories.
    """
    data = json_body()
    raw = data.get("birthDate")
    birth_date = None
    if raw is not None:
        try:
            birth_date = date.fromisoformat(str(raw))
        except ValueError:
            raise ValidationError(
                f"Invalid birth date: {raw}",
                field_errors={"birthDate": ["Expected YYYY-MM-DD"]},
            )
    inhabitant, result = get_service("SCAFFOLD_SERVICE").update_birth_date(
        inhabitant_id, birth_date, acting_household_id()
    )
    return jsonify({"inhabitant": inhabitant.to_dict(), "scaffoldResult": result.to_dict()})


# =============================================================================
# Orders
# =============================================================================

@household_bp.route("/api/order", methods=["PUT"])
def book_order():
    """
    Book a ticket.

    Body: {"inhabitantId": 1, "dinnerEventId": 2, "dinnerMode": "DINEIN", "userId": 3}
    """
    data = json_body()
    order = get_service("BOOKING_SERVICE").book_order(
        inhabitant_id=require_int(data, "inhabitantId"),
        dinner_event_id=require_int(data, "dinnerEventId"),
        dinner_mode=_dinner_mode(data, DinnerMode.DINEIN.value),
        user_id=user_id_from(data),
        acting_household_id=acting_household_id(),
    )
    return jsonify(order.to_dict()), 201


@household_bp.route("/api/order/<int:order_id>", methods=["DELETE"])
def cancel_order(order_id: int):
    """Cancel a ticket; released tickets are returned, deleted ones are not."""
    data = json_body() if request.get_data() else {}
    order = get_service("BOOKING_SERVICE").cancel_order(
        order_id, user_id_from(data), acting_household_id()
    )
    if order is None:
        return jsonify({"deleted": True, "order": None})
    return jsonify({"deleted": False, "order": order.to_dict()})


@household_bp.route("/api/order/<int:order_id>/claim", methods=["POST"])
def claim_order(order_id: int):
    """
    Claim a released ticket for an inhabitant of the caller's household.

    Body: {"inhabitantId": 4, "dinnerMode": "TAKEAWAY", "userId": 5}
    """
    data = json_body()
    order = get_service("BOOKING_SERVICE").claim_order(
        order_id,
        inhabitant_id=require_int(data, "inhabitantId"),
        user_id=user_id_from(data),
        acting_household_id=acting_household_id(),
        dinner_mode=_dinner_mode(data, DinnerMode.DINEIN.value),
    )
    return jsonify(order.to_dict())


@household_bp.route("/api/order/<int:order_id>/mode", methods=["POST"])
def change_dinner_mode(order_id: int):
    data = json_body()
    if "dinnerMode" not in data:
        raise ValidationError("dinnerMode is required", field_errors={"dinnerMode": ["Required"]})
    order = get_service("BOOKING_SERVICE").change_dinner_mode(
        order_id, _dinner_mode(data), user_id_from(data), acting_household_id()
    )
    return jsonify(order.to_dict())
