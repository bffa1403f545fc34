"""
Helpers shared by the JSON blueprints.
"""

from typing import Any, Dict, Optional

from flask import current_app, request

from core.exceptions import SlopeDinnersError, ValidationError


def get_service(name: str) -> Any:
    """
    Look up a service stored in app.config by create_app().

    Raises:
        SlopeDinnersError: If the service was not configured
    """
    service = current_app.config.get(name)
    if service is None:
        raise SlopeDinnersError(f"Service unavailable: {name}")
    return service


def acting_household_id() -> Optional[int]:
    """
    Household of the caller, from the X-Household-Id header.

    No header means an admin or system caller.
    """
    value = request.headers.get("X-Household-Id")
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(
            "X-Household-Id must be an integer",
            field_errors={"X-Household-Id": ["Not an integer"]},
        )


def json_body() -> Dict[str, Any]:
    """Request body as a JSON object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{key} is required and must be an integer",
            field_errors={key: ["Must be an integer"]},
        )
    return value


def user_id_from(data: Dict[str, Any]) -> Optional[int]:
    value = data.get("userId")
    return value if isinstance(value, int) and not isinstance(value, bool) else None
