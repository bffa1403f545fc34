"""
Custom exceptions for SlopeDinners.

Exception Hierarchy:
    SlopeDinnersError (base)
    ├── ValidationError      - Bad input (400)
    ├── NotFoundError        - Referenced entity does not exist (404)
    ├── ForbiddenError       - Acting on another household's data (403)
    ├── ConflictError        - Operation not allowed in the current state (409)
    ├── ReconciliationError  - Unexpected failure while applying a scaffold plan (500)
    └── SnapshotError        - Transaction snapshot cannot be read (recovered locally)

Usage:
    Routes let these propagate; the app's error handler turns them into a JSON
    envelope using ``http_status``. SnapshotError is caught by the billing
    aggregator and never reaches a client.
"""

from typing import Optional, Dict, Any, List


class SlopeDinnersError(Exception):
    """
    Base exception for all SlopeDinners errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """JSON envelope returned by the HTTP layer."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# CLIENT ERRORS - the request cannot be served as asked
# =============================================================================

class ValidationError(SlopeDinnersError):
    """
    Input failed validation.

    ``field_errors`` maps a field name (or weekday, or CSV column) to a list of
    messages so a form can show them next to the right input.
    """

    http_status = 400

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if field_errors:
            error_details["field_errors"] = field_errors
        super().__init__(message, error_details)
        self.field_errors = field_errors or {}


class NotFoundError(SlopeDinnersError):
    """A season, household, inhabitant, order or billing record does not exist."""

    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        message = f"{entity} {entity_id} not found"
        details = {
            "entity": entity,
            "id": entity_id,
        }
        super().__init__(message, details)
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(SlopeDinnersError):
    """
    The caller tried to change data belonging to another household.

    Reconciliation and booking actions are always scoped to the acting
    household; crossing that boundary is refused, never silently filtered.
    """

    http_status = 403

    def __init__(self, message: str, household_id: Optional[int] = None):
        details = {
            "resolution": "Only members of the household may change its bookings"
        }
        if household_id is not None:
            details["household_id"] = household_id
        super().__init__(message, details)
        self.household_id = household_id


class ConflictError(SlopeDinnersError):
    """
    The operation is not valid in the entity's current state.

    Typical causes:
    - Claiming an order that is not RELEASED
    - Booking after the booking deadline
    - Booking a ticket the inhabitant already holds
    """

    http_status = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


# =============================================================================
# SERVER ERRORS
# =============================================================================

class ReconciliationError(SlopeDinnersError):
    """
    Applying a scaffold plan failed part-way.

    Carries the household, bucket and order being written when the failure
    happened plus the per-bucket counts already applied. Re-running the
    scaffold on unchanged inputs converges: applied changes are no-ops the
    second time.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        household_id: Optional[int] = None,
        bucket: Optional[str] = None,
        dinner_event_id: Optional[int] = None,
        order_id: Optional[int] = None,
        completed: Optional[Dict[str, int]] = None,
    ):
        details: Dict[str, Any] = {
            "resolution": "Fix the underlying error and re-run the scaffold; applied changes are kept"
        }
        if household_id is not None:
            details["household_id"] = household_id
        if bucket:
            details["bucket"] = bucket
        if dinner_event_id is not None:
            details["dinner_event_id"] = dinner_event_id
        if order_id is not None:
            details["order_id"] = order_id
        details["completed"] = dict(completed or {})
        super().__init__(message, details)
        self.household_id = household_id
        self.bucket = bucket
        self.dinner_event_id = dinner_event_id
        self.order_id = order_id
        self.completed = dict(completed or {})
        self.season_result: Optional[Dict[str, Any]] = None
        self.households_done: List[int] = []

    def add_season_progress(self, season_result: Dict[str, Any], households_done: List[int]) -> None:
        """Attach what earlier households of a season-wide run already applied."""
        self.season_result = season_result
        self.households_done = list(households_done)
        self.details["season_result"] = season_result
        self.details["households_done"] = self.households_done


class SnapshotError(SlopeDinnersError):
    """
    A transaction's frozen snapshot cannot be parsed.

    This is a data-integrity degradation, not a request failure: billing views
    skip the transaction and log a warning.
    """

    def __init__(self, transaction_id: Optional[int], reason: str):
        message = f"Unreadable snapshot for transaction {transaction_id}: {reason}"
        details = {
            "transaction_id": transaction_id,
            "reason": reason,
        }
        super().__init__(message, details)
        self.transaction_id = transaction_id
        self.reason = reason
