"""
Core module for SlopeDinners.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy mapped to HTTP status codes
"""

from .exceptions import (
    SlopeDinnersError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    ReconciliationError,
    SnapshotError,
)

__all__ = [
    "SlopeDinnersError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "ReconciliationError",
    "SnapshotError",
]
