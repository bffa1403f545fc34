"""Pure booking and billing rules for the SlopeDinners application."""

__all__ = [
    "batching",
    "billing_csv",
    "billing_period",
    "billing_stats",
    "deadlines",
    "preferences",
    "scaffold",
    "snapshot",
    "ticket_price",
]
