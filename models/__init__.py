"""
Data models for SlopeDinners.

This package contains the dataclasses shared by every layer:
- enums: Ticket categories, dining modes, order states, audit actions
- household: Household, Inhabitant and the address short-name rule
- dinner: Season, DinnerEvent, TicketPrice
- order: Order and its append-only history
- scaffold: Scaffold plans (buckets of intended writes) and results
- billing: Transactions, snapshots, invoices, billing period summaries
- job_run: Tracked job ledger rows and their typed results

Models hold data only; rules live in modules/ and services/.
"""

from .enums import (
    TicketType,
    DinnerMode,
    OrderState,
    DinnerState,
    OrderAuditAction,
    OrderProvenance,
    JobType,
    JobStatus,
    WEEKDAYS,
)
from .household import Household, Inhabitant, household_short_name
from .dinner import Season, DinnerEvent, TicketPrice, DateRange
from .order import Order, OrderHistoryEntry
from .scaffold import Bucket, BUCKET_ORDER, PlannedChange, ScaffoldPlan, ScaffoldResult
from .billing import (
    BillingPeriod,
    BillingPeriodSummary,
    BillingStats,
    DisplayTransaction,
    Invoice,
    LiveTransactionRelations,
    OrderForTransaction,
    OrderSnapshot,
    Transaction,
)
from .job_run import (
    JobRun,
    DailyMaintenanceResult,
    BillingGenerationResult,
    ImportResult,
    serialize_result_summary,
    deserialize_result_summary,
)

__all__ = [
    # Enums
    "TicketType",
    "DinnerMode",
    "OrderState",
    "DinnerState",
    "OrderAuditAction",
    "OrderProvenance",
    "JobType",
    "JobStatus",
    "WEEKDAYS",
    # Households
    "Household",
    "Inhabitant",
    "household_short_name",
    # Seasons
    "Season",
    "DinnerEvent",
    "TicketPrice",
    "DateRange",
    # Orders
    "Order",
    "OrderHistoryEntry",
    # Scaffold
    "Bucket",
    "BUCKET_ORDER",
    "PlannedChange",
    "ScaffoldPlan",
    "ScaffoldResult",
    # Billing
    "BillingPeriod",
    "BillingPeriodSummary",
    "BillingStats",
    "DisplayTransaction",
    "Invoice",
    "LiveTransactionRelations",
    "OrderForTransaction",
    "OrderSnapshot",
    "Transaction",
    # Job runs
    "JobRun",
    "DailyMaintenanceResult",
    "BillingGenerationResult",
    "ImportResult",
    "serialize_result_summary",
    "deserialize_result_summary",
]
