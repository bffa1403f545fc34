"""
Services layer for SlopeDinners.

This module contains the business logic services:
- DinnerRepository / InMemoryRepository: Persistence seam
- ScaffoldService: Preference reconciliation (plan + apply)
- BookingService: User booking, cancellation, claim, dining mode
- BillingService: Closing, transactions, invoices, billing views
- BillingImportService: Legacy pivot-sheet import
- JobRunLedger: Tracked job runs
- MaintenanceService: Daily and monthly jobs

Every service receives the repository and a ServiceSettings; none of them
depend on Flask.
"""

from .repository import DinnerRepository
from .memory_repository import InMemoryRepository
from .job_ledger import JobRunLedger
from .scaffold_service import ScaffoldService
from .booking_service import BookingService
from .billing_service import BillingService
from .import_service import BillingImportService
from .maintenance_service import MaintenanceService

__all__ = [
    "DinnerRepository",
    "InMemoryRepository",
    "JobRunLedger",
    "ScaffoldService",
    "BookingService",
    "BillingService",
    "BillingImportService",
    "MaintenanceService",
]
