"""
Maintenance jobs.

    daily    close orders -> create transactions -> scaffold active season
    monthly  generate billing for closed periods
    import   billing CSV import

Each job is tracked in the job run ledger. A failing step fails the whole
run; steps already done stay done and are idempotent on the next run.
"""

from __future__ import annotations

from typing import Optional, Tuple

from models.enums import JobType
from models.job_run import BillingGenerationResult, DailyMaintenanceResult, ImportResult, JobRun
from models.scaffold import ScaffoldResult
from services.billing_service import BillingService
from services.import_service import BillingImportService
from services.job_ledger import JobRunLedger
from services.scaffold_service import ScaffoldService
from logging_config import get_logger


logger = get_logger(__name__)


class MaintenanceService:
    """Runs the tracked maintenance jobs."""

    def __init__(
        self,
        ledger: JobRunLedger,
        scaffold_service: ScaffoldService,
        billing_service: BillingService,
        import_service: BillingImportService,
    ):
        self.ledger = ledger
        self.scaffold_service = scaffold_service
        self.billing_service = billing_service
        self.import_service = import_service

    def run_daily_maintenance(self, triggered_by: str = "CRON") -> Tuple[JobRun, DailyMaintenanceResult]:
        def daily() -> DailyMaintenanceResult:
            result = DailyMaintenanceResult()
            result.closed_orders = self.billing_service.close_orders()
            result.created_transactions = self.billing_service.create_transactions()
            result.scaffold = self.scaffold_service.scaffold_prebookings()
            logger.info(
                f"Daily maintenance: closed {result.closed_orders} orders, "
                f"created {result.created_transactions} transactions"
            )
            return result

        return self.ledger.track(JobType.DAILY_MAINTENANCE, daily, triggered_by)

    def run_monthly_billing(self, triggered_by: str = "CRON") -> Tuple[JobRun, BillingGenerationResult]:
        return self.ledger.track(JobType.MONTHLY_BILLING, self.billing_service.generate_billing, triggered_by)

    def run_scaffold(
        self,
        season_id: Optional[int] = None,
        triggered_by: str = "ADMIN",
    ) -> Tuple[JobRun, ScaffoldResult]:
        return self.ledger.track(
            JobType.SCAFFOLD_PREBOOKINGS,
            lambda: self.scaffold_service.scaffold_prebookings(season_id=season_id),
            triggered_by,
        )

    def run_billing_import(
        self,
        content: str,
        season_id: Optional[int] = None,
        triggered_by: str = "ADMIN",
    ) -> Tuple[JobRun, ImportResult]:
        return self.ledger.track(
            JobType.BILLING_IMPORT,
            lambda: self.import_service.import_csv(content, season_id),
            triggered_by,
        )
