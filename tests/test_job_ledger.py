"""
Unit tests for the job run ledger and the maintenance jobs.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from core.exceptions import ReconciliationError
from models.enums import JobStatus, JobType
from models.job_run import (
    BillingGenerationResult,
    DailyMaintenanceResult,
    ImportResult,
    JobRun,
    deserialize_result_summary,
    serialize_result_summary,
)
from models.scaffold import ScaffoldResult


class TestJobRun:
    """Tests for the JobRun model."""

    def test_completed_run_keeps_typed_result(self):
        run = JobRun.create_running(JobType.MONTHLY_BILLING, datetime(2025, 11, 20, 3, 0))
        run.mark_completed(
            datetime(2025, 11, 20, 3, 0, 2),
            BillingGenerationResult(billing_periods=["18/10/2025-17/11/2025"], invoices_created=2),
        )

        assert run.status == JobStatus.COMPLETED
        assert run.duration_ms == 2000
        assert run.result.invoices_created == 2
        assert run.to_dict()["resultSummary"]["billingPeriods"] == ["18/10/2025-17/11/2025"]

    def test_failed_run_has_no_result(self):
        run = JobRun.create_running(JobType.DAILY_MAINTENANCE, datetime(2025, 11, 20, 3, 0))
        run.mark_failed(datetime(2025, 11, 20, 3, 1), "boom", {"completed": {"create": 1}})
        assert run.status == JobStatus.FAILED
        assert run.result is None
        assert run.to_dict()["resultSummary"] == {"completed": {"create": 1}}

    def test_summary_round_trip_per_job_type(self):
        daily = DailyMaintenanceResult(closed_orders=3, created_transactions=3,
                                       scaffold=ScaffoldResult(season_id=1, created=2))
        text = serialize_result_summary(daily)
        restored = deserialize_result_summary(JobType.DAILY_MAINTENANCE, text)
        assert restored.scaffold.created == 2
        assert deserialize_result_summary(JobType.BILLING_IMPORT, serialize_result_summary(ImportResult(created=4))).created == 4
        assert deserialize_result_summary(JobType.SCAFFOLD_PREBOOKINGS, None) is None

    def test_summary_must_be_object(self):
        with pytest.raises(ValueError):
            deserialize_result_summary(JobType.MONTHLY_BILLING, "[1, 2]")


class TestJobRunLedger:
    """Tests for JobRunLedger.track."""

    def test_track_success(self, ledger):
        run, result = ledger.track(JobType.BILLING_IMPORT, lambda: ImportResult(created=1), "ADMIN")

        assert run.id is not None
        assert run.status == JobStatus.COMPLETED
        assert run.triggered_by == "ADMIN"
        assert result.created == 1

    def test_track_failure_is_recorded_and_reraised(self, ledger):
        def failing():
            raise ReconciliationError("apply failed", household_id=1, completed={"create": 2})

        with pytest.raises(ReconciliationError):
            ledger.track(JobType.SCAFFOLD_PREBOOKINGS, failing)

        run = ledger.list_runs(JobType.SCAFFOLD_PREBOOKINGS)[0]
        assert run.status == JobStatus.FAILED
        assert run.error_message == "apply failed"
        assert run.to_dict()["resultSummary"]["completed"] == {"create": 2}

    def test_list_runs_newest_first(self, ledger, clock):
        ledger.track(JobType.MONTHLY_BILLING, BillingGenerationResult)
        clock.advance(minutes=5)
        ledger.track(JobType.DAILY_MAINTENANCE, DailyMaintenanceResult)

        runs = ledger.list_runs()
        assert [r.job_type for r in runs] == [JobType.DAILY_MAINTENANCE, JobType.MONTHLY_BILLING]
        assert [r.job_type for r in ledger.list_runs(limit=1)] == [JobType.DAILY_MAINTENANCE]


class TestMaintenanceService:
    """Daily and monthly jobs end to end."""

    def test_daily_maintenance(self, maintenance_service, repository):
        run, result = maintenance_service.run_daily_maintenance()

        assert run.status == JobStatus.COMPLETED
        assert run.triggered_by == "CRON"
        assert result.closed_orders == 0
        assert result.scaffold.created == 3
        assert run.result.scaffold.created == 3

    def test_daily_then_monthly(self, maintenance_service, repository, clock):
        maintenance_service.run_daily_maintenance()
        clock.now = datetime(2025, 11, 20, 3, 0)

        _, daily = maintenance_service.run_daily_maintenance()
        run, monthly = maintenance_service.run_monthly_billing()

        # Scaffolded tickets for 2025-11-18 are consumed and billed
        assert daily.closed_orders == 3
        assert daily.created_transactions == 3
        assert monthly.billing_periods == []
        assert run.status == JobStatus.COMPLETED

    def test_failing_step_fails_run(self, maintenance_service, billing_service):
        with patch.object(billing_service, "close_orders", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                maintenance_service.run_daily_maintenance()

        run = maintenance_service.ledger.list_runs(JobType.DAILY_MAINTENANCE)[0]
        assert run.status == JobStatus.FAILED
        assert run.error_message == "db down"

    def test_failed_scaffold_run_keeps_season_progress(self, maintenance_service, repository):
        original_create = repository.create_order

        def create_except_carl(order):
            if order.inhabitant_id == 21:
                raise RuntimeError("connection lost")
            return original_create(order)

        with patch.object(repository, "create_order", side_effect=create_except_carl):
            with pytest.raises(ReconciliationError):
                maintenance_service.run_scaffold()

        summary = maintenance_service.ledger.list_runs(JobType.SCAFFOLD_PREBOOKINGS)[0].to_dict()["resultSummary"]
        assert summary["householdId"] == 2
        assert summary["householdsDone"] == [1]
        assert summary["seasonResult"]["created"] == 2
