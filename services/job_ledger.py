"""
Job run ledger.

Every maintenance, billing, import and scaffold job is recorded as a JobRun:
started as RUNNING, finished as COMPLETED with its typed result summary or
as FAILED with the error message (and partial counts when the failure
carried them).

Usage:
    ledger = JobRunLedger(repository)
    run, result = ledger.track(
        JobType.SCAFFOLD_PREBOOKINGS,
        lambda: scaffold_service.scaffold_prebookings(),
        triggered_by="ADMIN",
    )
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from core.exceptions import ReconciliationError, SlopeDinnersError
from models.enums import JobType
from models.job_run import JobResultSummary, JobRun
from services.repository import DinnerRepository
from logging_config import get_logger, get_job_logger


logger = get_logger(__name__)

R = TypeVar("R")


class JobRunLedger:
    """Records job runs in the repository."""

    def __init__(
        self,
        repository: DinnerRepository,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.repository = repository
        self._clock = clock

    def start(self, job_type: JobType, triggered_by: str = "CRON") -> JobRun:
        run = self.repository.save_job_run(
            JobRun.create_running(job_type, self._clock(), triggered_by)
        )
        get_job_logger(run.id).info(f"{job_type.value} started (triggered by {triggered_by})")
        return run

    def complete(self, run: JobRun, result: Optional[JobResultSummary]) -> JobRun:
        run.mark_completed(self._clock(), result)
        run = self.repository.save_job_run(run)
        get_job_logger(run.id).info(f"{run.job_type.value} completed in {run.duration_ms} ms")
        return run

    def fail(self, run: JobRun, error: Exception, partial: Optional[Dict[str, Any]] = None) -> JobRun:
        if partial is None and isinstance(error, ReconciliationError):
            partial = {"completed": error.completed, "householdId": error.household_id}
            if error.season_result is not None:
                partial["seasonResult"] = error.season_result
                partial["householdsDone"] = error.households_done
        message = error.message if isinstance(error, SlopeDinnersError) else str(error)
        run.mark_failed(self._clock(), message, partial)
        run = self.repository.save_job_run(run)
        get_job_logger(run.id).error(f"{run.job_type.value} failed: {message}")
        return run

    def track(
        self,
        job_type: JobType,
        func: Callable[[], R],
        triggered_by: str = "CRON",
    ) -> Tuple[JobRun, R]:
        """
        Run ``func`` as a tracked job.

        The failure is recorded and then re-raised, so callers still see it.

        Returns:
            (finished JobRun, whatever func returned)
        """
        run = self.start(job_type, triggered_by)
        try:
            result = func()
        except Exception as e:
            self.fail(run, e)
            raise
        return self.complete(run, result), result

    def list_runs(self, job_type: Optional[JobType] = None, limit: int = 20) -> List[JobRun]:
        return self.repository.find_job_runs(job_type, limit)
