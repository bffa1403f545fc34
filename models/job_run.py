"""
Job run data models.

A JobRun is the ledger row of one tracked maintenance/billing/scaffold job.
Its result summary is stored as JSON and read back into the typed result of
the job's kind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional, Union

from .enums import JobStatus, JobType
from .scaffold import ScaffoldResult


@dataclass
class DailyMaintenanceResult:
    """Close orders, create transactions, scaffold the active season."""

    closed_orders: int = 0
    created_transactions: int = 0
    scaffold: Optional[ScaffoldResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "closedOrders": self.closed_orders,
            "createdTransactions": self.created_transactions,
            "scaffold": self.scaffold.to_dict() if self.scaffold else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyMaintenanceResult":
        scaffold = data.get("scaffold")
        return cls(
            closed_orders=data.get("closedOrders", 0),
            created_transactions=data.get("createdTransactions", 0),
            scaffold=ScaffoldResult.from_dict(scaffold) if scaffold else None,
        )


@dataclass
class BillingGenerationResult:
    """Outcome of generating invoices for closed billing periods."""

    billing_periods: List[str] = field(default_factory=list)
    invoices_created: int = 0
    transactions_linked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billingPeriods": list(self.billing_periods),
            "invoicesCreated": self.invoices_created,
            "transactionsLinked": self.transactions_linked,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BillingGenerationResult":
        return cls(
            billing_periods=list(data.get("billingPeriods", [])),
            invoices_created=data.get("invoicesCreated", 0),
            transactions_linked=data.get("transactionsLinked", 0),
        )


@dataclass
class ImportResult:
    """Outcome of a billing CSV import."""

    created: int = 0
    already_imported: int = 0
    households: int = 0
    dinner_dates: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "alreadyImported": self.already_imported,
            "households": self.households,
            "dinnerDates": self.dinner_dates,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportResult":
        return cls(
            created=data.get("created", 0),
            already_imported=data.get("alreadyImported", 0),
            households=data.get("households", 0),
            dinner_dates=data.get("dinnerDates", 0),
        )


JobResultSummary = Union[
    ScaffoldResult, DailyMaintenanceResult, BillingGenerationResult, ImportResult
]

_RESULT_TYPES = {
    JobType.SCAFFOLD_PREBOOKINGS: ScaffoldResult,
    JobType.DAILY_MAINTENANCE: DailyMaintenanceResult,
    JobType.MONTHLY_BILLING: BillingGenerationResult,
    JobType.BILLING_IMPORT: ImportResult,
}


def serialize_result_summary(result: Optional[JobResultSummary]) -> Optional[str]:
    """Store a typed job result as JSON."""
    if result is None:
        return None
    return json.dumps(result.to_dict())


def deserialize_result_summary(
    job_type: JobType,
    text: Optional[str]
) -> Optional[JobResultSummary]:
    """
    Read a stored result summary back into the result type of ``job_type``.

    Args:
        job_type: Kind of job that wrote the summary
        text: Stored JSON (None for runs that never finished)

    Returns:
        Typed result, or None when nothing was stored

    Raises:
        ValueError: If the stored text is not a JSON object
    """
    if not text:
        return None
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Result summary of {job_type.value} is not an object")
    return _RESULT_TYPES[job_type].from_dict(data)


@dataclass
class JobRun:
    """
    Ledger row of one tracked job.

    Lifecycle:
        RUNNING -> (COMPLETED | FAILED)
    """

    id: Optional[int]
    job_type: JobType
    status: JobStatus
    started_at: datetime
    triggered_by: str = "CRON"
    """Who started the run: 'CRON', 'ADMIN', or a user handle."""

    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    result_summary: Optional[str] = None
    """JSON, see serialize_result_summary."""

    error_message: Optional[str] = None

    @classmethod
    def create_running(
        cls,
        job_type: JobType,
        started_at: datetime,
        triggered_by: str = "CRON"
    ) -> "JobRun":
        return cls(
            id=None,
            job_type=job_type,
            status=JobStatus.RUNNING,
            started_at=started_at,
            triggered_by=triggered_by,
        )

    def mark_completed(self, completed_at: datetime, result: Optional[JobResultSummary]) -> None:
        self.status = JobStatus.COMPLETED
        self._finish(completed_at)
        self.result_summary = serialize_result_summary(result)

    def mark_failed(
        self,
        completed_at: datetime,
        error_message: str,
        partial: Optional[Dict[str, Any]] = None
    ) -> None:
        """Record a failure; ``partial`` keeps whatever counts were reached."""
        self.status = JobStatus.FAILED
        self._finish(completed_at)
        self.error_message = error_message
        if partial:
            self.result_summary = json.dumps(partial, default=str)

    def _finish(self, completed_at: datetime) -> None:
        self.completed_at = completed_at
        self.duration_ms = int((completed_at - self.started_at).total_seconds() * 1000)

    @property
    def result(self) -> Optional[JobResultSummary]:
        if self.status != JobStatus.COMPLETED:
            return None
        return deserialize_result_summary(self.job_type, self.result_summary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "jobType": self.job_type.value,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "durationMs": self.duration_ms,
            "resultSummary": json.loads(self.result_summary) if self.result_summary else None,
            "errorMessage": self.error_message,
            "triggeredBy": self.triggered_by,
        }
