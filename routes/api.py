"""
Operational endpoints.

Handles:
- /health - Health check endpoint
- /api/admin/maintenance/job-run - Recent job runs from the ledger
"""

from flask import Blueprint, current_app, jsonify, request

from core.exceptions import ValidationError
from models.enums import JobType
from routes.common import get_service
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """
    Health check endpoint.

    Returns JSON with service status.
    """
    repository = current_app.config.get("REPOSITORY")
    season = repository.get_active_season() if repository else None
    return jsonify({
        "status": "healthy" if repository else "degraded",
        "environment": current_app.config.get("ENVIRONMENT"),
        "activeSeason": season.short_name if season else None,
    })


@api_bp.route("/api/admin/maintenance/job-run", methods=["GET"])
def job_runs():
    """
    List recent job runs, newest first.

    Query parameters:
        jobType: Optional JobType value to filter on
        limit: Maximum number of runs (default 20)
    """
    ledger = get_service("JOB_LEDGER")

    job_type = None
    raw_type = request.args.get("jobType")
    if raw_type:
        try:
            job_type = JobType(raw_type)
        except ValueError:
            raise ValidationError(
                f"Unknown job type: {raw_type}",
                field_errors={"jobType": [f"One of {', '.join(t.value for t in JobType)}"]},
            )

    limit = request.args.get("limit", 20, type=int)
    if limit is None or limit <= 0:
        raise ValidationError("limit must be a positive integer")

    runs = ledger.list_runs(job_type, limit)
    return jsonify([run.to_dict() for run in runs])
