"""
SlopeDinners - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration (.env via python-dotenv, then a Config class)
2. Configures logging
3. Builds the repository and services (no Flask dependency inside them)
4. Registers route blueprints
5. Sets up JSON error handlers

ARCHITECTURE:
    Flask request handling
    ├── routes/household.py  -> BookingService, ScaffoldService
    ├── routes/admin.py      -> MaintenanceService, BillingService, ScaffoldService
    └── routes/api.py        -> JobRunLedger

    MaintenanceService
    └── every job runs through JobRunLedger (RUNNING -> COMPLETED | FAILED)

Services are stored in app.config so routes look them up with current_app.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import ServiceSettings
from core.exceptions import SlopeDinnersError
from logging_config import setup_logging, get_logger
from routes import register_blueprints
from services.billing_service import BillingService
from services.booking_service import BookingService
from services.import_service import BillingImportService
from services.job_ledger import JobRunLedger
from services.maintenance_service import MaintenanceService
from services.memory_repository import InMemoryRepository
from services.repository import DinnerRepository
from services.scaffold_service import ScaffoldService


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(
    config_object: str = "config.Config",
    repository: Optional[DinnerRepository] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        repository: Storage backend; an empty InMemoryRepository when None
        clock: Source of "now" for every deadline and job timestamp

    Returns:
        Configured Flask application
    """
    # Use override=True so .env file always takes precedence over shell environment
    env_file = Path(__file__).parent / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        app_name="slope_dinners",
        log_level=log_level,
        log_dir=app.config.get("LOG_DIR"),
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting SlopeDinners in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    settings = ServiceSettings.from_mapping(app.config)
    if repository is None:
        repository = InMemoryRepository(clock=clock)
        logger.warning("No repository configured, using in-memory storage")

    scaffold_service = ScaffoldService(repository, settings, clock)
    billing_service = BillingService(repository, settings, clock)
    import_service = BillingImportService(repository, settings, clock)
    ledger = JobRunLedger(repository, clock)

    app.config["SERVICE_SETTINGS"] = settings
    app.config["REPOSITORY"] = repository
    app.config["SCAFFOLD_SERVICE"] = scaffold_service
    app.config["BOOKING_SERVICE"] = BookingService(repository, settings, clock)
    app.config["BILLING_SERVICE"] = billing_service
    app.config["IMPORT_SERVICE"] = import_service
    app.config["JOB_LEDGER"] = ledger
    app.config["MAINTENANCE_SERVICE"] = MaintenanceService(
        ledger, scaffold_service, billing_service, import_service
    )
    logger.info("Services initialized")

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(SlopeDinnersError)
    def handle_app_error(e: SlopeDinnersError):
        if e.http_status >= 500:
            logger.error(f"{type(e).__name__}: {e}", exc_info=True)
        else:
            logger.info(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({
            "error": e.name.replace(" ", ""),
            "message": e.description,
            "details": {},
        }), e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "details": {},
        }), 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
