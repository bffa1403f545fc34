"""
Configuration for SlopeDinners.

All booking deadlines, billing cutoffs and batch sizes live here so the
services can be driven from .env without code changes. Services never read
Flask config directly; they receive a ServiceSettings built from it.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # Shown in exported billing file names
    COMMUNITY_NAME = os.environ.get("COMMUNITY_NAME", "Skråningen")

    # ==========================================================================
    # Booking deadlines
    # ==========================================================================
    # Dinners start at DINNER_START_HOUR on the event date. Orders can be
    # cancelled (hard delete) until TICKET_CANCELLABLE_DAYS_BEFORE days before
    # that; afterwards a cancellation releases the ticket to other households.
    # Dining mode (dine in / late / takeaway) stays editable until
    # DINING_MODE_EDITABLE_MINUTES_BEFORE minutes before start.
    #
    # Seasons carry their own values; these are the defaults for new seasons.
    # ==========================================================================
    DINNER_START_HOUR = int(os.environ.get("DINNER_START_HOUR", "18"))
    TICKET_CANCELLABLE_DAYS_BEFORE = int(
        os.environ.get("TICKET_CANCELLABLE_DAYS_BEFORE", "8")
    )
    DINING_MODE_EDITABLE_MINUTES_BEFORE = int(
        os.environ.get("DINING_MODE_EDITABLE_MINUTES_BEFORE", "90")
    )
    PREBOOKING_WINDOW_DAYS = int(os.environ.get("PREBOOKING_WINDOW_DAYS", "60"))

    # ==========================================================================
    # Billing
    # ==========================================================================
    # A billing period runs from (BILLING_CUTOFF_DAY + 1) of one month to
    # BILLING_CUTOFF_DAY of the next, e.g. 18/10/2025-17/11/2025.
    # ==========================================================================
    BILLING_CUTOFF_DAY = int(os.environ.get("BILLING_CUTOFF_DAY", "17"))

    # Writes are chunked to keep each round-trip small
    ORDER_BATCH_SIZE = int(os.environ.get("ORDER_BATCH_SIZE", "20"))
    TRANSACTION_BATCH_SIZE = int(os.environ.get("TRANSACTION_BATCH_SIZE", "20"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True


@dataclass(frozen=True)
class ServiceSettings:
    """
    Plain settings object handed to services.

    Keeps services usable outside a Flask app context (tests, scripts).
    """

    community_name: str = "Skråningen"
    dinner_start_hour: int = 18
    ticket_cancellable_days_before: int = 8
    dining_mode_editable_minutes_before: int = 90
    prebooking_window_days: int = 60
    billing_cutoff_day: int = 17
    order_batch_size: int = 20
    transaction_batch_size: int = 20

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "ServiceSettings":
        """Build settings from a Flask config (or any mapping of the same keys)."""
        defaults = cls()
        return cls(
            community_name=config.get("COMMUNITY_NAME", defaults.community_name),
            dinner_start_hour=int(config.get("DINNER_START_HOUR", defaults.dinner_start_hour)),
            ticket_cancellable_days_before=int(config.get(
                "TICKET_CANCELLABLE_DAYS_BEFORE", defaults.ticket_cancellable_days_before
            )),
            dining_mode_editable_minutes_before=int(config.get(
                "DINING_MODE_EDITABLE_MINUTES_BEFORE", defaults.dining_mode_editable_minutes_before
            )),
            prebooking_window_days=int(config.get(
                "PREBOOKING_WINDOW_DAYS", defaults.prebooking_window_days
            )),
            billing_cutoff_day=int(config.get("BILLING_CUTOFF_DAY", defaults.billing_cutoff_day)),
            order_batch_size=int(config.get("ORDER_BATCH_SIZE", defaults.order_batch_size)),
            transaction_batch_size=int(config.get(
                "TRANSACTION_BATCH_SIZE", defaults.transaction_batch_size
            )),
        )
