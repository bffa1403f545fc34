"""
Flask route blueprints for SlopeDinners.

This module contains all route handlers organized by functionality:
- api: Health check and job run listing
- household: Preferences, birth dates, bookings, claims (household scoped)
- admin: Season scaffolding, ticket prices, maintenance jobs, billing

Each blueprint is registered with the Flask app in create_app().
"""

from .api import api_bp
from .household import household_bp
from .admin import admin_bp

__all__ = [
    "api_bp",
    "household_bp",
    "admin_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api_bp)
    app.register_blueprint(household_bp)
    app.register_blueprint(admin_bp)
