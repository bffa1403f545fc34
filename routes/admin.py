"""
Admin routes.

Season maintenance, scheduled jobs and billing views. These endpoints are
for admin/system callers; a request carrying X-Household-Id is refused.

Handles:
- POST /api/admin/season/<id>/scaffold-prebookings   - Scaffold a season (tracked)
- PUT  /api/admin/season/<id>/ticket-prices          - Replace price list, re-price orders
- POST /api/admin/maintenance/daily                  - Close, bill, scaffold (tracked)
- POST /api/admin/maintenance/monthly                - Generate invoices (tracked)
- POST /api/admin/billing/import                     - Import legacy billing CSV (tracked)
- GET  /api/admin/billing/periods/<id>               - Period summary + statistics
- GET  /api/admin/billing/periods/<id>/csv           - PBS export
- GET  /api/admin/billing/invoices/<id>              - Invoice with its transactions
"""

from flask import Blueprint, Response, jsonify, request

from core.exceptions import ForbiddenError, ValidationError
from models.dinner import TicketPrice
from routes.common import acting_household_id, get_service, json_body
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.before_request
def require_admin():
    household_id = acting_household_id()
    if household_id is not None:
        raise ForbiddenError("Admin endpoints are not available to households", household_id=household_id)


def _triggered_by() -> str:
    return request.headers.get("X-Triggered-By") or "ADMIN"


# =============================================================================
# Seasons
# =============================================================================

@admin_bp.route("/season/<int:season_id>/scaffold-prebookings", methods=["POST"])
def scaffold_prebookings(season_id: int):
    run, result = get_service("MAINTENANCE_SERVICE").run_scaffold(season_id, _triggered_by())
    return jsonify({"jobRun": run.to_dict(), "result": result.to_dict()})


@admin_bp.route("/season/<int:season_id>/ticket-prices", methods=["PUT"])
def replace_ticket_prices(season_id: int):
    """
    Replace a season's ticket prices.

    Body: {"ticketPrices": [{"ticketType": "ADULT", "price": 4000, ...}, ...]}
    Rows without an id (or with an id of another season) are created.
    """
    data = json_body()
    rows = data.get("ticketPrices")
    if not isinstance(rows, list):
        raise ValidationError("ticketPrices must be a list", field_errors={"ticketPrices": ["Required"]})

    prices = []
    for index, row in enumerate(rows):
        try:
            prices.append(TicketPrice.from_dict({**row, "seasonId": season_id}))
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid ticket price at index {index}",
                field_errors={f"ticketPrices[{index}]": [str(e)]},
            )

    stored, result = get_service("SCAFFOLD_SERVICE").update_ticket_prices(season_id, prices)
    return jsonify({
        "ticketPrices": [price.to_dict() for price in stored],
        "scaffoldResult": result.to_dict(),
    })


# =============================================================================
# Maintenance
# =============================================================================

@admin_bp.route("/maintenance/daily", methods=["POST"])
def daily_maintenance():
    run, result = get_service("MAINTENANCE_SERVICE").run_daily_maintenance(_triggered_by())
    return jsonify({"jobRun": run.to_dict(), "result": result.to_dict()})


@admin_bp.route("/maintenance/monthly", methods=["POST"])
def monthly_billing():
    run, result = get_service("MAINTENANCE_SERVICE").run_monthly_billing(_triggered_by())
    return jsonify({"jobRun": run.to_dict(), "result": result.to_dict()})


# =============================================================================
# Billing
# =============================================================================

@admin_bp.route("/billing/import", methods=["POST"])
def billing_import():
    """
    Import a legacy billing sheet.

    Accepts a multipart upload (field "file"), a JSON body
    {"csv": "...", "seasonId": 1}, or the CSV as the raw request body.
    """
    season_id = request.args.get("seasonId", type=int)
    upload = request.files.get("file")
    if upload is not None:
        content = upload.read().decode("utf-8-sig")
    elif request.is_json:
        data = json_body()
        content = data.get("csv")
        season_id = data.get("seasonId", season_id)
        if not isinstance(content, str):
            raise ValidationError("csv must be a string", field_errors={"csv": ["Required"]})
    else:
        content = request.get_data(as_text=True)

    run, result = get_service("MAINTENANCE_SERVICE").run_billing_import(
        content, season_id, _triggered_by()
    )
    return jsonify({"jobRun": run.to_dict(), "result": result.to_dict()})


@admin_bp.route("/billing/periods/<int:summary_id>", methods=["GET"])
def billing_period(summary_id: int):
    summary, stats = get_service("BILLING_SERVICE").period_stats(summary_id)
    return jsonify({"summary": summary.to_dict(), "stats": stats.to_dict()})


@admin_bp.route("/billing/periods/<int:summary_id>/csv", methods=["GET"])
def billing_period_csv(summary_id: int):
    filename, content = get_service("BILLING_SERVICE").export_csv(summary_id)
    logger.info(f"Exporting billing period {summary_id} as {filename}")
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@admin_bp.route("/billing/invoices/<int:invoice_id>", methods=["GET"])
def invoice(invoice_id: int):
    found, views = get_service("BILLING_SERVICE").invoice_transactions(invoice_id)
    return jsonify({
        "invoice": found.to_dict(),
        "transactions": [view.to_dict() for view in views],
    })
