# backend/restaurant_ledger/routes/statements.py
"""
Income statement endpoint (read-only, computed on every request).
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_restaurant
from ..extensions import db
from ..services import statement_service
from ..services.tenant_service import current_restaurant_id


statements_bp = Blueprint("statements", __name__, url_prefix="/api/statements")


@statements_bp.get("/income")
@require_restaurant
def income_statement():
    """
    Compile the income statement.

    Query params:
        start: ISO-8601 datetime (optional, inclusive)
        end: ISO-8601 datetime (optional, inclusive)

    Returns:
        200: Statement
        400: Invalid period
        500: Storage failure ("Unable to load statement, try again.")
    """
    restaurant_id = current_restaurant_id()

    try:
        statement = statement_service.compile_income_statement(
            restaurant_id,
            start=request.args.get("start") or None,
            end=request.args.get("end") or None,
        )
        return jsonify(statement), 200

    except statement_service.StatementError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to compile income statement for restaurant %s", restaurant_id)
        return jsonify({"error": "Unable to load statement, try again."}), 500
