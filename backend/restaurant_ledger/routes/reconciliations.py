# backend/restaurant_ledger/routes/reconciliations.py
"""
Inventory reconciliation (physical count) API routes.

Status codes:
    409: SessionConflict (count already in progress, stale version; retryable)
         InvalidState (operation not allowed from the current state)
    404: Session not found in this restaurant
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_restaurant
from ..extensions import db
from ..services import reconciliation_service
from ..services.ledger_service import BalanceError
from ..services.reconciliation_service import (
    InvalidState,
    ReconciliationError,
    SessionConflict,
    SessionNotFound,
)
from ..services.tenant_service import current_restaurant_id
from ..validation import (
    ValidationError,
    get_json_body,
    optional_datetime,
    optional_int,
    optional_str,
    require_int,
)


reconciliations_bp = Blueprint("reconciliations", __name__, url_prefix="/api/reconciliations")


def _error_response(e: Exception, action: str):
    db.session.rollback()
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, SessionNotFound):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, SessionConflict):
        return jsonify({"error": str(e), "retryable": True}), 409
    if isinstance(e, InvalidState):
        return jsonify({"error": str(e), "retryable": False}), 409
    if isinstance(e, ReconciliationError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, BalanceError):
        return jsonify({"error": str(e)}), 422
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": f"Failed to {action}"}), 500


@reconciliations_bp.route("", methods=["POST"])
@require_restaurant
def start_count():
    """
    Start a count for a product.

    Request body:
    {
        "product_id": int,
        "performed_by": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Session created (COUNTING_IN_PROGRESS)
        409: Count already in progress
    """
    try:
        data = get_json_body()
        session = reconciliation_service.start_count(
            current_restaurant_id(),
            require_int(data, "product_id"),
            performed_by=optional_str(data, "performed_by", max_length=128),
            notes=optional_str(data, "notes"),
        )
        return jsonify(session.to_dict()), 201
    except Exception as e:
        return _error_response(e, "start reconciliation")


@reconciliations_bp.route("/<int:session_id>/count", methods=["POST"])
@require_restaurant
def submit_count(session_id: int):
    """
    Submit the physical count.

    Request body:
    {
        "quantity": int,
        "version": int (optional, optimistic concurrency check),
        "notes": str (optional)
    }
    """
    try:
        data = get_json_body()
        session = reconciliation_service.submit_count(
            session_id,
            require_int(data, "quantity", minimum=0),
            restaurant_id=current_restaurant_id(),
            expected_version=optional_int(data, "version"),
            notes=optional_str(data, "notes"),
        )
        return jsonify(session.to_dict()), 200
    except Exception as e:
        return _error_response(e, "submit count")


@reconciliations_bp.route("/<int:session_id>/recount", methods=["POST"])
@require_restaurant
def recount(session_id: int):
    try:
        data = get_json_body()
        session = reconciliation_service.recount(
            session_id,
            restaurant_id=current_restaurant_id(),
            expected_version=optional_int(data, "version"),
        )
        return jsonify(session.to_dict()), 200
    except Exception as e:
        return _error_response(e, "restart count")


@reconciliations_bp.route("/<int:session_id>/confirm", methods=["POST"])
@require_restaurant
def confirm(session_id: int):
    """
    Confirm a reviewed count and post the variance adjustment.

    Returns:
        200: {"session": ..., "journal_entry_id": int | null}
        409: Not in REVIEW_PENDING, or version conflict
    """
    restaurant_id = current_restaurant_id()
    try:
        data = get_json_body()
        entry_id = reconciliation_service.confirm_reconciliation(
            session_id,
            restaurant_id=restaurant_id,
            expected_version=optional_int(data, "version"),
        )
        session = reconciliation_service.get_session(session_id, restaurant_id=restaurant_id)
        return jsonify({"session": session.to_dict(), "journal_entry_id": entry_id}), 200
    except Exception as e:
        return _error_response(e, "confirm reconciliation")


@reconciliations_bp.route("/<int:session_id>/cancel", methods=["POST"])
@require_restaurant
def cancel(session_id: int):
    try:
        data = get_json_body()
        session = reconciliation_service.cancel_count(
            session_id,
            restaurant_id=current_restaurant_id(),
            expected_version=optional_int(data, "version"),
            reason=optional_str(data, "reason", max_length=255),
        )
        return jsonify(session.to_dict()), 200
    except Exception as e:
        return _error_response(e, "cancel reconciliation")


@reconciliations_bp.get("/<int:session_id>")
@require_restaurant
def get_session(session_id: int):
    try:
        session = reconciliation_service.get_session(session_id, restaurant_id=current_restaurant_id())
    except SessionNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(session.to_dict()), 200


@reconciliations_bp.get("/history")
@require_restaurant
def history():
    """Confirmed and cancelled sessions, newest first (?product_id=&limit=)."""
    try:
        product_id = optional_int(request.args, "product_id")
        limit = optional_int(request.args, "limit", minimum=1) or 100
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    sessions = reconciliation_service.list_history(
        current_restaurant_id(),
        product_id=product_id,
        limit=min(limit, 500),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}), 200


@reconciliations_bp.get("/variance-summary")
@require_restaurant
def variance_summary():
    try:
        start = optional_datetime(request.args, "start")
        end = optional_datetime(request.args, "end")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(reconciliation_service.variance_summary(current_restaurant_id(), start, end)), 200
