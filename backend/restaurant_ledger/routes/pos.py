# backend/restaurant_ledger/routes/pos.py
"""
POS feed intake.

The feed delivers at-least-once; a repeated external_id returns the original
transaction with outcome DUPLICATE and status 200 instead of 201.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_restaurant
from ..extensions import db
from ..services import revenue_service
from ..services.tenant_service import current_restaurant_id
from ..validation import (
    ValidationError,
    get_json_body,
    optional_datetime,
    require_cents,
    require_int,
)


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _parse_items(data: dict) -> list[dict]:
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        items.append({
            "product_id": require_int(raw, "product_id"),
            "quantity": require_int(raw, "quantity", minimum=1),
        })
    return items


@pos_bp.route("/transactions", methods=["POST"])
@require_restaurant
def ingest_transaction():
    """
    Ingest one completed POS transaction.

    Request body:
    {
        "external_id": str,
        "gross_cents": int,
        "tax_cents": int (optional),
        "tip_cents": int (optional),
        "occurred_at": str (optional, ISO-8601),
        "items": [{"product_id": int, "quantity": int}] (optional)
    }

    Returns:
        201: Transaction posted
        200: Duplicate delivery (nothing posted)
        400: Invalid request
    """
    restaurant_id = current_restaurant_id()

    try:
        data = get_json_body()
        external_id = data.get("external_id")
        if external_id is None or not str(external_id).strip():
            raise ValidationError("Missing required field: external_id")

        result = revenue_service.ingest_pos_transaction(
            restaurant_id,
            external_id=str(external_id),
            gross_cents=require_cents(data, "gross_cents"),
            tax_cents=require_cents(data, "tax_cents", default=0),
            tip_cents=require_cents(data, "tip_cents", default=0),
            occurred_at=optional_datetime(data, "occurred_at"),
            items=_parse_items(data),
        )

        body = result.transaction.to_dict()
        body["outcome"] = result.outcome
        return jsonify(body), (200 if result.duplicate else 201)

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except revenue_service.RevenueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to ingest POS transaction")
        return jsonify({"error": "Failed to ingest POS transaction"}), 500


@pos_bp.get("/transactions")
@require_restaurant
def list_transactions():
    try:
        start = optional_datetime(request.args, "start")
        end = optional_datetime(request.args, "end")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    txns = revenue_service.list_transactions(current_restaurant_id(), start=start, end=end)
    return jsonify({"transactions": [t.to_dict() for t in txns], "count": len(txns)}), 200
