# backend/restaurant_ledger/routes/stock.py
"""
Stock ledger routes: ledger-derived quantity on hand and stock receipts.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_restaurant
from ..extensions import db
from ..services import catalog_service, reconciliation_service, stock_service
from ..services.tenant_service import current_restaurant_id
from ..time_utils import to_utc_z
from ..validation import (
    ValidationError,
    get_json_body,
    optional_datetime,
    optional_int,
    optional_str,
    require_int,
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/<int:product_id>")
@require_restaurant
def get_stock(product_id: int):
    """
    Quantity on hand for a product (optionally as_of a datetime).

    Query params:
        as_of: ISO-8601 datetime (optional)
        movements: "true" to include the movement history
    """
    restaurant_id = current_restaurant_id()

    try:
        product = catalog_service.get_product_by_id(restaurant_id, product_id)
    except catalog_service.CatalogError as e:
        return jsonify({"error": str(e)}), 404

    try:
        as_of = optional_datetime(request.args, "as_of")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    body = {
        "product_id": product.id,
        "sku": product.sku,
        "quantity_on_hand": stock_service.current_quantity(restaurant_id, product.id, as_of=as_of),
        "as_of": to_utc_z(as_of) if as_of else None,
        "reconciliation_state": reconciliation_service.product_state(restaurant_id, product.id),
    }
    if request.args.get("movements", "").lower() == "true":
        body["movements"] = [m.to_dict() for m in stock_service.list_movements(restaurant_id, product.id)]
    return jsonify(body), 200


@stock_bp.route("/<int:product_id>/receive", methods=["POST"])
@require_restaurant
def receive_stock(product_id: int):
    """
    Receive inventory for a product.

    Request body:
    {
        "quantity": int,
        "unit_cost_cents": int (optional, defaults to catalog cost),
        "occurred_at": str (optional),
        "reference": str (optional)
    }

    Returns:
        201: Movement recorded (with its journal entry)
        400: Invalid request
    """
    restaurant_id = current_restaurant_id()

    try:
        data = get_json_body()
        movement = stock_service.receive_stock(
            restaurant_id,
            product_id,
            require_int(data, "quantity", minimum=1),
            unit_cost_cents=optional_int(data, "unit_cost_cents", minimum=0),
            occurred_at=optional_datetime(data, "occurred_at"),
            reference=optional_str(data, "reference", max_length=128),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "quantity_on_hand": stock_service.current_quantity(restaurant_id, product_id),
        }), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except stock_service.StockError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive stock for product %s", product_id)
        return jsonify({"error": "Failed to receive stock"}), 500
