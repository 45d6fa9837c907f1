# backend/restaurant_ledger/routes/journal.py
"""
Journal API routes: manual postings, reversals and line queries.

Entries are immutable once posted; corrections go through /reverse.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_restaurant
from ..extensions import db
from ..services import ledger_service
from ..services.tenant_service import current_restaurant_id
from ..validation import (
    ValidationError,
    coerce_int,
    get_json_body,
    optional_datetime,
    optional_str,
)


journal_bp = Blueprint("journal", __name__, url_prefix="/api/journal-entries")


def _parse_lines(data: dict) -> list[dict]:
    raw_lines = data.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")

    lines = []
    for idx, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{idx}] must be an object")
        line = {
            "side": raw.get("side"),
            "amount_cents": coerce_int(raw.get("amount_cents"), f"lines[{idx}].amount_cents"),
        }
        if raw.get("account_id") is not None:
            line["account_id"] = coerce_int(raw["account_id"], f"lines[{idx}].account_id")
        elif raw.get("account_code"):
            line["account_code"] = str(raw["account_code"])
        elif raw.get("role"):
            line["role"] = str(raw["role"])
        lines.append(line)
    return lines


@journal_bp.route("", methods=["POST"])
@require_restaurant
def post_manual_entry():
    """
    Post a manual journal entry (COGS, expenses, corrections).

    Request body:
    {
        "lines": [{"account_id" | "account_code" | "role", "side", "amount_cents"}],
        "occurred_at": str (optional, ISO-8601),
        "reference": str (optional),
        "memo": str (optional)
    }

    Returns:
        201: Entry posted
        400: Invalid request
        422: Debits and credits do not balance
    """
    restaurant_id = current_restaurant_id()

    try:
        data = get_json_body()
        entry = ledger_service.post_manual_entry(
            restaurant_id,
            _parse_lines(data),
            occurred_at=optional_datetime(data, "occurred_at"),
            reference=optional_str(data, "reference", max_length=128),
            memo=optional_str(data, "memo", max_length=255),
        )
        return jsonify(entry.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ledger_service.BalanceError as e:
        db.session.rollback()
        return jsonify({
            "error": str(e),
            "debits_cents": e.debits_cents,
            "credits_cents": e.credits_cents,
        }), 422
    except ledger_service.LedgerError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to post journal entry")
        return jsonify({"error": "Failed to post journal entry"}), 500


@journal_bp.route("/<int:entry_id>/reverse", methods=["POST"])
@require_restaurant
def reverse_entry(entry_id: int):
    """
    Post a reversing entry for entry_id.

    Returns:
        201: Reversal posted
        400: Entry cannot be reversed (inventory entry, already reversed)
        404: Entry not found
    """
    restaurant_id = current_restaurant_id()

    try:
        data = get_json_body()
        ledger_service.get_entry(restaurant_id, entry_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ledger_service.LedgerError as e:
        return jsonify({"error": str(e)}), 404

    try:
        reversal = ledger_service.reverse_entry(
            restaurant_id,
            entry_id,
            occurred_at=optional_datetime(data, "occurred_at"),
            memo=optional_str(data, "memo", max_length=255),
        )
        return jsonify(reversal.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ledger_service.LedgerError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reverse journal entry %s", entry_id)
        return jsonify({"error": "Failed to reverse journal entry"}), 500


@journal_bp.get("/lines")
@require_restaurant
def list_lines():
    """
    Read-only line query.

    Query params: account_id (repeatable), account_type (repeatable), start, end.
    """
    restaurant_id = current_restaurant_id()

    try:
        account_ids = [coerce_int(v, "account_id") for v in request.args.getlist("account_id")]
        account_types = request.args.getlist("account_type")
        start = optional_datetime(request.args, "start")
        end = optional_datetime(request.args, "end")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    lines = ledger_service.query_lines(
        restaurant_id,
        account_ids=account_ids or None,
        account_types=account_types or None,
        start=start,
        end=end,
    )
    return jsonify({"lines": [line.to_dict() for line in lines], "count": len(lines)}), 200


@journal_bp.get("/trial-balance")
@require_restaurant
def trial_balance():
    return jsonify(ledger_service.trial_balance_totals(current_restaurant_id())), 200
