# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import ledger_service
from elhamd.time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_int

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filtering is inclusive.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/transactions")
def list_transactions_route():
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    try:
        start_dt = parse_iso_datetime(request.args.get("start"))
        end_dt = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({
            "error": "start and end must be ISO-8601 datetimes",
            "code": "VALIDATION_ERROR",
            "details": {},
        }), 400

    rows = ledger_service.list_entries(
        type=request.args.get("type"),
        category=request.args.get("category"),
        branch_id=request.args.get("branch_id", type=int),
        start=start_dt,
        end=end_dt,
        limit=limit,
    )
    return jsonify({"transactions": [row.to_dict() for row in rows]}), 200


@ledger_bp.post("/transactions")
def create_transaction_route():
    """
    Record a manual income or expense entry.

    Request body:
    {
        "type": "EXPENSE",
        "category": "RENT",
        "amount_cents": 2500000,
        "date": "2026-03-01",
        "reference_id": "EXP-2026-03-RENT",   (optional, idempotency key)
        "description": "Showroom rent",       (optional)
        "payment_method": "BANK_TRANSFER",    (optional)
        "branch_id": 1                        (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("type", "category", "amount_cents", "date") if data.get(f) is None]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

        row = ledger_service.create_entry(
            reference_id=data.get("reference_id"),
            type=data["type"],
            category=data["category"],
            amount_cents=parse_int(data["amount_cents"], "amount_cents"),
            date=data["date"],
            currency=data.get("currency") or current_app.config.get("DEFAULT_CURRENCY", "EGP"),
            description=data.get("description"),
            payment_method=data.get("payment_method"),
            branch_id=data.get("branch_id"),
            customer_id=data.get("customer_id"),
            metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else None,
        )
        return jsonify({"transaction": row.to_dict()}), 201
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to record ledger transaction")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500
