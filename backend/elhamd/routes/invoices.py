# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

"""
Invoice API Routes

DESIGN:
- Create / edit / delete invoices with their lines
- Status changes drive the fulfillment engine (stock, vehicles, ledger)
- All business rules live in invoice_service; routes only translate
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import invoice_service
from ..validation import ValidationError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _internal_error():
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500


@invoices_bp.post("/")
def create_invoice_route():
    """
    Create an invoice.

    Request body:
    {
        "customer_id": 1,
        "branch_id": 1,                  (optional)
        "invoice_type": "SALE",
        "status": "DRAFT",               (DRAFT or SENT)
        "items": [
            {"description": "Oil filter", "quantity": 2, "unit_price_cents": 15000,
             "tax_rate": 14, "metadata": {"itemType": "PART", "inventoryItemId": 3}}
        ]
    }

    Returns:
        201: Invoice with lines
        400: Invalid input
        404: Customer / branch not found
    """
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.pop("user_id", None)
        invoice = invoice_service.create_invoice(data, user_id=user_id)
        return jsonify({"invoice": invoice.to_dict()}), 201
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return _internal_error()


@invoices_bp.get("/")
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(
            status=request.args.get("status"),
            branch_id=request.args.get("branch_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"invoices": [inv.to_dict(include_items=False) for inv in invoices]}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@invoices_bp.put("/<int:invoice_id>")
def update_invoice_route(invoice_id: int):
    """
    Edit header fields and/or replace all lines.

    Only DRAFT, SENT, PARTIALLY_PAID and OVERDUE invoices can be edited.
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_invoice(invoice_id, data)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return _internal_error()


@invoices_bp.put("/<int:invoice_id>/status")
def change_invoice_status_route(invoice_id: int):
    """
    Change invoice status.

    Request body:
    {
        "status": "SENT",
        "notes": "Sent by e-mail",   (optional)
        "user_id": 7                 (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status is required", "code": "VALIDATION_ERROR", "details": {}}), 400

        invoice = invoice_service.change_invoice_status(
            invoice_id,
            status,
            notes=data.get("notes"),
            user_id=data.get("user_id"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to change invoice status")
        return _internal_error()


@invoices_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(invoice_id)
        return jsonify({"deleted": True, "invoice_id": invoice_id}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return _internal_error()
