# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

"""
Payment Processing API Routes

DESIGN:
- Record payments against invoices (split / partial payments allowed)
- Refund all or part of a payment (negative refund records)
- Payment summary and remaining balance per invoice
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Payment
from ..services import payment_service
from ..validation import ValidationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _internal_error():
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/")
def process_payment_route():
    """
    Record a payment against an invoice.

    Request body:
    {
        "invoice_id": 123,
        "amount_cents": 10000,
        "payment_method": "CASH",
        "transaction_id": "AUTH-12345",  (optional; required for CHECK)
        "notes": "Deposit"               (optional)
    }

    PAYMENT METHODS: CASH, CREDIT_CARD, BANK_TRANSFER, CHECK

    Returns:
        201: Payment created, with the invoice payment summary
        400: Invalid input / invariant violation
        404: Invoice not found
        500: Server error
    """
    try:
        data = request.get_json(silent=True) or {}

        invoice_id = data.get("invoice_id")
        amount_cents = data.get("amount_cents")
        payment_method = data.get("payment_method")

        if invoice_id is None or amount_cents is None or not payment_method:
            return jsonify({
                "error": "invoice_id, amount_cents, and payment_method required",
                "code": "VALIDATION_ERROR",
                "details": {},
            }), 400

        payment = payment_service.process_payment(
            invoice_id=invoice_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            transaction_id=data.get("transaction_id"),
            notes=data.get("notes"),
            user_id=data.get("user_id"),
        )

        summary = payment_service.get_payment_summary(payment.invoice_id)

        return jsonify({
            "payment": payment.to_dict(),
            "summary": summary,
        }), 201

    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return _internal_error()


# =============================================================================
# REFUNDS
# =============================================================================

@payments_bp.post("/<int:payment_id>/refund")
def refund_payment_route(payment_id: int):
    """
    Refund a payment.

    Request body:
    {
        "amount_cents": 5000,      (optional, defaults to full payment)
        "reason": "Returned part"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        refund = payment_service.refund_payment(
            payment_id=payment_id,
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason"),
            user_id=data.get("user_id"),
        )
        summary = payment_service.get_payment_summary(refund.invoice_id)
        return jsonify({"refund": refund.to_dict(), "summary": summary}), 201

    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to refund payment")
        return _internal_error()


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/<int:payment_id>")
def get_payment_route(payment_id: int):
    """Get payment details including refunds recorded against it."""
    payment = db.session.get(Payment, payment_id)

    if not payment:
        return jsonify({"error": "Payment not found", "code": "NOT_FOUND", "details": {}}), 404

    return jsonify({
        "payment": payment.to_dict(),
        "refunds": [r.to_dict() for r in payment.refunds],
        "refunded_cents": payment_service.refunded_total(payment.id),
    }), 200


@payments_bp.get("/invoices/<int:invoice_id>/summary")
def get_payment_summary_route(invoice_id: int):
    """
    Payment summary for an invoice.

    Returns:
    - total_cents / paid_cents / remaining_cents
    - payment_status: UNPAID, PARTIAL, PAID
    - payments: every payment and refund row
    """
    try:
        return jsonify(payment_service.get_payment_summary(invoice_id)), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
