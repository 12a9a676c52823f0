# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Processing Service

WHY: Record what customers pay against invoices and give money back,
without ever letting an invoice's paid amount leave [0, total].

DESIGN PRINCIPLES:
- Every check runs before the first write; a rejected request changes nothing
- Payments are append-only: a refund is a new negative row that points at
  the payment it refunds, the original row is never edited
- The invoice row is locked for the whole operation; the database check
  constraint on paid_cents is the last line of defence
- Payments move money only: invoice status changes go through the invoice
  lifecycle service
"""

from __future__ import annotations

import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, Payment
from ..validation import ValidationError, NotFoundError
from elhamd.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class PaymentError(ValidationError):
    """Raised for payment operation errors."""
    pass


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CREDIT_CARD = "CREDIT_CARD"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CHECK = "CHECK"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CREDIT_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
]


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_COMPLETED = "COMPLETED"

PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"

NON_PAYABLE_INVOICE_STATUSES = {"CANCELLED", "REFUNDED"}


# =============================================================================
# METHOD HANDLERS
# =============================================================================
# Each handler confirms the payment with its channel and returns the
# transaction reference stored on the Payment. This is where a card gateway
# or bank API plugs in.

def _reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _handle_cash(*, invoice: Invoice, amount_cents: int, reference: str | None) -> str:
    return reference or _reference("CASH")


def _handle_credit_card(*, invoice: Invoice, amount_cents: int, reference: str | None) -> str:
    return reference or _reference("CARD")


def _handle_bank_transfer(*, invoice: Invoice, amount_cents: int, reference: str | None) -> str:
    return reference or _reference("BANK")


def _handle_check(*, invoice: Invoice, amount_cents: int, reference: str | None) -> str:
    # Cheques are identified by the cheque number the customer wrote.
    if not reference:
        raise PaymentError(
            "transaction_id (cheque number) is required for CHECK payments",
            details={"payment_method": METHOD_CHECK},
        )
    return reference


PAYMENT_HANDLERS = {
    METHOD_CASH: _handle_cash,
    METHOD_CREDIT_CARD: _handle_credit_card,
    METHOD_BANK_TRANSFER: _handle_bank_transfer,
    METHOD_CHECK: _handle_check,
}


def _require_int_amount(amount_cents) -> int:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise PaymentError(
            "amount_cents must be an integer",
            code="INVALID_AMOUNT",
            details={"amount_cents": amount_cents},
        )
    return amount_cents


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def process_payment(
    *,
    invoice_id: int,
    amount_cents: int,
    payment_method: str,
    transaction_id: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Payment:
    """
    Record a customer payment against an invoice.

    Validation order: method, invoice exists, invoice payable, amount > 0,
    paid + amount <= total. Then the method handler confirms the payment,
    a COMPLETED Payment is stored and the invoice's paid amount grows.

    Raises:
        PaymentError / NotFoundError with codes INVALID_METHOD, NOT_FOUND,
        INVALID_STATUS, INVALID_AMOUNT, EXCEEDS_TOTAL
    """
    if payment_method not in PAYMENT_HANDLERS:
        raise PaymentError(
            f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}",
            code="INVALID_METHOD",
            details={"payment_method": payment_method},
        )

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})

        if invoice.status in NON_PAYABLE_INVOICE_STATUSES:
            raise PaymentError(
                f"Cannot add payment to a {invoice.status} invoice",
                code="INVALID_STATUS",
                details={"status": invoice.status},
            )

        amount = _require_int_amount(amount_cents)
        if amount <= 0:
            raise PaymentError(
                "Payment amount must be positive",
                code="INVALID_AMOUNT",
                details={"amount_cents": amount},
            )

        if invoice.paid_cents + amount > invoice.total_cents:
            raise PaymentError(
                "Payment exceeds invoice total",
                code="EXCEEDS_TOTAL",
                details={
                    "total_cents": invoice.total_cents,
                    "paid_cents": invoice.paid_cents,
                    "remaining_cents": invoice.total_cents - invoice.paid_cents,
                    "amount_cents": amount,
                },
            )

        reference = PAYMENT_HANDLERS[payment_method](
            invoice=invoice,
            amount_cents=amount,
            reference=transaction_id,
        )

        now = utcnow()
        payment = Payment(
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            amount_cents=amount,
            payment_method=payment_method,
            transaction_id=reference,
            status=PAYMENT_COMPLETED,
            notes=notes,
            created_by_user_id=user_id,
            created_at=now,
        )
        db.session.add(payment)

        invoice.paid_cents = invoice.paid_cents + amount
        invoice.paid_at = now

        db.session.commit()
        current_app.logger.info(
            "Recorded %s payment of %s on invoice %s",
            payment_method,
            amount,
            invoice.invoice_number,
        )
        return payment

    return run_with_retry(_op)


# =============================================================================
# REFUNDS
# =============================================================================

def refunded_total(payment_id: int) -> int:
    """Sum already refunded against a payment, as a positive number."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.refund_of_payment_id == payment_id)
        .scalar()
    )
    return -int(total or 0)


def refund_payment(
    *,
    payment_id: int,
    amount_cents: int | None = None,
    reason: str | None = None,
    user_id: int | None = None,
) -> Payment:
    """
    Refund all or part of a completed payment.

    The refund is stored as a negative Payment linked to the original; the
    invoice's paid amount shrinks by the refunded amount. Refunds against
    one payment can never add up to more than the payment itself.
    """
    def _op():
        original = db.session.query(Payment).filter_by(id=payment_id).first()
        if not original:
            raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})

        if original.status != PAYMENT_COMPLETED or original.amount_cents <= 0:
            raise PaymentError(
                f"Payment {payment_id} cannot be refunded",
                code="NOT_REFUNDABLE",
                details={"status": original.status, "amount_cents": original.amount_cents},
            )

        amount = original.amount_cents if amount_cents is None else _require_int_amount(amount_cents)
        if amount <= 0:
            raise PaymentError(
                "Refund amount must be positive",
                code="INVALID_AMOUNT",
                details={"amount_cents": amount},
            )
        if amount > original.amount_cents:
            raise PaymentError(
                "Refund exceeds original payment amount",
                code="EXCEEDS_ORIGINAL",
                details={"amount_cents": amount, "original_amount_cents": original.amount_cents},
            )

        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=original.invoice_id)).first()
        if not invoice:
            raise NotFoundError(
                f"Invoice {original.invoice_id} not found",
                details={"invoice_id": original.invoice_id},
            )

        already = refunded_total(original.id)
        if amount > original.amount_cents - already:
            raise PaymentError(
                "Refund exceeds the amount still refundable on this payment",
                code="EXCEEDS_ORIGINAL",
                details={
                    "amount_cents": amount,
                    "original_amount_cents": original.amount_cents,
                    "refunded_cents": already,
                },
            )
        if amount > invoice.paid_cents:
            raise PaymentError(
                "Refund exceeds invoice paid amount",
                code="EXCEEDS_ORIGINAL",
                details={"amount_cents": amount, "paid_cents": invoice.paid_cents},
            )

        refund = Payment(
            invoice_id=original.invoice_id,
            customer_id=original.customer_id,
            amount_cents=-amount,
            payment_method=original.payment_method,
            transaction_id=_reference("REFUND"),
            status=PAYMENT_COMPLETED,
            refund_of_payment_id=original.id,
            notes=reason,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(refund)

        invoice.paid_cents = invoice.paid_cents - amount
        if invoice.paid_cents == 0:
            invoice.paid_at = None

        db.session.commit()
        current_app.logger.info(
            "Refunded %s of payment %s on invoice %s",
            amount,
            original.id,
            invoice.invoice_number,
        )
        return refund

    return run_with_retry(_op)


# =============================================================================
# REPORTING
# =============================================================================

def get_invoice_payments(invoice_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(invoice_id=invoice_id)
        .order_by(Payment.created_at, Payment.id)
        .all()
    )


def get_payment_summary(invoice_id: int) -> dict:
    """
    Payment summary for an invoice.

    PAYMENT STATUS:
    - UNPAID: paid = 0
    - PARTIAL: 0 < paid < total
    - PAID: paid = total
    """
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})

    paid = invoice.paid_cents or 0
    total = invoice.total_cents or 0
    if paid <= 0:
        status = PAYMENT_STATUS_UNPAID
    elif paid < total:
        status = PAYMENT_STATUS_PARTIAL
    else:
        status = PAYMENT_STATUS_PAID

    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "total_cents": total,
        "paid_cents": paid,
        "remaining_cents": total - paid,
        "payment_status": status,
        "payments": [p.to_dict() for p in get_invoice_payments(invoice.id)],
    }


def get_payment_method_summary(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: int | None = None,
) -> list[dict]:
    """Count and net amount per payment method (refunds net out)."""
    query = (
        db.session.query(
            Payment.payment_method.label("payment_method"),
            func.count(Payment.id).label("count"),
            func.coalesce(func.sum(Payment.amount_cents), 0).label("net_cents"),
        )
        .filter(Payment.status == PAYMENT_COMPLETED)
    )
    if start is not None:
        query = query.filter(Payment.created_at >= start)
    if end is not None:
        query = query.filter(Payment.created_at <= end)
    if branch_id is not None:
        query = query.join(Invoice, Invoice.id == Payment.invoice_id).filter(Invoice.branch_id == branch_id)

    rows = query.group_by(Payment.payment_method).order_by(Payment.payment_method).all()
    return [
        {
            "payment_method": row.payment_method,
            "count": int(row.count or 0),
            "net_cents": int(row.net_cents or 0),
        }
        for row in rows
    ]
