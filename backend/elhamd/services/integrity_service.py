# Overview: Service-layer finance data-integrity check; finds and optionally repairs drift between stored and derived values.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InventoryItem, Payment
from .concurrency import run_with_retry
from .inventory_service import derive_inventory_status
from .invoice_normalizer import normalized_from_rows


def _issue(kind: str, **fields) -> dict:
    return {"type": kind, **fields}


def _payment_sums() -> dict[int, int]:
    rows = (
        db.session.query(Payment.invoice_id, func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.status == "COMPLETED")
        .group_by(Payment.invoice_id)
        .all()
    )
    return {invoice_id: int(total or 0) for invoice_id, total in rows}


def _check_invoices(fix: bool) -> tuple[list[dict], int]:
    issues: list[dict] = []
    fixed = 0
    paid_by_invoice = _payment_sums()

    for invoice in db.session.query(Invoice).order_by(Invoice.id).all():
        _, totals = normalized_from_rows(invoice.items)
        ref = {"id": invoice.id, "invoice_number": invoice.invoice_number}
        # The header is repaired as a whole, and never below what was paid.
        header_repairable = totals.total_cents >= invoice.paid_cents

        for kind, attr, expected in (
            ("SUBTOTAL_MISMATCH", "subtotal_cents", totals.subtotal_cents),
            ("TAX_MISMATCH", "tax_cents", totals.tax_cents),
            ("TOTAL_MISMATCH", "total_cents", totals.total_cents),
        ):
            actual = getattr(invoice, attr)
            if actual != expected:
                issues.append(_issue(
                    kind,
                    expected=expected,
                    actual=actual,
                    repairable=header_repairable,
                    **ref,
                ))
                if fix and header_repairable:
                    setattr(invoice, attr, expected)
                    fixed += 1

        expected_paid = paid_by_invoice.get(invoice.id, 0)
        if invoice.paid_cents != expected_paid:
            repairable = 0 <= expected_paid <= invoice.total_cents
            issues.append(_issue(
                "PAID_AMOUNT_MISMATCH",
                expected=expected_paid,
                actual=invoice.paid_cents,
                repairable=repairable,
                **ref,
            ))
            if fix and repairable:
                invoice.paid_cents = expected_paid
                fixed += 1

    return issues, fixed


def _check_payments() -> list[dict]:
    issues = []
    for payment in db.session.query(Payment).order_by(Payment.id).all():
        if payment.amount_cents == 0:
            issues.append(_issue("INVALID_AMOUNT", id=payment.id, amount_cents=payment.amount_cents))
        if payment.amount_cents < 0 and payment.refund_of_payment_id is None:
            issues.append(_issue("UNLINKED_REFUND", id=payment.id, amount_cents=payment.amount_cents))
        if payment.status == "COMPLETED" and not payment.transaction_id:
            issues.append(_issue("MISSING_TRANSACTION_ID", id=payment.id))
    return issues


def _check_inventory(fix: bool) -> tuple[list[dict], int]:
    issues: list[dict] = []
    fixed = 0
    for item in db.session.query(InventoryItem).order_by(InventoryItem.id).all():
        expected = derive_inventory_status(item, item.quantity)
        if item.status != expected:
            issues.append(_issue(
                "STATUS_DRIFT",
                id=item.id,
                part_number=item.part_number,
                expected=expected,
                actual=item.status,
            ))
            if fix:
                item.status = expected
                fixed += 1
    return issues, fixed


def run_integrity_check(*, fix: bool = False) -> dict:
    """
    Compare stored invoice totals, paid amounts and inventory statuses with
    the values derived from invoice lines, the payment log and stock levels.

    With fix=True mismatches are repaired in one transaction, except paid
    amounts that would fall outside [0, total] and invoice totals that would
    fall below the amount already paid.
    """
    def _op():
        invoice_issues, invoice_fixed = _check_invoices(fix)
        payment_issues = _check_payments()
        inventory_issues, inventory_fixed = _check_inventory(fix)

        if fix:
            db.session.commit()
        else:
            db.session.rollback()

        result = {
            "invoices": {"issues": invoice_issues, "fixed": invoice_fixed},
            "payments": {"issues": payment_issues, "fixed": 0},
            "inventory": {"issues": inventory_issues, "fixed": inventory_fixed},
        }
        result["total_issues"] = len(invoice_issues) + len(payment_issues) + len(inventory_issues)
        result["total_fixed"] = invoice_fixed + inventory_fixed
        result["healthy"] = result["total_issues"] == 0
        current_app.logger.info(
            "Integrity check: %s issues, %s fixed", result["total_issues"], result["total_fixed"]
        )
        return result

    return run_with_retry(_op)
