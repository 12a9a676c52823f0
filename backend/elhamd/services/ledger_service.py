# Overview: Service-layer operations for the accounting ledger; encapsulates business logic and database work.

from __future__ import annotations

import uuid
from datetime import datetime

from ..extensions import db
from ..models import Invoice, Transaction
from ..validation import ValidationError
from elhamd.time_utils import coerce_datetime
from .concurrency import run_with_retry
"""
Ledger invariants (authoritative)

- reference_id is unique; writes keyed by it are upserts, never duplicates.
- An invoice owns at most one row, reference_id "SALE-<invoice id>".
- The invoice row's category follows the invoice: SALES once PAID,
  SALES_PIPELINE before that. Releasing an invoice leaves its row alone.
- Upserts are written in the caller's transaction and never commit;
  create_entry() is the only committing entry point (manual income/expense).
"""

TYPE_INCOME = "INCOME"
TYPE_EXPENSE = "EXPENSE"
VALID_TYPES = [TYPE_INCOME, TYPE_EXPENSE]

CATEGORY_SALES = "SALES"
CATEGORY_SALES_PIPELINE = "SALES_PIPELINE"

SOURCE_INVOICE = "INVOICE"


def sale_reference_id(invoice_id: int) -> str:
    return f"SALE-{invoice_id}"


def upsert_transaction(*, reference_id: str, create: dict, update: dict) -> Transaction:
    """
    Insert-or-update a ledger row by reference_id.

    `create` holds the full column set for a new row; `update` the columns
    that are refreshed when the row already exists.
    """
    row = db.session.query(Transaction).filter_by(reference_id=reference_id).first()
    if row is None:
        row = Transaction(reference_id=reference_id, **create)
        db.session.add(row)
    else:
        for key, value in update.items():
            setattr(row, key, value)
    db.session.flush()
    return row


def upsert_sale_entry(*, invoice: Invoice, amount_cents: int, now_iso: str) -> Transaction:
    category = CATEGORY_SALES if invoice.status == "PAID" else CATEGORY_SALES_PIPELINE
    description = f"Invoice sale {invoice.invoice_number}"
    return upsert_transaction(
        reference_id=sale_reference_id(invoice.id),
        create={
            "type": TYPE_INCOME,
            "category": category,
            "amount_cents": amount_cents,
            "currency": invoice.currency,
            "description": description,
            "date": invoice.issue_date,
            "payment_method": "CASH",
            "branch_id": invoice.branch_id,
            "customer_id": invoice.customer_id,
            "invoice_id": invoice.id,
            "meta": {
                "source": SOURCE_INVOICE,
                "invoiceStatus": invoice.status,
                "createdAt": now_iso,
            },
        },
        update={
            "category": category,
            "amount_cents": amount_cents,
            "currency": invoice.currency,
            "description": description,
            "date": invoice.issue_date,
            "meta": {
                "source": SOURCE_INVOICE,
                "invoiceStatus": invoice.status,
                "invoiceId": invoice.id,
                "updatedAt": now_iso,
            },
        },
    )


def record_entry(
    *,
    reference_id: str,
    type: str,
    category: str,
    amount_cents: int,
    date: datetime | str,
    currency: str = "EGP",
    description: str | None = None,
    payment_method: str | None = None,
    branch_id: int | None = None,
    customer_id: int | None = None,
    metadata: dict | None = None,
) -> Transaction:
    """Manual ledger entry (expenses, other income), idempotent on reference_id."""
    if type not in VALID_TYPES:
        raise ValidationError(f"Invalid transaction type: {type}. Must be one of {VALID_TYPES}")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents < 0:
        raise ValidationError("amount_cents must be a non-negative integer")
    if not category:
        raise ValidationError("category is required")
    try:
        entry_date = coerce_datetime(date)
    except ValueError:
        raise ValidationError("date must be an ISO-8601 datetime", details={"field": "date"})
    if entry_date is None:
        raise ValidationError("date is required", details={"field": "date"})

    values = {
        "type": type,
        "category": category,
        "amount_cents": amount_cents,
        "currency": currency,
        "description": description,
        "date": entry_date,
        "payment_method": payment_method,
        "branch_id": branch_id,
        "customer_id": customer_id,
        "meta": metadata or {},
    }
    return upsert_transaction(reference_id=reference_id, create=values, update=values)


def new_reference_id(type: str) -> str:
    prefix = "INC" if type == TYPE_INCOME else "EXP"
    return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"


def create_entry(*, reference_id: str | None = None, **fields) -> Transaction:
    """Record a manual ledger entry and commit it."""
    if reference_id and reference_id.startswith("SALE-"):
        raise ValidationError(
            "SALE- references are reserved for invoice entries",
            details={"reference_id": reference_id},
        )

    def _op():
        row = record_entry(
            reference_id=reference_id or new_reference_id(fields.get("type")),
            **fields,
        )
        db.session.commit()
        return row

    return run_with_retry(_op)


def list_entries(
    *,
    type: str | None = None,
    category: str | None = None,
    branch_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if type:
        query = query.filter(Transaction.type == type)
    if category:
        query = query.filter(Transaction.category == category)
    if branch_id is not None:
        query = query.filter(Transaction.branch_id == branch_id)
    if start is not None:
        query = query.filter(Transaction.date >= start)
    if end is not None:
        query = query.filter(Transaction.date <= end)
    return query.order_by(Transaction.date.desc(), Transaction.id.desc()).limit(limit).all()
