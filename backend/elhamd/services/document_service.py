# Overview: Service-layer operations for document numbering; allocates human-readable invoice numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


INVOICE_DOCUMENT_TYPE = "INVOICE"
INVOICE_PREFIX = "INV"


def _current_number(branch_key: int, document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_key, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    branch_id: int | None,
    document_type: str,
    prefix: str,
    pad: int = 5,
) -> str:
    """
    Allocate the next document number for a branch/type inside the caller's
    transaction.

    The counter row is bumped with a single UPDATE so concurrent writers
    serialize on it; the first allocation inserts the row. Invoices without
    a branch share sequence 0.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    branch_key = branch_id or 0

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_key,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_number(branch_key, document_type)
    else:
        seq = DocumentSequence(branch_id=branch_key, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the row first.
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            db.session.flush()
            next_num = _current_number(branch_key, document_type)

    return f"{prefix}-{branch_key:03d}-{next_num:0{pad}d}"


def next_invoice_number(branch_id: int | None) -> str:
    return next_document_number(
        branch_id=branch_id,
        document_type=INVOICE_DOCUMENT_TYPE,
        prefix=INVOICE_PREFIX,
    )
