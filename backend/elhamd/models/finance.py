from __future__ import annotations

from ..extensions import db
from elhamd.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Accounting ledger entry.

    reference_id is the external idempotency key. Invoice-driven rows use
    "SALE-<invoice id>" and are upserted, so an invoice has at most one row.

    TYPES: INCOME, EXPENSE
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.Index("ix_ledger_transactions_type_date", "type", "date"),
        db.Index("ix_ledger_transactions_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    type = db.Column(db.String(16), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="EGP")
    description = db.Column(db.String(500), nullable=True)

    # Business date (reporting buckets on this, not created_at)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)

    meta = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_id": self.reference_id,
            "type": self.type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "description": self.description,
            "date": to_utc_z(self.date),
            "payment_method": self.payment_method,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "invoice_id": self.invoice_id,
            "metadata": self.meta or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """
    Customer payment against an invoice.

    Append-only. A refund is its own row with a negative amount pointing at
    the original through refund_of_payment_id; the original is never edited.

    METHODS: CASH, CREDIT_CARD, BANK_TRANSFER, CHECK
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Negative for refunds
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    # Gateway / bank / cheque reference
    transaction_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    refund_of_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    refund_of = db.relationship("Payment", remote_side=[id], backref=db.backref("refunds", lazy=True))

    @property
    def is_refund(self) -> bool:
        return self.refund_of_payment_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "refund_of_payment_id": self.refund_of_payment_id,
            "is_refund": self.is_refund,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
