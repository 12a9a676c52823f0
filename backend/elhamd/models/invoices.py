from __future__ import annotations

from ..extensions import db
from elhamd.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Customer invoice header.

    LIFECYCLE: DRAFT -> SENT -> PARTIALLY_PAID / OVERDUE -> PAID -> REFUNDED
    (CANCELLED reachable from any unpaid state, and back to DRAFT).

    MONEY (all amounts in cents):
    - total_cents == subtotal_cents + tax_cents
    - 0 <= paid_cents <= total_cents, enforced by a check constraint as well
      as by the payment processor

    metadata is the fulfillment audit trail (saleStatus, inventoryAdjusted,
    inventoryRestored, statusChange* ...). Always reassign a new dict when
    changing it so the JSON column is flagged dirty.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint(
            "paid_cents >= 0 AND paid_cents <= total_cents",
            name="ck_invoices_paid_within_total",
        ),
        db.Index("ix_invoices_branch_status_issue", "branch_id", "status", "issue_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    invoice_type = db.Column(db.String(16), nullable=False, default="SERVICE")
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    currency = db.Column(db.String(3), nullable=False, default="EGP")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    # Business dates
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Status timestamps (first entry only)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_cents(self) -> int:
        return (self.total_cents or 0) - (self.paid_cents or 0)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "invoice_type": self.invoice_type,
            "status": self.status,
            "currency": self.currency,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "issue_date": to_utc_z(self.issue_date),
            "due_date": to_utc_z(self.due_date),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "notes": self.notes,
            "metadata": self.meta or {},
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """
    Invoice line.

    metadata may carry the line classification (itemType / type / category)
    and the referenced stock entity (inventoryItemId / vehicleId).
    Lines are replaced as a whole when the invoice is edited.
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Percent, e.g. 14.00
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    meta = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "description": self.description,
            "quantity": float(self.quantity) if self.quantity is not None else 0.0,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else 0.0,
            "tax_cents": self.tax_cents,
            "metadata": self.meta or {},
        }
