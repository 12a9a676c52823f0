from __future__ import annotations

from ..extensions import db
from elhamd.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Spare part / accessory stock record.

    STOCK MODEL:
    - quantity is a stored, mutable on-hand count (never negative)
    - status is DERIVED from quantity and min_stock_level, except that a
      DISCONTINUED item stays DISCONTINUED
    - quantity is changed by invoice fulfillment (deduct/restore) and by
      direct stock adjustments only

    STATUSES: IN_STOCK, LOW_STOCK, OUT_OF_STOCK, DISCONTINUED
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        db.Index("ix_inventory_items_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    part_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    category = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="IN_STOCK")

    meta = db.Column("metadata", db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} part_number={self.part_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "part_number": self.part_number,
            "category": self.category,
            "quantity": self.quantity,
            "min_stock_level": self.min_stock_level,
            "unit_price_cents": self.unit_price_cents,
            "status": self.status,
            "metadata": self.meta or {},
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Vehicle(db.Model):
    """
    Vehicle stock unit.

    STATUSES: AVAILABLE, RESERVED, SOLD, MAINTENANCE

    An invoice line linking a vehicle reserves it; a PAID invoice sells it.
    SOLD is one-way: neither applying nor releasing an invoice un-sells a vehicle.
    """
    __tablename__ = "vehicles"
    __table_args__ = (
        db.Index("ix_vehicles_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    make = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(64), nullable=False)
    year = db.Column(db.Integer, nullable=True)
    vin = db.Column(db.String(32), nullable=True, unique=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("vehicles", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Vehicle id={self.id} {self.make} {self.model} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "vin": self.vin,
            "price_cents": self.price_cents,
            "branch_id": self.branch_id,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
