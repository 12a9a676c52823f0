# Overview: Service-layer operations for parts inventory and vehicle stock; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InventoryItem
from ..validation import ValidationError, NotFoundError, enforce_rules_inventory_adjust
from elhamd.time_utils import utcnow_iso
from .concurrency import lock_for_update, run_with_retry
"""
Inventory invariants (authoritative)

- quantity is a stored on-hand count and never goes below zero.
- status is derived from quantity whenever quantity changes:
    DISCONTINUED stays DISCONTINUED
    quantity <= 0                  -> OUT_OF_STOCK
    quantity <= min_stock_level    -> LOW_STOCK (boundary inclusive)
    otherwise                      -> IN_STOCK
- quantity and status are always written together.
"""


class InventoryError(ValidationError):
    """Raised for inventory operation errors."""
    pass


# =============================================================================
# STATUSES (CONSTANTS)
# =============================================================================

INVENTORY_IN_STOCK = "IN_STOCK"
INVENTORY_LOW_STOCK = "LOW_STOCK"
INVENTORY_OUT_OF_STOCK = "OUT_OF_STOCK"
INVENTORY_DISCONTINUED = "DISCONTINUED"

VALID_INVENTORY_STATUSES = [
    INVENTORY_IN_STOCK,
    INVENTORY_LOW_STOCK,
    INVENTORY_OUT_OF_STOCK,
    INVENTORY_DISCONTINUED,
]

VEHICLE_AVAILABLE = "AVAILABLE"
VEHICLE_RESERVED = "RESERVED"
VEHICLE_SOLD = "SOLD"
VEHICLE_MAINTENANCE = "MAINTENANCE"

VALID_VEHICLE_STATUSES = [
    VEHICLE_AVAILABLE,
    VEHICLE_RESERVED,
    VEHICLE_SOLD,
    VEHICLE_MAINTENANCE,
]


def derive_inventory_status(item: InventoryItem, quantity: int) -> str:
    if item.status == INVENTORY_DISCONTINUED:
        return INVENTORY_DISCONTINUED
    if quantity <= 0:
        return INVENTORY_OUT_OF_STOCK
    if quantity <= (item.min_stock_level or 0):
        return INVENTORY_LOW_STOCK
    return INVENTORY_IN_STOCK


def set_quantity(item: InventoryItem, quantity: int) -> None:
    """Write quantity and its derived status together."""
    item.quantity = quantity
    item.status = derive_inventory_status(item, quantity)


def adjust_stock(
    *,
    inventory_item_id: int,
    quantity_delta: int,
    reason: str | None = None,
) -> InventoryItem:
    """
    Direct stock change (receiving, shrinkage, manual correction).

    Rejects changes that would take on-hand below zero and records the last
    adjustment in the item's metadata.
    """
    enforce_rules_inventory_adjust(quantity_delta)

    def _op():
        item = lock_for_update(
            db.session.query(InventoryItem).filter_by(id=inventory_item_id)
        ).first()
        if not item:
            raise NotFoundError(
                f"Inventory item {inventory_item_id} not found",
                details={"inventory_item_id": inventory_item_id},
            )

        new_quantity = item.quantity + quantity_delta
        if new_quantity < 0:
            raise InventoryError(
                "adjustment would make on-hand negative",
                code="INSUFFICIENT_STOCK",
                details={
                    "inventory_item_id": item.id,
                    "quantity": item.quantity,
                    "quantity_delta": quantity_delta,
                },
            )

        previous = item.quantity
        set_quantity(item, new_quantity)
        item.meta = {
            **(item.meta or {}),
            "lastStockUpdate": {
                "previousQuantity": previous,
                "quantityDelta": quantity_delta,
                "reason": reason,
                "at": utcnow_iso(),
            },
        }

        db.session.commit()
        current_app.logger.info(
            "Adjusted stock for %s by %s (now %s, %s)",
            item.part_number,
            quantity_delta,
            item.quantity,
            item.status,
        )
        return item

    return run_with_retry(_op)


def list_inventory_items(*, status: str | None = None) -> list[InventoryItem]:
    query = db.session.query(InventoryItem)
    if status:
        if status not in VALID_INVENTORY_STATUSES:
            raise InventoryError(
                f"Invalid status: {status}. Must be one of {VALID_INVENTORY_STATUSES}",
                details={"status": status},
            )
        query = query.filter(InventoryItem.status == status)
    return query.order_by(InventoryItem.part_number).all()


def list_low_stock() -> list[InventoryItem]:
    """Items that need reordering: LOW_STOCK or OUT_OF_STOCK."""
    return (
        db.session.query(InventoryItem)
        .filter(InventoryItem.status.in_([INVENTORY_LOW_STOCK, INVENTORY_OUT_OF_STOCK]))
        .order_by(InventoryItem.quantity, InventoryItem.part_number)
        .all()
    )
