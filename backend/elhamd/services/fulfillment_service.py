# Overview: Service-layer fulfillment engine; applies and releases invoice side effects on stock, vehicles and the ledger.

"""
Invoice Fulfillment Engine

Coordinates what an invoice does to the rest of the system:
- PART lines deduct (apply) or restore (release) inventory quantity
- VEHICLE lines reserve / sell (apply) or free (release) vehicles
- every apply upserts the invoice's single ledger row (SALE-<invoice id>)
- every call stamps the invoice metadata audit trail

DESIGN:
- All writes of one call share the caller's session and are committed
  together (commit=True) or only flushed (commit=False) so a caller can fold
  the engine into a larger unit of work.
- Referenced rows are loaded FOR UPDATE by load_link_targets().
- Entities missing from the lookup maps are skipped, never an error.
- Deduction uses the absolute line quantities of the current call. Applying
  twice with adjust_inventory=True deducts twice; callers decide when to
  adjust from the invoice's inventoryAdjusted flag.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..models import Invoice, InventoryItem, Vehicle
from elhamd.time_utils import utcnow_iso
from .concurrency import finish, lock_rows_by_id
from .invoice_links import ExtractedLinks, PartLink, VehicleLink
from .invoice_normalizer import InvoiceTotals
from .inventory_service import set_quantity, VEHICLE_AVAILABLE, VEHICLE_RESERVED, VEHICLE_SOLD
from .ledger_service import upsert_sale_entry


def line_stock_quantity(quantity) -> int:
    """Whole units moved for a line: half-up rounded, never negative."""
    rounded = Decimal(str(quantity or 0)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(0, int(rounded))


def merge_invoice_metadata(invoice: Invoice, updates: dict) -> None:
    existing = invoice.meta if isinstance(invoice.meta, dict) else {}
    invoice.meta = {**existing, **updates}


def load_link_targets(extracted: ExtractedLinks) -> tuple[dict[int, InventoryItem], dict[int, Vehicle]]:
    """Lock and load every inventory item and vehicle the links reference."""
    inventory_map = lock_rows_by_id(InventoryItem, extracted.inventory_ids)
    vehicle_map = lock_rows_by_id(Vehicle, extracted.vehicle_ids)
    return inventory_map, vehicle_map


def apply_invoice_side_effects(
    *,
    invoice: Invoice,
    links: list,
    inventory_map: dict[int, InventoryItem],
    vehicle_map: dict[int, Vehicle],
    totals: InvoiceTotals,
    adjust_inventory: bool,
    commit: bool = True,
) -> None:
    now_iso = utcnow_iso()
    log = current_app.logger

    for link in links:
        if isinstance(link, PartLink) and link.inventory_item_id is not None:
            if not adjust_inventory:
                continue
            item = inventory_map.get(link.inventory_item_id)
            if item is None:
                log.debug(
                    "Invoice %s: inventory item %s not found, skipping deduction",
                    invoice.id,
                    link.inventory_item_id,
                )
                continue
            deduct = line_stock_quantity(link.item.quantity)
            if deduct <= 0:
                continue
            set_quantity(item, max(0, item.quantity - deduct))

        elif isinstance(link, VehicleLink) and link.vehicle_id is not None:
            vehicle = vehicle_map.get(link.vehicle_id)
            if vehicle is None:
                log.debug("Invoice %s: vehicle %s not found, skipping", invoice.id, link.vehicle_id)
                continue
            if vehicle.status == VEHICLE_SOLD:
                continue
            vehicle.status = VEHICLE_SOLD if invoice.status == "PAID" else VEHICLE_RESERVED

    upsert_sale_entry(invoice=invoice, amount_cents=totals.total_cents, now_iso=now_iso)

    updates = {
        "saleStatus": invoice.status,
        "saleStatusUpdatedAt": now_iso,
    }
    if adjust_inventory:
        updates.update({
            "inventoryAdjusted": True,
            "inventoryAdjustedAt": now_iso,
            "inventoryRestored": False,
            "inventoryRestoredAt": None,
        })
    merge_invoice_metadata(invoice, updates)

    finish(commit)
    log.info(
        "Applied side effects for invoice %s (status=%s, adjust_inventory=%s)",
        invoice.invoice_number,
        invoice.status,
        adjust_inventory,
    )


def release_invoice_side_effects(
    *,
    invoice: Invoice,
    links: list,
    inventory_map: dict[int, InventoryItem],
    vehicle_map: dict[int, Vehicle],
    commit: bool = True,
) -> None:
    now_iso = utcnow_iso()
    log = current_app.logger

    for link in links:
        if isinstance(link, PartLink) and link.inventory_item_id is not None:
            item = inventory_map.get(link.inventory_item_id)
            if item is None:
                log.debug(
                    "Invoice %s: inventory item %s not found, skipping restore",
                    invoice.id,
                    link.inventory_item_id,
                )
                continue
            restore = line_stock_quantity(link.item.quantity)
            if restore <= 0:
                continue
            set_quantity(item, item.quantity + restore)

        elif isinstance(link, VehicleLink) and link.vehicle_id is not None:
            vehicle = vehicle_map.get(link.vehicle_id)
            if vehicle is None:
                log.debug("Invoice %s: vehicle %s not found, skipping", invoice.id, link.vehicle_id)
                continue
            if vehicle.status != VEHICLE_SOLD:
                vehicle.status = VEHICLE_AVAILABLE

    merge_invoice_metadata(invoice, {
        "saleStatus": invoice.status,
        "saleStatusUpdatedAt": now_iso,
        "inventoryAdjusted": False,
        "inventoryRestored": True,
        "inventoryRestoredAt": now_iso,
    })

    finish(commit)
    log.info("Released side effects for invoice %s (status=%s)", invoice.invoice_number, invoice.status)
