# Overview: Pure classification of invoice lines into service, part and vehicle links.

"""
Invoice line link extraction.

Each normalized line is classified from its metadata:
- type comes from itemType, then type, then category (case-insensitive);
  only SERVICE / PART / VEHICLE are recognized, anything else is SERVICE
- a PART line with an inventoryItemId links to that inventory item
- a VEHICLE line with a vehicleId links to that vehicle
- when the type was not given (or not recognized) a bare inventoryItemId
  makes the line a PART, otherwise a bare vehicleId makes it a VEHICLE;
  an explicit SERVICE is never reclassified

Extraction never raises and never touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from flask import current_app, has_app_context

from .invoice_normalizer import NormalizedItem

LINK_SERVICE = "SERVICE"
LINK_PART = "PART"
LINK_VEHICLE = "VEHICLE"

VALID_LINK_TYPES = (LINK_SERVICE, LINK_PART, LINK_VEHICLE)


@dataclass(frozen=True)
class ServiceLink:
    item: NormalizedItem
    type = LINK_SERVICE


@dataclass(frozen=True)
class PartLink:
    item: NormalizedItem
    inventory_item_id: Optional[int]
    type = LINK_PART


@dataclass(frozen=True)
class VehicleLink:
    item: NormalizedItem
    vehicle_id: Optional[int]
    type = LINK_VEHICLE


InvoiceItemLink = Union[ServiceLink, PartLink, VehicleLink]


@dataclass
class ExtractedLinks:
    links: list = field(default_factory=list)
    inventory_ids: list[int] = field(default_factory=list)
    vehicle_ids: list[int] = field(default_factory=list)


def parse_reference_id(value: Any) -> Optional[int]:
    """Entity references arrive as positive ints or non-empty digit strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit() and int(stripped) > 0:
            return int(stripped)
    return None


def _declared_type(metadata: dict) -> Optional[str]:
    raw = metadata.get("itemType")
    if raw is None:
        raw = metadata.get("type")
    if raw is None:
        raw = metadata.get("category")
    if isinstance(raw, str):
        upper = raw.strip().upper()
        if upper in VALID_LINK_TYPES:
            return upper
    return None


def _fallback_enabled(reference_fallback: Optional[bool]) -> bool:
    if reference_fallback is not None:
        return reference_fallback
    if has_app_context():
        return bool(current_app.config.get("INVOICE_LINK_REFERENCE_FALLBACK", True))
    return True


def extract_invoice_item_links(
    items: list[NormalizedItem],
    *,
    reference_fallback: Optional[bool] = None,
) -> ExtractedLinks:
    """
    Classify normalized lines and collect the referenced entity ids.

    Returned id lists are de-duplicated and keep first-seen order.
    """
    fallback = _fallback_enabled(reference_fallback)
    result = ExtractedLinks()
    inventory_seen: set[int] = set()
    vehicle_seen: set[int] = set()

    for item in items:
        metadata = item.metadata if isinstance(item.metadata, dict) else {}
        declared = _declared_type(metadata)
        inventory_item_id = parse_reference_id(metadata.get("inventoryItemId"))
        vehicle_id = parse_reference_id(metadata.get("vehicleId"))

        link_type = declared or LINK_SERVICE
        if declared is None and fallback:
            if inventory_item_id is not None:
                link_type = LINK_PART
            elif vehicle_id is not None:
                link_type = LINK_VEHICLE

        if link_type == LINK_PART:
            result.links.append(PartLink(item=item, inventory_item_id=inventory_item_id))
            if inventory_item_id is not None and inventory_item_id not in inventory_seen:
                inventory_seen.add(inventory_item_id)
                result.inventory_ids.append(inventory_item_id)
        elif link_type == LINK_VEHICLE:
            result.links.append(VehicleLink(item=item, vehicle_id=vehicle_id))
            if vehicle_id is not None and vehicle_id not in vehicle_seen:
                vehicle_seen.add(vehicle_id)
                result.vehicle_ids.append(vehicle_id)
        else:
            result.links.append(ServiceLink(item=item))

    return result
