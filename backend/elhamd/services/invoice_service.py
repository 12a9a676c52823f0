# Overview: Service-layer operations for invoices; owns the lifecycle call sites of the fulfillment engine.

"""
Invoice Lifecycle Service

WHY: The fulfillment engine only knows how to apply or release side effects.
This module decides WHEN: on create, on item edits, on status changes and on
delete, each inside one database transaction.

LIFECYCLE (allowed transitions):
- DRAFT          -> SENT, CANCELLED
- SENT           -> PAID, PARTIALLY_PAID, OVERDUE, CANCELLED
- PARTIALLY_PAID -> PAID, OVERDUE, CANCELLED
- PAID           -> REFUNDED
- OVERDUE        -> PAID, PARTIALLY_PAID, CANCELLED
- CANCELLED      -> DRAFT
- REFUNDED       -> (terminal)

STOCK:
- Entering a stock-affecting status (SENT, PAID, PARTIALLY_PAID, OVERDUE)
  deducts inventory once; the invoice's inventoryAdjusted metadata flag
  prevents a second deduction.
- CANCELLED / REFUNDED / delete release side effects. Parts are restored
  only when the invoice had actually deducted them.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Branch, Customer, Invoice, InvoiceItem, InventoryItem, Transaction, Vehicle
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_invoice_item,
    validate_payload,
)
from elhamd.time_utils import utcnow, utcnow_iso
from .concurrency import lock_for_update, lock_rows_by_id, run_with_retry
from .document_service import next_invoice_number
from .fulfillment_service import (
    apply_invoice_side_effects,
    merge_invoice_metadata,
    release_invoice_side_effects,
)
from .inventory_service import VEHICLE_SOLD
from .invoice_links import extract_invoice_item_links
from .invoice_normalizer import normalize_invoice_items, normalized_from_rows


class InvoiceError(ValidationError):
    """Raised for invoice operation errors."""
    pass


# =============================================================================
# STATUSES / TYPES (CONSTANTS)
# =============================================================================

STATUS_DRAFT = "DRAFT"
STATUS_SENT = "SENT"
STATUS_PAID = "PAID"
STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
STATUS_OVERDUE = "OVERDUE"
STATUS_CANCELLED = "CANCELLED"
STATUS_REFUNDED = "REFUNDED"

VALID_STATUSES = [
    STATUS_DRAFT,
    STATUS_SENT,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
    STATUS_OVERDUE,
    STATUS_CANCELLED,
    STATUS_REFUNDED,
]

STATUS_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_SENT, STATUS_CANCELLED},
    STATUS_SENT: {STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_OVERDUE, STATUS_CANCELLED},
    STATUS_PARTIALLY_PAID: {STATUS_PAID, STATUS_OVERDUE, STATUS_CANCELLED},
    STATUS_PAID: {STATUS_REFUNDED},
    STATUS_OVERDUE: {STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_CANCELLED},
    STATUS_CANCELLED: {STATUS_DRAFT},
    STATUS_REFUNDED: set(),
}

STOCK_AFFECTING_STATUSES = {STATUS_SENT, STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_OVERDUE}
RELEASING_STATUSES = {STATUS_CANCELLED, STATUS_REFUNDED}
LOCKED_STATUSES = {STATUS_PAID, STATUS_CANCELLED, STATUS_REFUNDED}

# An invoice is born as a draft or already sent to the customer.
INITIAL_STATUSES = {STATUS_DRAFT, STATUS_SENT}

INVOICE_TYPES = ["SERVICE", "SALE", "USED_SALE", "PARTS", "OTHER"]


INVOICE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "branch_id",
        "invoice_type",
        "status",
        "currency",
        "issue_date",
        "due_date",
        "notes",
    },
    required_on_create={"customer_id"},
)

INVOICE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "invoice_type",
        "currency",
        "issue_date",
        "due_date",
        "notes",
    },
)


# =============================================================================
# HELPERS
# =============================================================================

def can_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, set())


def _get_invoice_locked(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def _inventory_adjusted(invoice: Invoice) -> bool:
    return bool((invoice.meta or {}).get("inventoryAdjusted"))


def _validate_header(patch: dict) -> None:
    if "invoice_type" in patch and patch["invoice_type"] not in INVOICE_TYPES:
        raise InvoiceError(
            f"Invalid invoice type: {patch['invoice_type']}. Must be one of {INVOICE_TYPES}",
            details={"invoice_type": patch["invoice_type"]},
        )
    if "currency" in patch and len(patch["currency"]) != 3:
        raise InvoiceError("currency must be a 3-letter code", details={"currency": patch["currency"]})
    if "customer_id" in patch and db.session.get(Customer, patch["customer_id"]) is None:
        raise NotFoundError(
            f"Customer {patch['customer_id']} not found",
            details={"customer_id": patch["customer_id"]},
        )
    if patch.get("branch_id") is not None and db.session.get(Branch, patch["branch_id"]) is None:
        raise NotFoundError(
            f"Branch {patch['branch_id']} not found",
            details={"branch_id": patch["branch_id"]},
        )


def _prepare_items(raw_items):
    """Normalize raw lines and enforce line rules; an invoice needs at least one line."""
    if not isinstance(raw_items, list) or not raw_items:
        raise InvoiceError("At least one invoice item is required", details={"field": "items"})
    normalized, totals = normalize_invoice_items(raw_items)
    for index, item in enumerate(normalized):
        enforce_rules_invoice_item(
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "tax_rate": item.tax_rate,
            },
            index,
        )
    extracted = extract_invoice_item_links(normalized)
    return normalized, totals, extracted


def _check_references(extracted, inventory_map: dict, vehicle_map: dict) -> None:
    missing_parts = [i for i in extracted.inventory_ids if i not in inventory_map]
    if missing_parts:
        raise InvoiceError(
            "Referenced inventory items not found",
            details={"inventory_item_ids": missing_parts},
        )
    missing_vehicles = [v for v in extracted.vehicle_ids if v not in vehicle_map]
    if missing_vehicles:
        raise InvoiceError(
            "Referenced vehicles not found",
            details={"vehicle_ids": missing_vehicles},
        )


def _check_vehicles_sellable(extracted, vehicle_map: dict, *, keep: set[int] = frozenset()) -> None:
    sold = [
        vid for vid in extracted.vehicle_ids
        if vid not in keep and vehicle_map[vid].status == VEHICLE_SOLD
    ]
    if sold:
        raise InvoiceError("Referenced vehicles are already sold", details={"vehicle_ids": sold})


def _build_rows(normalized) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            position=item.position,
            description=item.description,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            total_price_cents=item.total_price_cents,
            tax_rate=item.tax_rate,
            tax_cents=item.tax_cents,
            meta=item.metadata,
        )
        for item in normalized
    ]


def _set_totals(invoice: Invoice, totals) -> None:
    invoice.subtotal_cents = totals.subtotal_cents
    invoice.tax_cents = totals.tax_cents
    invoice.total_cents = totals.total_cents


def _release_stored(invoice: Invoice, *, commit: bool) -> None:
    """Release side effects of the invoice's stored lines."""
    normalized, _ = normalized_from_rows(invoice.items)
    extracted = extract_invoice_item_links(normalized)
    inventory_map = (
        lock_rows_by_id(InventoryItem, extracted.inventory_ids)
        if _inventory_adjusted(invoice)
        else {}
    )
    vehicle_map = lock_rows_by_id(Vehicle, extracted.vehicle_ids)
    release_invoice_side_effects(
        invoice=invoice,
        links=extracted.links,
        inventory_map=inventory_map,
        vehicle_map=vehicle_map,
        commit=commit,
    )


def _apply_stored(invoice: Invoice, *, adjust_inventory: bool, commit: bool) -> None:
    """Apply side effects of the invoice's stored lines."""
    normalized, totals = normalized_from_rows(invoice.items)
    extracted = extract_invoice_item_links(normalized)
    inventory_map = lock_rows_by_id(InventoryItem, extracted.inventory_ids) if adjust_inventory else {}
    vehicle_map = lock_rows_by_id(Vehicle, extracted.vehicle_ids)
    apply_invoice_side_effects(
        invoice=invoice,
        links=extracted.links,
        inventory_map=inventory_map,
        vehicle_map=vehicle_map,
        totals=totals,
        adjust_inventory=adjust_inventory,
        commit=commit,
    )


def _stamp_status_time(invoice: Invoice, status: str) -> None:
    now = utcnow()
    if status == STATUS_SENT and invoice.sent_at is None:
        invoice.sent_at = now
    elif status == STATUS_PAID and invoice.paid_at is None:
        invoice.paid_at = now
    elif status == STATUS_CANCELLED and invoice.cancelled_at is None:
        invoice.cancelled_at = now


# =============================================================================
# LIFECYCLE
# =============================================================================

def create_invoice(data: dict, *, user_id: int | None = None) -> Invoice:
    """
    Create an invoice with its lines and apply its side effects.

    Request shape:
    {
        "customer_id": 1,
        "branch_id": 2,                 (optional)
        "invoice_type": "SALE",         (default SERVICE)
        "status": "DRAFT" | "SENT",     (default DRAFT)
        "issue_date": "2026-01-31",     (default now)
        "items": [{"description", "quantity", "unit_price_cents",
                   "tax_rate", "total_price_cents", "tax_cents", "metadata"}],
        "metadata": {...}
    }
    """
    if not isinstance(data, dict):
        raise InvoiceError("Invalid JSON payload")
    payload = dict(data)
    raw_items = payload.pop("items", None)
    metadata = payload.pop("metadata", None)
    if metadata is not None and not isinstance(metadata, dict):
        raise InvoiceError("metadata must be an object", details={"field": "metadata"})

    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_CREATE_POLICY, partial=False)
    status = patch.get("status") or STATUS_DRAFT
    if status not in INITIAL_STATUSES:
        raise InvoiceError(
            f"New invoices must start as one of {sorted(INITIAL_STATUSES)}",
            code="INVALID_STATUS",
            details={"status": status},
        )
    _validate_header(patch)
    normalized, totals, extracted = _prepare_items(raw_items)

    def _op():
        inventory_map = lock_rows_by_id(InventoryItem, extracted.inventory_ids)
        vehicle_map = lock_rows_by_id(Vehicle, extracted.vehicle_ids)
        _check_references(extracted, inventory_map, vehicle_map)
        _check_vehicles_sellable(extracted, vehicle_map)

        invoice = Invoice(
            invoice_number=next_invoice_number(patch.get("branch_id")),
            invoice_type=patch.get("invoice_type") or "SERVICE",
            status=status,
            currency=patch.get("currency") or current_app.config.get("DEFAULT_CURRENCY", "EGP"),
            customer_id=patch["customer_id"],
            branch_id=patch.get("branch_id"),
            issue_date=patch.get("issue_date") or utcnow(),
            due_date=patch.get("due_date"),
            notes=patch.get("notes"),
            meta=dict(metadata or {}),
            paid_cents=0,
            created_by_user_id=user_id,
        )
        _set_totals(invoice, totals)
        if status == STATUS_SENT:
            invoice.sent_at = utcnow()
        invoice.items = _build_rows(normalized)
        db.session.add(invoice)
        db.session.flush()

        apply_invoice_side_effects(
            invoice=invoice,
            links=extracted.links,
            inventory_map=inventory_map,
            vehicle_map=vehicle_map,
            totals=totals,
            adjust_inventory=status in STOCK_AFFECTING_STATUSES,
            commit=True,
        )
        return invoice

    return run_with_retry(_op)


def update_invoice(invoice_id: int, data: dict) -> Invoice:
    """
    Edit header fields and/or replace the invoice lines.

    Lines are replaced as a whole: the old lines' side effects are released,
    then the new lines' side effects are applied (deducting stock again only
    when the invoice is in a stock-affecting status).
    """
    if not isinstance(data, dict):
        raise InvoiceError("Invalid JSON payload")
    payload = dict(data)
    has_items = "items" in payload
    raw_items = payload.pop("items", None)
    metadata = payload.pop("metadata", None)
    if metadata is not None and not isinstance(metadata, dict):
        raise InvoiceError("metadata must be an object", details={"field": "metadata"})

    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_UPDATE_POLICY, partial=True)
    _validate_header(patch)
    prepared = _prepare_items(raw_items) if has_items else None

    def _op():
        invoice = _get_invoice_locked(invoice_id)
        if invoice.status in LOCKED_STATUSES:
            raise InvoiceError(
                f"Cannot edit an invoice with status {invoice.status}",
                code="INVALID_STATUS",
                details={"status": invoice.status},
            )

        for key, value in patch.items():
            setattr(invoice, key, value)
        if metadata:
            merge_invoice_metadata(invoice, metadata)

        if prepared is None:
            # Header-only edit: refresh the ledger row and reservations.
            _apply_stored(invoice, adjust_inventory=False, commit=True)
            return invoice

        normalized, totals, extracted = prepared
        if totals.total_cents < invoice.paid_cents:
            raise InvoiceError(
                "New invoice total is below the amount already paid",
                code="EXCEEDS_TOTAL",
                details={"total_cents": totals.total_cents, "paid_cents": invoice.paid_cents},
            )

        old_vehicle_ids = set(
            extract_invoice_item_links(normalized_from_rows(invoice.items)[0]).vehicle_ids
        )
        vehicle_map = lock_rows_by_id(Vehicle, extracted.vehicle_ids)
        inventory_map = lock_rows_by_id(InventoryItem, extracted.inventory_ids)
        _check_references(extracted, inventory_map, vehicle_map)
        _check_vehicles_sellable(extracted, vehicle_map, keep=old_vehicle_ids)

        _release_stored(invoice, commit=False)

        invoice.items = _build_rows(normalized)
        _set_totals(invoice, totals)
        db.session.flush()

        apply_invoice_side_effects(
            invoice=invoice,
            links=extracted.links,
            inventory_map=inventory_map,
            vehicle_map=vehicle_map,
            totals=totals,
            adjust_inventory=invoice.status in STOCK_AFFECTING_STATUSES,
            commit=True,
        )
        return invoice

    return run_with_retry(_op)


def change_invoice_status(
    invoice_id: int,
    new_status: str,
    *,
    notes: str | None = None,
    user_id: int | None = None,
) -> Invoice:
    """Move an invoice along the lifecycle and apply/release its side effects."""
    if new_status not in VALID_STATUSES:
        raise InvoiceError(
            f"Invalid status: {new_status}. Must be one of {VALID_STATUSES}",
            code="INVALID_STATUS",
            details={"status": new_status},
        )

    def _op():
        invoice = _get_invoice_locked(invoice_id)
        current = invoice.status
        if not can_transition(current, new_status):
            raise InvoiceError(
                f"Cannot change invoice status from {current} to {new_status}",
                code="INVALID_STATUS",
                details={
                    "from": current,
                    "to": new_status,
                    "allowed": sorted(STATUS_TRANSITIONS.get(current, set())),
                },
            )
        if new_status == STATUS_PAID and invoice.paid_cents < invoice.total_cents:
            raise InvoiceError(
                "Invoice cannot be marked PAID before it is fully paid",
                code="INSUFFICIENT_PAYMENT",
                details={"total_cents": invoice.total_cents, "paid_cents": invoice.paid_cents},
            )

        invoice.status = new_status
        _stamp_status_time(invoice, new_status)

        audit = {"statusChangedAt": utcnow_iso(), "previousStatus": current}
        if user_id is not None:
            audit["statusChangedBy"] = user_id
        if notes:
            audit["statusChangeNotes"] = notes
        merge_invoice_metadata(invoice, audit)

        if new_status in RELEASING_STATUSES:
            _release_stored(invoice, commit=True)
        else:
            adjust = new_status in STOCK_AFFECTING_STATUSES and not _inventory_adjusted(invoice)
            _apply_stored(invoice, adjust_inventory=adjust, commit=True)

        current_app.logger.info(
            "Invoice %s status %s -> %s", invoice.invoice_number, current, new_status
        )
        return invoice

    return run_with_retry(_op)


def delete_invoice(invoice_id: int) -> None:
    """
    Hard-delete an unpaid invoice after releasing its side effects.
    The ledger row stays (detached from the invoice).
    """
    def _op():
        invoice = _get_invoice_locked(invoice_id)
        if invoice.status == STATUS_PAID or (invoice.paid_cents or 0) > 0:
            raise InvoiceError(
                "Paid invoices cannot be deleted",
                code="INVALID_STATUS",
                details={"status": invoice.status, "paid_cents": invoice.paid_cents},
            )
        if invoice.payments:
            raise InvoiceError(
                "Invoices with recorded payments cannot be deleted",
                code="INVALID_STATUS",
                details={"payments": len(invoice.payments)},
            )

        _release_stored(invoice, commit=False)
        db.session.query(Transaction).filter_by(invoice_id=invoice.id).update(
            {"invoice_id": None}, synchronize_session=False
        )
        number = invoice.invoice_number
        db.session.delete(invoice)
        db.session.commit()
        current_app.logger.info("Deleted invoice %s", number)

    run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def list_invoices(
    *,
    status: str | None = None,
    branch_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 100,
) -> list[Invoice]:
    query = db.session.query(Invoice)
    if status:
        if status not in VALID_STATUSES:
            raise InvoiceError(
                f"Invalid status: {status}. Must be one of {VALID_STATUSES}",
                code="INVALID_STATUS",
                details={"status": status},
            )
        query = query.filter(Invoice.status == status)
    if branch_id is not None:
        query = query.filter(Invoice.branch_id == branch_id)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).limit(limit).all()
