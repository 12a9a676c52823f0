# Overview: Pytest coverage for the invoice fulfillment engine (stock, vehicles, ledger).

"""
Fulfillment Engine Tests

Exercises apply/release directly against hand-built invoices so the engine
is tested independently of the invoice lifecycle rules.
"""

import pytest

from elhamd.models import Invoice, InvoiceItem, Transaction
from elhamd.services.fulfillment_service import (
    apply_invoice_side_effects,
    line_stock_quantity,
    load_link_targets,
    merge_invoice_metadata,
    release_invoice_side_effects,
)
from elhamd.services.inventory_service import derive_inventory_status, set_quantity
from elhamd.services.invoice_links import extract_invoice_item_links
from elhamd.services.invoice_normalizer import normalized_from_rows
from elhamd.time_utils import utcnow


def _invoice(db_session, customer, status, lines):
    invoice = Invoice(
        invoice_number=f"TEST-{status}-{len(lines)}",
        invoice_type="SALE",
        status=status,
        customer_id=customer.id,
        issue_date=utcnow(),
        meta={},
    )
    invoice.items = [
        InvoiceItem(
            position=index,
            description=line["description"],
            quantity=line["quantity"],
            unit_price_cents=line["unit_price_cents"],
            total_price_cents=line["quantity"] * line["unit_price_cents"],
            tax_rate=0,
            tax_cents=0,
            meta=line["metadata"],
        )
        for index, line in enumerate(lines)
    ]
    invoice.subtotal_cents = sum(item.total_price_cents for item in invoice.items)
    invoice.total_cents = invoice.subtotal_cents
    db_session.add(invoice)
    db_session.commit()
    return invoice


def _targets(invoice):
    items, totals = normalized_from_rows(invoice.items)
    extracted = extract_invoice_item_links(items)
    inventory_map, vehicle_map = load_link_targets(extracted)
    return extracted, inventory_map, vehicle_map, totals


def _apply(invoice, adjust_inventory=True):
    extracted, inventory_map, vehicle_map, totals = _targets(invoice)
    apply_invoice_side_effects(
        invoice=invoice,
        links=extracted.links,
        inventory_map=inventory_map,
        vehicle_map=vehicle_map,
        totals=totals,
        adjust_inventory=adjust_inventory,
    )


def _release(invoice):
    extracted, inventory_map, vehicle_map, _ = _targets(invoice)
    release_invoice_side_effects(
        invoice=invoice,
        links=extracted.links,
        inventory_map=inventory_map,
        vehicle_map=vehicle_map,
    )


@pytest.fixture
def paid_sale(db_session, customer, make_part, make_vehicle):
    """PAID invoice for 2 x part (10 on hand, min 3) and one reserved vehicle; total 50,000."""
    part = make_part(quantity=10, min_stock_level=3, unit_price_cents=10000)
    vehicle = make_vehicle(status="RESERVED", price_cents=30000)
    invoice = _invoice(db_session, customer, "PAID", [
        {"description": "Brake kit", "quantity": 2, "unit_price_cents": 10000,
         "metadata": {"itemType": "PART", "inventoryItemId": part.id}},
        {"description": "Tata Nexon", "quantity": 1, "unit_price_cents": 30000,
         "metadata": {"itemType": "VEHICLE", "vehicleId": vehicle.id}},
    ])
    return invoice, part, vehicle


class TestApply:

    def test_paid_invoice_deducts_sells_and_books_sale(self, db_session, paid_sale):
        invoice, part, vehicle = paid_sale
        assert invoice.total_cents == 50000

        _apply(invoice)

        assert part.quantity == 8
        assert part.status == "IN_STOCK"
        assert vehicle.status == "SOLD"

        rows = db_session.query(Transaction).filter_by(reference_id=f"SALE-{invoice.id}").all()
        assert len(rows) == 1
        assert rows[0].category == "SALES"
        assert rows[0].type == "INCOME"
        assert rows[0].amount_cents == 50000
        assert rows[0].invoice_id == invoice.id

        meta = invoice.meta
        assert meta["saleStatus"] == "PAID"
        assert meta["inventoryAdjusted"] is True
        assert meta["inventoryRestored"] is False
        assert meta["inventoryAdjustedAt"].endswith("Z")

    def test_unpaid_invoice_reserves_vehicle_and_books_pipeline(self, db_session, customer, make_vehicle):
        vehicle = make_vehicle()
        invoice = _invoice(db_session, customer, "SENT", [
            {"description": "Car", "quantity": 1, "unit_price_cents": 40000,
             "metadata": {"itemType": "VEHICLE", "vehicleId": vehicle.id}},
        ])

        _apply(invoice, adjust_inventory=False)

        assert vehicle.status == "RESERVED"
        row = db_session.query(Transaction).filter_by(reference_id=f"SALE-{invoice.id}").one()
        assert row.category == "SALES_PIPELINE"
        assert "inventoryAdjusted" not in invoice.meta

    def test_no_adjust_leaves_stock_alone(self, paid_sale):
        invoice, part, _ = paid_sale
        _apply(invoice, adjust_inventory=False)
        assert part.quantity == 10

    def test_ledger_entry_is_upserted(self, db_session, paid_sale):
        invoice, _, _ = paid_sale
        _apply(invoice, adjust_inventory=False)
        invoice.items[0].total_price_cents = 25000
        _apply(invoice, adjust_inventory=False)

        rows = db_session.query(Transaction).filter_by(invoice_id=invoice.id).all()
        assert len(rows) == 1
        assert rows[0].amount_cents == 55000
        assert rows[0].meta["invoiceId"] == invoice.id

    def test_repeated_adjust_deducts_again(self, paid_sale):
        invoice, part, _ = paid_sale
        _apply(invoice)
        _apply(invoice)
        assert part.quantity == 6

    def test_deduction_floors_at_zero(self, db_session, customer, make_part):
        part = make_part(quantity=1, min_stock_level=0)
        invoice = _invoice(db_session, customer, "SENT", [
            {"description": "Bulb", "quantity": 3, "unit_price_cents": 100,
             "metadata": {"itemType": "PART", "inventoryItemId": part.id}},
        ])
        _apply(invoice)
        assert part.quantity == 0
        assert part.status == "OUT_OF_STOCK"

    def test_missing_targets_are_skipped(self, db_session, customer):
        invoice = _invoice(db_session, customer, "PAID", [
            {"description": "Ghost part", "quantity": 1, "unit_price_cents": 100,
             "metadata": {"itemType": "PART", "inventoryItemId": 987654}},
            {"description": "Ghost car", "quantity": 1, "unit_price_cents": 100,
             "metadata": {"itemType": "VEHICLE", "vehicleId": 987654}},
        ])
        _apply(invoice)
        assert db_session.query(Transaction).filter_by(invoice_id=invoice.id).count() == 1

    def test_commit_false_only_flushes(self, db_session, paid_sale):
        invoice, part, _ = paid_sale
        extracted, inventory_map, vehicle_map, totals = _targets(invoice)
        apply_invoice_side_effects(
            invoice=invoice,
            links=extracted.links,
            inventory_map=inventory_map,
            vehicle_map=vehicle_map,
            totals=totals,
            adjust_inventory=True,
            commit=False,
        )
        assert part.quantity == 8
        db_session.rollback()
        assert part.quantity == 10


class TestRelease:

    def test_release_restores_stock_and_keeps_sold_vehicle(self, db_session, paid_sale):
        invoice, part, vehicle = paid_sale
        _apply(invoice)
        _release(invoice)

        assert part.quantity == 10
        assert part.status == "IN_STOCK"
        assert vehicle.status == "SOLD"
        assert invoice.meta["inventoryAdjusted"] is False
        assert invoice.meta["inventoryRestored"] is True
        # The ledger row survives a release.
        assert db_session.query(Transaction).filter_by(invoice_id=invoice.id).count() == 1

    def test_release_frees_reserved_vehicle(self, db_session, customer, make_vehicle):
        vehicle = make_vehicle()
        invoice = _invoice(db_session, customer, "CANCELLED", [
            {"description": "Car", "quantity": 1, "unit_price_cents": 40000,
             "metadata": {"itemType": "VEHICLE", "vehicleId": vehicle.id}},
        ])
        vehicle.status = "RESERVED"
        db_session.commit()

        _release(invoice)
        assert vehicle.status == "AVAILABLE"


class TestStockHelpers:

    def test_line_stock_quantity_rounds_half_up(self):
        assert line_stock_quantity("2.5") == 3
        assert line_stock_quantity(2.49) == 2
        assert line_stock_quantity(-4) == 0
        assert line_stock_quantity(None) == 0

    def test_low_stock_boundary_is_inclusive(self, make_part):
        part = make_part(quantity=5, min_stock_level=5)
        set_quantity(part, part.quantity - 0)
        assert part.status == "LOW_STOCK"

    def test_status_derivation(self, make_part):
        part = make_part(quantity=10, min_stock_level=3)
        assert derive_inventory_status(part, 4) == "IN_STOCK"
        assert derive_inventory_status(part, 3) == "LOW_STOCK"
        assert derive_inventory_status(part, 0) == "OUT_OF_STOCK"

    def test_discontinued_is_sticky(self, make_part):
        part = make_part(quantity=10, status="DISCONTINUED")
        set_quantity(part, 0)
        assert part.status == "DISCONTINUED"

    def test_merge_metadata_reassigns(self, db_session, customer):
        invoice = _invoice(db_session, customer, "DRAFT", [
            {"description": "Labour", "quantity": 1, "unit_price_cents": 100, "metadata": {}},
        ])
        before = invoice.meta
        merge_invoice_metadata(invoice, {"saleStatus": "DRAFT"})
        assert invoice.meta is not before
        assert invoice.meta["saleStatus"] == "DRAFT"
