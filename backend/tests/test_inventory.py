# Overview: Pytest coverage for direct stock adjustments and low-stock listing.

import pytest

from elhamd.services import inventory_service
from elhamd.services.inventory_service import InventoryError
from elhamd.validation import NotFoundError, ValidationError


class TestAdjustStock:

    def test_receive_and_shrink(self, make_part):
        part = make_part(quantity=4, min_stock_level=5)
        assert part.status == "LOW_STOCK"

        inventory_service.adjust_stock(inventory_item_id=part.id, quantity_delta=10, reason="Delivery")
        assert part.quantity == 14
        assert part.status == "IN_STOCK"
        assert part.meta["lastStockUpdate"]["previousQuantity"] == 4
        assert part.meta["lastStockUpdate"]["reason"] == "Delivery"

        inventory_service.adjust_stock(inventory_item_id=part.id, quantity_delta=-14)
        assert part.quantity == 0
        assert part.status == "OUT_OF_STOCK"

    def test_cannot_go_negative(self, make_part):
        part = make_part(quantity=2)
        with pytest.raises(InventoryError) as exc:
            inventory_service.adjust_stock(inventory_item_id=part.id, quantity_delta=-3)
        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert part.quantity == 2

    def test_zero_delta_rejected(self, make_part):
        part = make_part()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(inventory_item_id=part.id, quantity_delta=0)

    def test_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(inventory_item_id=987654, quantity_delta=1)


class TestListing:

    def test_low_stock_lists_low_and_out(self, make_part):
        make_part(quantity=20, min_stock_level=5)
        low = make_part(quantity=5, min_stock_level=5)
        out = make_part(quantity=0, min_stock_level=5)

        items = inventory_service.list_low_stock()
        assert [item.id for item in items] == [out.id, low.id]

    def test_status_filter(self, make_part):
        make_part(quantity=20)
        make_part(quantity=0)
        assert len(inventory_service.list_inventory_items(status="OUT_OF_STOCK")) == 1
        with pytest.raises(InventoryError):
            inventory_service.list_inventory_items(status="MISSING")
