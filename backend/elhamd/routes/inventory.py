# Overview: Flask API routes for parts inventory; parses input and returns JSON responses.
"""
Inventory management routes.

- quantity changes outside invoices go through POST /items/<id>/adjust
- status is derived by the service; clients never set it directly
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..validation import ValidationError, parse_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/items")
def list_items_route():
    try:
        items = inventory_service.list_inventory_items(status=request.args.get("status"))
        return jsonify({"items": [item.to_dict() for item in items]}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@inventory_bp.post("/items/<int:item_id>/adjust")
def adjust_item_route(item_id: int):
    """
    Adjust on-hand quantity.

    Request body:
    {
        "quantity_delta": -3,
        "reason": "Damaged in storage"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if "quantity_delta" not in data:
            raise ValidationError("quantity_delta is required", details={"field": "quantity_delta"})
        item = inventory_service.adjust_stock(
            inventory_item_id=item_id,
            quantity_delta=parse_int(data["quantity_delta"], "quantity_delta"),
            reason=data.get("reason"),
        )
        return jsonify({"item": item.to_dict()}), 200
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500


@inventory_bp.get("/low-stock")
def low_stock_route():
    items = inventory_service.list_low_stock()
    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)}), 200
