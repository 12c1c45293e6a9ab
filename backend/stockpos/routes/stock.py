# backend/stockpos/routes/stock.py
"""
Stock ledger routes.

- Listing and item types are available to every signed-in operator
- Restock, adjust, delete and new item types require the admin role
"""
from flask import Blueprint, request, jsonify

from ..services import inventory_service
from ..services.inventory_service import serialize_item
from ..validation import PayloadPolicy, validate_payload
from ..decorators import require_auth, require_role


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

RESTOCK_POLICY = PayloadPolicy(
    writable_fields=frozenset({"name", "quantity", "category", "price", "notify_threshold"}),
    required=frozenset({"name", "quantity", "category", "price"}),
)

ADJUST_POLICY = PayloadPolicy(
    writable_fields=frozenset({"delta"}),
    required=frozenset({"delta"}),
)

ITEM_TYPE_POLICY = PayloadPolicy(
    writable_fields=frozenset({"name"}),
    required=frozenset({"name"}),
)


@stock_bp.get("/")
@require_auth
def list_stock_route():
    """List stock sorted by name. Optional ?category= and ?search= filters."""
    items = inventory_service.list_stock(
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return jsonify({"items": [serialize_item(i) for i in items]}), 200


@stock_bp.get("/low")
@require_auth
def low_stock_route():
    items = inventory_service.low_stock_items()
    return jsonify({"items": [serialize_item(i) for i in items]}), 200


@stock_bp.post("/restock")
@require_auth
@require_role("admin")
def restock_route():
    """
    Add stock. An existing name is topped up and its category and price
    overwritten; a new name creates a new item.
    """
    patch = validate_payload(payload=request.get_json(silent=True), policy=RESTOCK_POLICY)
    item = inventory_service.restock(
        name=patch["name"],
        quantity=patch["quantity"],
        category=patch["category"],
        unit_price=patch["price"],
        notify_threshold=patch.get("notify_threshold"),
    )
    return jsonify({"item": serialize_item(item)}), 201


@stock_bp.post("/<item_id>/adjust")
@require_auth
@require_role("admin")
def adjust_route(item_id: str):
    """Apply a signed quantity delta. Reaching zero removes the item."""
    patch = validate_payload(payload=request.get_json(silent=True), policy=ADJUST_POLICY)
    item = inventory_service.adjust(item_id, patch["delta"])
    if item is None:
        return jsonify({"item": None, "removed": True}), 200
    return jsonify({"item": serialize_item(item), "removed": False}), 200


@stock_bp.delete("/<item_id>")
@require_auth
@require_role("admin")
def delete_route(item_id: str):
    inventory_service.delete_item(item_id)
    return jsonify({"message": "Stock item deleted successfully."}), 200


@stock_bp.get("/types")
@require_auth
def list_item_types_route():
    return jsonify({"item_types": inventory_service.list_item_types()}), 200


@stock_bp.post("/types")
@require_auth
@require_role("admin")
def add_item_type_route():
    patch = validate_payload(payload=request.get_json(silent=True), policy=ITEM_TYPE_POLICY)
    name = inventory_service.add_item_type(patch["name"])
    return jsonify({"item_type": name}), 201
