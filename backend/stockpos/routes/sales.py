# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockpos/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, request, jsonify, g

from ..services import sales_service
from ..services.sales_service import serialize_sale
from ..validation import PayloadPolicy, validate_payload
from ..decorators import require_auth, require_role


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SELL_POLICY = PayloadPolicy(
    writable_fields=frozenset({"item_id", "quantity"}),
    required=frozenset({"item_id", "quantity"}),
)


@sales_bp.post("/")
@require_auth
def sell_route():
    """
    Sell stock. The sale is attributed to the signed-in operator.

    Available to: admin, user
    """
    patch = validate_payload(payload=request.get_json(silent=True), policy=SELL_POLICY)
    result = sales_service.sell(
        item_id=str(patch["item_id"]),
        quantity=patch["quantity"],
        operator=g.session_context.username,
    )

    return jsonify({
        "sale": serialize_sale(result.sale),
        "remaining_quantity": result.remaining_quantity,
        "removed": result.remaining_quantity is None,
    }), 201


@sales_bp.get("/")
@require_auth
@require_role("admin")
def list_sales_route():
    """All sales, newest first."""
    return jsonify({"sales": [serialize_sale(s) for s in sales_service.list_sales()]}), 200


@sales_bp.get("/history")
@require_auth
@require_role("admin")
def sales_history_route():
    """Sales grouped by day with daily and overall totals."""
    return jsonify(sales_service.sales_history()), 200
