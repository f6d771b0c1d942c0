# backend/stocksnap/routes/stock.py
"""
Stock movement routes.

- in / out movements: any signed-in user
- adjustment (absolute level): admin only
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockSnapError
from ..models.auth import ROLE_ADMIN
from ..models.ledger import MOVEMENT_ADJUSTMENT
from ..services import stock_service
from ..decorators import require_auth


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/movements")
@require_auth
def create_movement_route():
    """
    Body: {product_id, type: in|out|adjustment, quantity, reason}

    For "adjustment", quantity is the new absolute stock level.
    """
    data = request.get_json(silent=True) or {}
    movement_type = data.get("type")

    if movement_type == MOVEMENT_ADJUSTMENT and g.current_user.role != ROLE_ADMIN:
        return jsonify({"error": "Permission denied", "required_role": [ROLE_ADMIN]}), 403

    product_id = data.get("product_id")
    if product_id is None:
        return jsonify({"error": "product_id is required"}), 400

    try:
        movement = stock_service.apply_stock_change(
            product_id,
            data.get("quantity"),
            movement_type,
            data.get("reason"),
            g.session_context.user_id,
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"movement": movement.to_dict()}), 201


@stock_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Query params: product_id, type (in|out|adjustment), limit (default 200).
    Newest first.
    """
    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type") or None,
            limit=request.args.get("limit", 200, type=int),
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
