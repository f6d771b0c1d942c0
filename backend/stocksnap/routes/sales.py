# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""Sales API routes. Sales are immutable: create and read only."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ConsistencyWarning, StockSnapError
from ..services import sales_service
from ..decorators import require_auth
from stocksnap.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def record_sale_route():
    """
    Record a sale for the signed-in seller.

    Body: {items: [{product_id, quantity}], payment_method, discount?,
           customer_id?, customer_name?, receipt_url?}
    Unit prices always come from the catalog.
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.record_sale(
            data.get("items") or [],
            data.get("payment_method"),
            g.session_context.user_id,
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            discount=data.get("discount", 0),
            receipt_url=data.get("receipt_url"),
        )
    except ConsistencyWarning as e:
        body = e.to_dict()
        body["sale"] = e.sale.to_dict()
        return jsonify(body), e.status_code
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params: since, until (ISO-8601), limit. Newest first.
    """
    try:
        since = parse_iso_datetime(request.args.get("since"))
        until = parse_iso_datetime(request.args.get("until"))
    except ValueError:
        return jsonify({"error": "since/until must be ISO-8601 datetimes"}), 400

    try:
        sales = sales_service.list_sales(
            since=since,
            until=until,
            limit=request.args.get("limit", type=int),
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "total": sum(s.total for s in sales),
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict()}), 200
