# backend/stocksnap/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations are open to every signed-in user
- Write operations require the admin role
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockSnapError, ValidationError
from ..models import Product
from ..models.auth import ROLE_ADMIN
from ..services import catalog_service, stock_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category",
        "price", "cost_price", "low_stock_threshold", "image_url",
    },
    required_on_create={"name", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: substring of name, sku or barcode (optional)
    - category: exact category, case-insensitive (optional)
    - sort: name | sku | stock_quantity | price | category | created_at | updated_at
    """
    try:
        products = catalog_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            sort=request.args.get("sort", "name"),
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Create a product. `initial_stock` (optional) is booked as an "in" movement.
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", 0)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(
            patch,
            g.session_context.user_id,
            initial_stock=initial_stock,
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        if isinstance(payload, dict) and "stock_quantity" in payload:
            raise ValidationError("stock_quantity can only change through stock movements")
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200


@products_bp.get("/barcode/<string:code>")
@require_auth
def product_by_barcode_route(code: str):
    """Scanner lookup."""
    product = catalog_service.find_by_barcode(code)
    if product is None:
        return jsonify({"error": "No product for this barcode", "details": {"barcode": code}}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/barcode")
@require_auth
@require_role(ROLE_ADMIN)
def link_barcode_route(product_id: int):
    data = request.get_json(silent=True) or {}

    try:
        product = catalog_service.link_barcode(product_id, data.get("barcode"))
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to link barcode")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    limit = request.args.get("limit", 200, type=int)
    try:
        movements = stock_service.list_movements(product_id, limit=limit)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
