# Overview: Flask API routes for customers.

from flask import Blueprint, request, jsonify, current_app

from ..errors import StockSnapError
from ..models import Customer
from ..services import customer_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    customers = customer_service.list_customers()
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(patch)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"customer": customer.to_dict()}), 200
