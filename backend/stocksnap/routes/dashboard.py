from datetime import date

from flask import Blueprint, jsonify, request

from ..services import dashboard_service
from ..services.statistics import MAX_STATS_DAYS
from ..decorators import require_auth


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _today_arg():
    raw = request.args.get("today")
    return date.fromisoformat(raw) if raw else None


@dashboard_bp.get("/low-stock")
@require_auth
def low_stock_route():
    limit = request.args.get("limit", 5, type=int)
    products = dashboard_service.low_stock(limit)
    return jsonify({"items": [p.to_dict() for p in products]}), 200


@dashboard_bp.get("/top-sellers")
@require_auth
def top_sellers_route():
    limit = request.args.get("limit", 5, type=int)
    sample_size = request.args.get("sample_size", type=int)
    return jsonify({"items": dashboard_service.top_sellers(limit, sample_size)}), 200


@dashboard_bp.get("/sales-stats")
@require_auth
def sales_stats_route():
    days = request.args.get("days", 7, type=int)
    try:
        buckets = dashboard_service.sales_stats(days, _today_arg())
    except (ValueError, OverflowError):
        return jsonify({"error": f"today must be YYYY-MM-DD and days between 0 and {MAX_STATS_DAYS}"}), 400
    return jsonify({"items": buckets}), 200


@dashboard_bp.get("/summary")
@require_auth
def summary_route():
    try:
        return jsonify(dashboard_service.summary(today=_today_arg())), 200
    except (ValueError, OverflowError):
        return jsonify({"error": "today must be YYYY-MM-DD"}), 400
