# Overview: Flask API routes for dashboard and sales report aggregates.

from flask import Blueprint, request, jsonify, g

from ..services import reporting_service
from ..validation import coerce_date
from ..decorators import require_auth
from .errors import handle_route_error


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return jsonify(reporting_service.dashboard_summary(g.current_user)), 200


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    """
    Query params: payment_status, sales_channel, product_id,
    date_from, date_to (YYYY-MM-DD, inclusive), search
    """
    try:
        date_from = request.args.get("date_from")
        date_to = request.args.get("date_to")
        report = reporting_service.sales_report(
            g.current_user,
            payment_status=request.args.get("payment_status"),
            sales_channel=request.args.get("sales_channel"),
            product_id=request.args.get("product_id", type=int),
            date_from=coerce_date("date_from", date_from) if date_from else None,
            date_to=coerce_date("date_to", date_to) if date_to else None,
            search=request.args.get("search"),
        )
        return jsonify(report), 200
    except Exception as e:
        return handle_route_error(e, "Failed to build sales report")
