# Overview: Flask API routes for reports; parses input and returns JSON responses.

# backend/farmdesk/routes/reports.py
"""
Reporting endpoints.

All accept optional ?start= and ?end= ISO-8601 dates bounding sale_date.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range() -> dict:
    return {"start": request.args.get("start"), "end": request.args.get("end")}


@reports_bp.get("/dashboard")
@require_auth
@handle_service_errors("build dashboard report")
def dashboard_report():
    return jsonify({"dashboard": reporting_service.dashboard(g.account_id, **_range())}), 200


@reports_bp.get("/revenue-by-month")
@require_auth
@handle_service_errors("build revenue report")
def revenue_by_month_report():
    return jsonify({"months": reporting_service.revenue_by_month(g.account_id, **_range())}), 200


@reports_bp.get("/top-products")
@require_auth
@handle_service_errors("build top products report")
def top_products_report():
    return jsonify({"products": reporting_service.top_products(g.account_id, **_range())}), 200
