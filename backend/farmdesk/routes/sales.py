# Overview: Flask API routes for sales and multi-product orders; parses input and returns JSON responses.

# backend/farmdesk/routes/sales.py
"""
Sales API routes.

Every route is scoped to g.account_id. A multi-product order is addressed
through any one of its sale ids.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import sale_group_service
from ..validation import SALE_STATUSES, ValidationError, coerce_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _log_stock_warnings(warnings: list[dict]) -> None:
    for warning in warnings:
        current_app.logger.warning(
            "Low stock for product %s (%s): %s left, threshold %s",
            warning["product_id"],
            warning["product_name"],
            warning["stock"],
            warning["threshold"],
        )


@sales_bp.get("")
@require_auth
@handle_service_errors("list sales")
def list_sales_route():
    """
    Query params:
    - customer_id: int (optional)
    - status: sale status (optional)
    """
    customer_id = request.args.get("customer_id")
    status = request.args.get("status")
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(SALE_STATUSES)}",
            {"field": "status", "allowed": list(SALE_STATUSES)},
        )

    sales = sale_group_service.list_sales(
        g.account_id,
        customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
        status=status,
    )
    return jsonify({"sales": [s.to_detail_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
@handle_service_errors("get sale")
def get_sale_route(sale_id: int):
    sale = sale_group_service.get_sale(g.account_id, sale_id)
    return jsonify({"sale": sale.to_detail_dict()}), 200


@sales_bp.get("/<int:sale_id>/group")
@require_auth
@handle_service_errors("describe sale group")
def get_sale_group_route(sale_id: int):
    group = sale_group_service.describe_group(g.account_id, sale_id)
    return jsonify({"group": group.to_dict()}), 200


@sales_bp.post("")
@require_auth
@handle_service_errors("create order")
def create_order_route():
    """
    Create an order with one or more product lines.

    Body: {customer_id, lines: [{product_id, quantity, unit_price_cents?,
    discount_cents?}], status?, platform_source?, sale_date?, notes?}
    """
    result = sale_group_service.create_order(g.account_id, g.current_user.id, request.get_json(silent=True))
    _log_stock_warnings(result.stock_warnings)
    return jsonify(result.to_dict()), 201


@sales_bp.put("/<int:sale_id>")
@require_auth
@handle_service_errors("update sale")
def update_sale_route(sale_id: int):
    result = sale_group_service.update_sale(
        g.account_id, sale_id, request.get_json(silent=True), actor_user_id=g.current_user.id
    )
    _log_stock_warnings(result.stock_warnings)
    return jsonify(result.to_dict()), 200


@sales_bp.put("/<int:sale_id>/status")
@require_auth
@handle_service_errors("update order status")
def update_status_route(sale_id: int):
    """Status, platform source, notes and sale date for every row of the order."""
    sales = sale_group_service.update_status(
        g.account_id, sale_id, request.get_json(silent=True), actor_user_id=g.current_user.id
    )
    return jsonify({"sales": [s.to_detail_dict() for s in sales], "updated_count": len(sales)}), 200


@sales_bp.put("/<int:sale_id>/multi-product")
@require_auth
@handle_service_errors("update order")
def update_order_route(sale_id: int):
    """
    Rebuild the order's product lines.

    Any invoice on the order is deleted and its number released; the
    response lists the released numbers.
    """
    result = sale_group_service.update_order(
        g.account_id, sale_id, request.get_json(silent=True), actor_user_id=g.current_user.id
    )
    _log_stock_warnings(result.stock_warnings)
    return jsonify(result.to_dict()), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
@handle_service_errors("delete order")
def delete_order_route(sale_id: int):
    result = sale_group_service.delete_order(g.account_id, sale_id, actor_user_id=g.current_user.id)
    return jsonify(result), 200
