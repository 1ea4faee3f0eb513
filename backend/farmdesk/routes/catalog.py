# Overview: Flask API routes for customers and products; parses input and returns JSON responses.

# backend/farmdesk/routes/catalog.py
"""
Customer and product management routes.

Products have no delete route: sales reference them. Retire a product by
setting status to "inactive".
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import catalog_service
from ..validation import PRODUCT_STATUSES, ValidationError

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@customers_bp.get("")
@require_auth
@handle_service_errors("list customers")
def list_customers():
    customers = catalog_service.list_customers(g.account_id, search=request.args.get("search"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_auth
@handle_service_errors("create customer")
def create_customer():
    customer = catalog_service.create_customer(g.account_id, request.get_json(silent=True))
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@handle_service_errors("get customer")
def get_customer(customer_id: int):
    customer = catalog_service.get_customer(g.account_id, customer_id)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.put("/<int:customer_id>")
@require_auth
@handle_service_errors("update customer")
def update_customer(customer_id: int):
    customer = catalog_service.update_customer(g.account_id, customer_id, request.get_json(silent=True))
    return jsonify({"customer": customer.to_dict()}), 200


@products_bp.get("")
@require_auth
@handle_service_errors("list products")
def list_products():
    status = request.args.get("status")
    if status is not None and status not in PRODUCT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(PRODUCT_STATUSES)}",
            {"field": "status", "allowed": list(PRODUCT_STATUSES)},
        )
    products = catalog_service.list_products(g.account_id, status=status)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
@require_auth
@handle_service_errors("create product")
def create_product():
    product = catalog_service.create_product(g.account_id, request.get_json(silent=True))
    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/<int:product_id>")
@require_auth
@handle_service_errors("get product")
def get_product(product_id: int):
    product = catalog_service.get_product(g.account_id, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.put("/<int:product_id>")
@require_auth
@handle_service_errors("update product")
def update_product(product_id: int):
    product = catalog_service.update_product(g.account_id, product_id, request.get_json(silent=True))
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/stock")
@require_auth
@handle_service_errors("adjust product stock")
def adjust_product_stock(product_id: int):
    """Body: {delta}; positive adds stock, negative removes it."""
    adjustment = catalog_service.adjust_product_stock(g.account_id, product_id, request.get_json(silent=True))
    if adjustment.warning:
        current_app.logger.warning(adjustment.warning["message"])
    product = catalog_service.get_product(g.account_id, product_id)
    return jsonify({
        "product": product.to_dict(),
        "stock_warning": adjustment.warning,
    }), 200
