# Overview: Flask API routes for invoices; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import invoice_service
from ..validation import ValidationError, coerce_int

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
@handle_service_errors("list invoices")
def list_invoices_route():
    customer_id = request.args.get("customer_id")
    invoices = invoice_service.list_invoices(
        g.account_id,
        status=request.args.get("status"),
        customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
    )
    return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@handle_service_errors("get invoice")
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(g.account_id, invoice_id)
    return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200


@invoices_bp.post("/generate-from-sale")
@require_auth
@handle_service_errors("generate invoice")
def generate_invoice_route():
    """Body: {sale_id}; any sale of the order may be given."""
    data = request.get_json(silent=True) or {}
    if data.get("sale_id") is None:
        raise ValidationError("sale_id required", {"field": "sale_id"})

    invoice = invoice_service.generate_invoice(g.account_id, coerce_int(data["sale_id"], "sale_id"))
    return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201


@invoices_bp.post("/preview-number")
@require_auth
@handle_service_errors("preview invoice number")
def preview_number_route():
    return jsonify({"invoice_number": invoice_service.preview_number(g.account_id)}), 200


@invoices_bp.put("/<int:invoice_id>/status")
@require_auth
@handle_service_errors("update invoice status")
def update_invoice_status_route(invoice_id: int):
    invoice = invoice_service.update_invoice_status(g.account_id, invoice_id, request.get_json(silent=True))
    return jsonify({"invoice": invoice.to_dict()}), 200


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
@handle_service_errors("delete invoice")
def delete_invoice_route(invoice_id: int):
    result = invoice_service.delete_invoice(g.account_id, invoice_id)
    return jsonify(result), 200
