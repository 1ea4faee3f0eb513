# Overview: Invoice generation from sale groups, status changes and deletion with number reclaim.

"""
An invoice covers exactly one sale group and points at the group's anchor
(lowest id) sale. Items mirror the group's rows one to one.

Amounts:
- subtotal = sum of member sale totals
- tax = subtotal * tax_rate_bps / 10000, rounded half-up to the cent
- total = subtotal + tax

Dates: invoice_date follows the anchor sale date, due_date is 30 days later.
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Invoice, InvoiceItem, Sale
from ..validation import (
    INVOICE_STATUSES,
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
)
from . import invoice_number_service
from .concurrency import run_in_transaction
from .sale_group_service import InvoiceConflictError, SaleGroup, resolve_group
from .tenant_service import get_owned_or_404

DUE_DAYS = 30

RECLAIMED_RESET = "reset"

STATUS_POLICY = ModelValidationPolicy(
    writable_fields={"status"},
    required_on_create={"status"},
    choices={"status": INVOICE_STATUSES},
)


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Half-up rounding in integer arithmetic."""
    if not tax_rate_bps:
        return 0
    return (subtotal_cents * tax_rate_bps + 5000) // 10000


def _item_description(sale: Sale) -> str | None:
    return sale.product.name if sale.product else None


def regenerate_items(invoice: Invoice, members: list[Sale]) -> None:
    """Replace the invoice's items with one item per member sale."""
    invoice.items.clear()
    db.session.flush()
    for member in members:
        invoice.items.append(InvoiceItem(
            product_id=member.product_id,
            description=_item_description(member),
            quantity=member.quantity,
            unit_price_cents=member.unit_price_cents,
            discount_cents=member.discount_cents,
            line_total_cents=member.total_cents,
        ))


def apply_group_to_invoice(invoice: Invoice, group: SaleGroup) -> None:
    """Recompute amounts, dates, customer and items from the live group."""
    settings = invoice_number_service.ensure_settings(invoice.account_id)
    anchor = group.anchor

    invoice.subtotal_cents = group.subtotal_cents
    invoice.tax_cents = compute_tax_cents(invoice.subtotal_cents, settings.tax_rate_bps)
    invoice.total_cents = invoice.subtotal_cents + invoice.tax_cents
    if anchor is not None:
        invoice.sale_id = anchor.id
        invoice.customer_id = anchor.customer_id
        invoice.invoice_date = anchor.sale_date
        invoice.due_date = anchor.sale_date + timedelta(days=DUE_DAYS)
    regenerate_items(invoice, group.members)
    db.session.flush()


def generate_invoice(account_id: int, sale_id: int) -> Invoice:
    """
    Create the invoice for the order containing sale_id.

    Raises InvoiceConflictError when any member is already invoiced. The
    number allocation and the insert share one transaction, so a failed
    insert never burns a number.
    """
    def _op() -> Invoice:
        sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale", lock=True)
        group = resolve_group(sale)

        if group.invoices:
            numbers = group.invoice_numbers()
            raise InvoiceConflictError(
                f"Order already invoiced: {', '.join(numbers)}",
                {"invoice_numbers": numbers},
            )

        settings = invoice_number_service.ensure_settings(account_id)
        number = invoice_number_service.allocate_number(account_id, commit=False)
        anchor = group.anchor

        invoice = Invoice(
            account_id=account_id,
            customer_id=anchor.customer_id,
            sale_id=anchor.id,
            invoice_number=number,
            invoice_date=anchor.sale_date,
            due_date=anchor.sale_date + timedelta(days=DUE_DAYS),
            status="draft",
            currency=settings.currency,
            payment_terms=settings.payment_terms,
        )
        db.session.add(invoice)
        apply_group_to_invoice(invoice, group)
        return invoice

    return run_in_transaction(_op)


def preview_number(account_id: int) -> str:
    # peek may provision the settings row
    return run_in_transaction(lambda: invoice_number_service.peek_next_number(account_id))


def delete_invoice(account_id: int, invoice_id: int) -> dict:
    """
    Delete an invoice and give its number back.

    reclaimed_as is "counter" or "queued" per the reclaim policy, or "reset"
    when this was the account's last invoice and numbering restarted at 1.
    """
    def _op() -> dict:
        invoice = get_owned_or_404(Invoice, invoice_id, account_id, label="Invoice", lock=True)
        number = invoice.invoice_number
        db.session.delete(invoice)
        db.session.flush()

        reclaimed_as = invoice_number_service.reclaim_number(account_id, number, commit=False)
        if invoice_number_service.reset_if_empty(account_id, commit=False):
            reclaimed_as = RECLAIMED_RESET
        return {"invoice_number": number, "reclaimed_as": reclaimed_as}

    return run_in_transaction(_op)


def list_invoices(account_id: int, *, status: str | None = None, customer_id: int | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.account_id == account_id)
    if status is not None:
        if status not in INVOICE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(INVOICE_STATUSES)}",
                {"field": "status", "allowed": list(INVOICE_STATUSES)},
            )
        query = query.filter(Invoice.status == status)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    return query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


def get_invoice(account_id: int, invoice_id: int) -> Invoice:
    return get_owned_or_404(Invoice, invoice_id, account_id, label="Invoice")


def update_invoice_status(account_id: int, invoice_id: int, payload: dict) -> Invoice:
    def _op() -> Invoice:
        patch = validate_payload(model=Invoice, payload=payload, policy=STATUS_POLICY, partial=False)
        invoice = get_owned_or_404(Invoice, invoice_id, account_id, label="Invoice", lock=True)
        invoice.status = patch["status"]
        db.session.flush()
        return invoice

    return run_in_transaction(_op)
