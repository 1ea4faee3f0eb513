# Overview: Multi-product orders ("sale groups"); keeps sales, stock and invoices consistent.

"""
A customer order with N product lines is stored as N Sale rows sharing a
group id. The id lives in sales.group_id and is also stamped into notes as
"[GROUP:<id>]" so clients that group by notes keep working. Older rows that
only carry the tag are still resolved through it.

Group lifecycle (GroupState):
- ACTIVE: one or more rows, no invoice
- INVOICED: one or more rows, exactly one invoice anchored on a member
- DISSOLVED: no rows left

Transitions are only made by the functions in this module:
- create_order: -> ACTIVE
- update_status: status/platform/notes/date on every member; invoices untouched
- update_order: rebuilds the lines; any invoice is discarded and its number
  reclaimed, so the result is a fresh ACTIVE group
- update_sale: single-row edit; an existing invoice is recomputed in place
- delete_order: ACTIVE -> DISSOLVED (refused while INVOICED)
- invoice_service.generate_invoice: ACTIVE -> INVOICED

Each operation is one database transaction. All stock checks happen before
the first write, so a rejected request changes nothing.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Invoice, Product, Sale
from ..validation import (
    AccountAccessError,
    ConflictError,
    ModelValidationPolicy,
    PLATFORM_SOURCES,
    SALE_STATUSES,
    ValidationError,
    coerce_int,
    enforce_rules_sale_line,
    validate_payload,
)
from farmdesk.time_utils import utcnow
from . import stock_service
from .concurrency import run_in_transaction
from .tenant_service import get_owned_or_404, shares_account

GROUP_TAG_PATTERN = re.compile(r"\[GROUP:([^\]]+)\]")
GROUP_TAG_STRIP_PATTERN = re.compile(r"\s*\[GROUP:[^\]]+\]")

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "status", "platform_source", "notes", "sale_date"},
    required_on_create={"customer_id"},
    choices={"status": SALE_STATUSES, "platform_source": PLATFORM_SOURCES},
)

STATUS_POLICY = ModelValidationPolicy(
    writable_fields={"status", "platform_source", "notes", "sale_date"},
    choices={"status": SALE_STATUSES, "platform_source": PLATFORM_SOURCES},
)

SALE_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id", "product_id", "quantity", "unit_price_cents", "discount_cents",
        "status", "platform_source", "notes", "sale_date",
    },
    choices={"status": SALE_STATUSES, "platform_source": PLATFORM_SOURCES},
)

AMOUNT_FIELDS = ("product_id", "quantity", "unit_price_cents", "discount_cents")


class InvoiceConflictError(ConflictError):
    """The order is referenced by an invoice that blocks the requested change."""


class GroupState(str, Enum):
    ACTIVE = "active"
    INVOICED = "invoiced"
    DISSOLVED = "dissolved"


@dataclass
class SaleGroup:
    group_id: str | None
    members: list[Sale]
    invoices: list[Invoice]

    @property
    def anchor(self) -> Sale | None:
        return self.members[0] if self.members else None

    @property
    def state(self) -> GroupState:
        if not self.members:
            return GroupState.DISSOLVED
        if self.invoices:
            return GroupState.INVOICED
        return GroupState.ACTIVE

    @property
    def subtotal_cents(self) -> int:
        return sum(m.total_cents for m in self.members)

    def invoice_numbers(self) -> list[str]:
        return [inv.invoice_number for inv in self.invoices]

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "state": self.state.value,
            "anchor_sale_id": self.anchor.id if self.anchor else None,
            "subtotal_cents": self.subtotal_cents,
            "sales": [m.to_dict() for m in self.members],
            "invoices": [inv.to_dict() for inv in self.invoices],
        }


@dataclass
class OrderLine:
    product: Product
    quantity: int
    unit_price_cents: int
    discount_cents: int


@dataclass
class OrderResult:
    sales: list[Sale]
    group_id: str | None = None
    stock_warnings: list[dict] = field(default_factory=list)
    released_invoice_numbers: list[str] = field(default_factory=list)
    invoice: Invoice | None = None

    def to_dict(self) -> dict:
        return {
            "sales": [s.to_detail_dict() for s in self.sales],
            "group_id": self.group_id,
            "stock_warnings": self.stock_warnings,
            "released_invoice_numbers": self.released_invoice_numbers,
            "released_invoice_count": len(self.released_invoice_numbers),
            "invoice": self.invoice.to_dict(include_items=True) if self.invoice else None,
        }


# =============================================================================
# Group tag helpers
# =============================================================================

def new_group_id() -> str:
    return uuid.uuid4().hex


def extract_group_tag(notes: str | None) -> str | None:
    if not notes:
        return None
    match = GROUP_TAG_PATTERN.search(notes)
    return match.group(1) if match else None


def strip_group_tag(notes: str | None) -> str | None:
    if not notes:
        return None
    cleaned = GROUP_TAG_STRIP_PATTERN.sub("", notes).strip()
    return cleaned or None


def compose_notes(notes: str | None, group_id: str | None) -> str | None:
    """User notes with any stale tag removed and the current tag appended."""
    base = strip_group_tag(notes)
    if not group_id:
        return base
    tag = f"[GROUP:{group_id}]"
    return f"{base} {tag}" if base else tag


def group_key(sale: Sale) -> str | None:
    return sale.group_id or extract_group_tag(sale.notes)


def compute_amounts(*, quantity: int, unit_price_cents: int, discount_cents: int, cost_price_cents: int) -> tuple[int, int]:
    """(total_cents, profit_cents) for one line; discount is per unit."""
    net_unit = unit_price_cents - discount_cents
    return net_unit * quantity, (net_unit - cost_price_cents) * quantity


# =============================================================================
# Group resolution
# =============================================================================

def _group_members(sale: Sale) -> list[Sale]:
    key = group_key(sale)
    if not key:
        return [sale]
    return (
        db.session.query(Sale)
        .filter(
            Sale.account_id == sale.account_id,
            Sale.customer_id == sale.customer_id,
            or_(Sale.group_id == key, Sale.notes.contains(f"[GROUP:{key}]", autoescape=True)),
        )
        .order_by(Sale.id.asc())
        .all()
    )


def _invoices_for(members: list[Sale]) -> list[Invoice]:
    if not members:
        return []
    return (
        db.session.query(Invoice)
        .filter(Invoice.sale_id.in_([m.id for m in members]))
        .order_by(Invoice.id.asc())
        .all()
    )


def resolve_group(sale: Sale) -> SaleGroup:
    members = _group_members(sale)
    return SaleGroup(group_id=group_key(sale), members=members, invoices=_invoices_for(members))


def describe_group(account_id: int, sale_id: int) -> SaleGroup:
    sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale")
    return resolve_group(sale)


def get_sale(account_id: int, sale_id: int) -> Sale:
    return get_owned_or_404(Sale, sale_id, account_id, label="Sale")


def list_sales(account_id: int, *, customer_id: int | None = None, status: str | None = None) -> list[Sale]:
    query = db.session.query(Sale).filter(Sale.account_id == account_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if status is not None:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


# =============================================================================
# Input parsing
# =============================================================================

def _require_editor(sale: Sale, actor_user_id: int | None) -> None:
    """
    The order's creator, or any login sharing the creator's business
    account, may edit it.
    """
    owner_id = sale.created_by_user_id
    if actor_user_id is None or owner_id is None or owner_id == actor_user_id:
        return
    if not shares_account(actor_user_id, owner_id):
        raise AccountAccessError(
            "Only the order owner or members of the owner's business account may change this order",
            {"sale_id": sale.id},
        )


def _parse_lines(account_id: int, raw_lines) -> list[OrderLine]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list", {"field": "lines"})

    lines = []
    for index, raw in enumerate(raw_lines):
        prefix = f"lines[{index}]."
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object", {"field": f"lines[{index}]"})
        unknown = set(raw) - {"product_id", "quantity", "unit_price_cents", "discount_cents"}
        if unknown:
            raise ValidationError(
                f"{prefix}{sorted(unknown)[0]} is not allowed",
                {"field": f"{prefix}{sorted(unknown)[0]}"},
            )
        if raw.get("product_id") is None:
            raise ValidationError(f"{prefix}product_id is required", {"field": f"{prefix}product_id"})
        if raw.get("quantity") is None:
            raise ValidationError(f"{prefix}quantity is required", {"field": f"{prefix}quantity"})

        product = get_owned_or_404(
            Product, coerce_int(raw["product_id"], f"{prefix}product_id"), account_id, label="Product"
        )
        line = {
            "quantity": coerce_int(raw["quantity"], f"{prefix}quantity"),
            "unit_price_cents": (
                coerce_int(raw["unit_price_cents"], f"{prefix}unit_price_cents")
                if raw.get("unit_price_cents") is not None
                else product.selling_price_cents
            ),
            "discount_cents": (
                coerce_int(raw["discount_cents"], f"{prefix}discount_cents")
                if raw.get("discount_cents") is not None
                else 0
            ),
        }
        enforce_rules_sale_line(line, prefix=prefix)
        lines.append(OrderLine(product=product, **line))
    return lines


def _parse_order(account_id: int, payload: dict | None, *, partial: bool) -> tuple[dict, list[OrderLine]]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    body = dict(payload)
    raw_lines = body.pop("lines", None)
    fields = validate_payload(model=Sale, payload=body, policy=ORDER_POLICY, partial=partial)
    if "customer_id" in fields:
        get_owned_or_404(Customer, fields["customer_id"], account_id, label="Customer")
    return fields, _parse_lines(account_id, raw_lines)


def _requirements(lines: list[OrderLine]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product.id] = totals.get(line.product.id, 0) + line.quantity
    return totals


def _apply_line(sale: Sale, line: OrderLine) -> None:
    sale.product_id = line.product.id
    sale.quantity = line.quantity
    sale.unit_price_cents = line.unit_price_cents
    sale.discount_cents = line.discount_cents
    sale.total_cents, sale.profit_cents = compute_amounts(
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        discount_cents=line.discount_cents,
        cost_price_cents=line.product.cost_price_cents,
    )


def _new_sale(account_id: int, user_id: int | None, shared: dict, line: OrderLine) -> Sale:
    sale = Sale(account_id=account_id, created_by_user_id=user_id, **shared)
    _apply_line(sale, line)
    db.session.add(sale)
    return sale


# =============================================================================
# Operations
# =============================================================================

def create_order(account_id: int, user_id: int | None, payload: dict) -> OrderResult:
    """
    Create one Sale row per line. Every line's stock is checked before any
    is decremented; more than one line stamps a fresh group id on all rows.
    """
    def _op() -> OrderResult:
        fields, lines = _parse_order(account_id, payload, partial=False)
        stock_service.check_availability(account_id, _requirements(lines))

        group_id = new_group_id() if len(lines) > 1 else None
        shared = {
            "customer_id": fields["customer_id"],
            "status": fields.get("status") or "unpaid",
            "platform_source": fields.get("platform_source") or "others",
            "sale_date": fields.get("sale_date") or utcnow(),
            "notes": compose_notes(fields.get("notes"), group_id),
            "group_id": group_id,
        }

        created = []
        for line in lines:
            stock_service.adjust(line.product.id, -line.quantity, account_id=account_id)
            created.append(_new_sale(account_id, user_id, shared, line))
        db.session.flush()

        return OrderResult(
            sales=created,
            group_id=group_id,
            stock_warnings=stock_service.low_stock_warnings(account_id, _requirements(lines)),
        )

    return run_in_transaction(_op)


def update_status(account_id: int, sale_id: int, payload: dict, actor_user_id: int | None = None) -> list[Sale]:
    """
    Workflow-only edit applied to every member of the order.

    Never touches quantities, prices, stock or invoices.
    """
    def _op() -> list[Sale]:
        patch = validate_payload(model=Sale, payload=payload, policy=STATUS_POLICY, partial=True)
        if not patch:
            raise ValidationError("No fields to update")

        sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale", lock=True)
        _require_editor(sale, actor_user_id)

        group = resolve_group(sale)
        for member in group.members:
            for key in ("status", "platform_source", "sale_date"):
                if key in patch:
                    setattr(member, key, patch[key])
            if "notes" in patch:
                member.notes = compose_notes(patch["notes"], group_key(member))
        db.session.flush()
        return group.members

    return run_in_transaction(_op)


def _discard_invoices(account_id: int, invoices: list[Invoice]) -> list[str]:
    from . import invoice_number_service

    numbers = []
    for invoice in invoices:
        numbers.append(invoice.invoice_number)
        db.session.delete(invoice)
    db.session.flush()
    for number in numbers:
        invoice_number_service.reclaim_number(account_id, number, commit=False)
    if numbers:
        invoice_number_service.reset_if_empty(account_id, commit=False)
    return numbers


def update_order(account_id: int, sale_id: int, payload: dict, actor_user_id: int | None = None) -> OrderResult:
    """
    Rebuild an order's product lines.

    The edited sale stays as the anchor row; other members are removed and
    new rows inserted for the remaining lines. Any invoice on the old group
    is deleted and its number reclaimed, since its lines no longer match.
    """
    def _op() -> OrderResult:
        fields, lines = _parse_order(account_id, payload, partial=True)

        anchor = get_owned_or_404(Sale, sale_id, account_id, label="Sale", lock=True)
        _require_editor(anchor, actor_user_id)
        group = resolve_group(anchor)

        credits: dict[int, int] = {}
        for member in group.members:
            credits[member.product_id] = credits.get(member.product_id, 0) + member.quantity
        stock_service.check_availability(account_id, _requirements(lines), credits)

        released = _discard_invoices(account_id, group.invoices)

        for member in group.members:
            stock_service.adjust(member.product_id, member.quantity, account_id=account_id)
        for member in group.members:
            if member.id != anchor.id:
                db.session.delete(member)
        db.session.flush()

        group_id = new_group_id() if len(lines) > 1 else None
        base_notes = fields["notes"] if "notes" in fields else anchor.notes
        shared = {
            "customer_id": fields.get("customer_id", anchor.customer_id),
            "status": fields.get("status", anchor.status),
            "platform_source": fields.get("platform_source", anchor.platform_source),
            "sale_date": fields.get("sale_date") or anchor.sale_date,
            "notes": compose_notes(base_notes, group_id),
            "group_id": group_id,
        }

        for line in lines:
            stock_service.adjust(line.product.id, -line.quantity, account_id=account_id)

        for key, value in shared.items():
            setattr(anchor, key, value)
        _apply_line(anchor, lines[0])
        rows = [anchor]
        for line in lines[1:]:
            rows.append(_new_sale(account_id, anchor.created_by_user_id, shared, line))
        db.session.flush()

        touched = set(credits) | set(_requirements(lines))
        return OrderResult(
            sales=rows,
            group_id=group_id,
            stock_warnings=stock_service.low_stock_warnings(account_id, touched),
            released_invoice_numbers=released,
        )

    return run_in_transaction(_op)


def _refresh_invoice(account_id: int, sale: Sale) -> Invoice | None:
    from . import invoice_service

    group = resolve_group(sale)
    if not group.invoices:
        return None
    invoice = group.invoices[0]
    invoice_service.apply_group_to_invoice(invoice, group)
    return invoice


def on_sale_amounts_changed(account_id: int, sale_id: int, *, commit: bool = True) -> Invoice | None:
    """
    Bring the group's invoice (if any) back in line with the live sales:
    totals recomputed, items regenerated, dates moved with the anchor's
    sale date. Returns the invoice, or None when the group has none.
    """
    def _op():
        sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale")
        return _refresh_invoice(account_id, sale)

    if not commit:
        return _op()
    return run_in_transaction(_op)


def update_sale(account_id: int, sale_id: int, payload: dict, actor_user_id: int | None = None) -> OrderResult:
    """
    Full edit of a single sale row.

    Stock moves by the difference between old and new lines (validated
    first); totals and profit are recomputed; a linked invoice follows the
    new amounts, sale date and customer. Status, platform source and sale
    date are shared by the whole order, so on a grouped row they are
    written to every member.
    """
    def _op() -> OrderResult:
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_EDIT_POLICY, partial=True)
        if not patch:
            raise ValidationError("No fields to update")

        sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale", lock=True)
        _require_editor(sale, actor_user_id)
        key = group_key(sale)

        if "customer_id" in patch and patch["customer_id"] != sale.customer_id:
            if key:
                raise ValidationError(
                    "Use the multi-product endpoint to move a grouped order to another customer",
                    {"field": "customer_id"},
                )
            get_owned_or_404(Customer, patch["customer_id"], account_id, label="Customer")

        old_product_id, old_quantity = sale.product_id, sale.quantity
        product = get_owned_or_404(
            Product, patch.get("product_id", old_product_id), account_id, label="Product"
        )
        line = {
            "quantity": patch.get("quantity", sale.quantity),
            "unit_price_cents": patch.get("unit_price_cents", sale.unit_price_cents),
            "discount_cents": patch.get("discount_cents", sale.discount_cents),
        }
        enforce_rules_sale_line(line)

        amounts_changed = any(
            k in patch and patch[k] != getattr(sale, k) for k in AMOUNT_FIELDS
        )
        date_changed = "sale_date" in patch and patch["sale_date"] != sale.sale_date
        customer_changed = "customer_id" in patch and patch["customer_id"] != sale.customer_id

        if product.id == old_product_id:
            extra = line["quantity"] - old_quantity
            if extra > 0:
                stock_service.check_availability(account_id, {product.id: extra})
            if extra:
                stock_service.adjust(product.id, -extra, account_id=account_id)
        else:
            stock_service.check_availability(account_id, {product.id: line["quantity"]})
            stock_service.adjust(old_product_id, old_quantity, account_id=account_id)
            stock_service.adjust(product.id, -line["quantity"], account_id=account_id)

        members = resolve_group(sale).members if key else [sale]
        for member in members:
            for k in ("status", "platform_source", "sale_date"):
                if k in patch:
                    setattr(member, k, patch[k])
        if "customer_id" in patch:
            sale.customer_id = patch["customer_id"]
        if "notes" in patch:
            sale.notes = compose_notes(patch["notes"], key)
        _apply_line(sale, OrderLine(product=product, **line))
        db.session.flush()

        invoice = None
        if amounts_changed or date_changed or customer_changed:
            invoice = _refresh_invoice(account_id, sale)

        return OrderResult(
            sales=[sale],
            group_id=key,
            stock_warnings=stock_service.low_stock_warnings(account_id, {old_product_id, product.id}),
            invoice=invoice,
        )

    return run_in_transaction(_op)


def delete_order(account_id: int, sale_id: int, actor_user_id: int | None = None) -> dict:
    """
    Delete every row of the order and hand their stock back.

    Refused while an invoice references the order; the invoice has to be
    deleted first.
    """
    def _op() -> dict:
        sale = get_owned_or_404(Sale, sale_id, account_id, label="Sale", lock=True)
        _require_editor(sale, actor_user_id)
        group = resolve_group(sale)

        if group.invoices:
            numbers = group.invoice_numbers()
            raise InvoiceConflictError(
                f"Cannot delete order: invoice {', '.join(numbers)} still references it. "
                "Delete the invoice first.",
                {"invoice_numbers": numbers},
            )

        sale_ids = [m.id for m in group.members]
        for member in group.members:
            stock_service.adjust(member.product_id, member.quantity, account_id=account_id)
            db.session.delete(member)
        db.session.flush()

        return {
            "deleted_count": len(sale_ids),
            "sale_ids": sale_ids,
            "group_id": group.group_id,
            "released_invoice_numbers": [],
        }

    return run_in_transaction(_op)


def backfill_group_ids(account_id: int | None = None, *, dry_run: bool = False) -> int:
    """Copy legacy "[GROUP:<id>]" tags from notes into sales.group_id."""
    query = db.session.query(Sale).filter(Sale.group_id.is_(None), Sale.notes.contains("[GROUP:"))
    if account_id is not None:
        query = query.filter(Sale.account_id == account_id)

    updated = 0
    for sale in query.all():
        tag = extract_group_tag(sale.notes)
        if tag:
            updated += 1
            if not dry_run:
                sale.group_id = tag
    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()
    return updated
