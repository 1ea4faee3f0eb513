# backend/farmdesk/services/catalog_service.py
"""
Customers and products of a business account.

- SKU is unique per account; customer email is unique per account.
- Product stock can be set when the product is created. After that it only
  moves through stock_service (sales and manual adjustments).
"""
from __future__ import annotations

from ..extensions import db
from ..models import Customer, Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    PRODUCT_STATUSES,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from . import stock_service
from .concurrency import run_in_transaction
from .stock_service import StockAdjustment
from .tenant_service import get_owned_or_404

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "company", "address"},
    required_on_create={"name", "email"},
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "cost_price_cents", "selling_price_cents", "stock", "status",
    },
    required_on_create={"sku", "name", "selling_price_cents"},
    choices={"status": PRODUCT_STATUSES},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_CREATE_POLICY.writable_fields - {"stock"},
    choices={"status": PRODUCT_STATUSES},
)


def _email_taken(account_id: int, email: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Customer.id).filter(
        Customer.account_id == account_id,
        db.func.lower(Customer.email) == email.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def _sku_taken(account_id: int, sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.account_id == account_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


# =============================================================================
# Customers
# =============================================================================

def list_customers(account_id: int, *, search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.account_id == account_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Customer.name.ilike(like), Customer.email.ilike(like)))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(account_id: int, customer_id: int) -> Customer:
    return get_owned_or_404(Customer, customer_id, account_id, label="Customer")


def create_customer(account_id: int, payload: dict) -> Customer:
    def _op() -> Customer:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        if _email_taken(account_id, patch["email"]):
            raise ConflictError("A customer with this email already exists.", {"field": "email"})
        customer = Customer(account_id=account_id, **patch)
        db.session.add(customer)
        db.session.flush()
        return customer

    return run_in_transaction(_op)


def update_customer(account_id: int, customer_id: int, payload: dict) -> Customer:
    def _op() -> Customer:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        customer = get_owned_or_404(Customer, customer_id, account_id, label="Customer")
        if "email" in patch and _email_taken(account_id, patch["email"], exclude_id=customer.id):
            raise ConflictError("A customer with this email already exists.", {"field": "email"})
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.flush()
        return customer

    return run_in_transaction(_op)


# =============================================================================
# Products
# =============================================================================

def list_products(account_id: int, *, status: str | None = None) -> list[Product]:
    query = db.session.query(Product).filter(Product.account_id == account_id)
    if status is not None:
        query = query.filter(Product.status == status)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(account_id: int, product_id: int) -> Product:
    return get_owned_or_404(Product, product_id, account_id, label="Product")


def create_product(account_id: int, payload: dict) -> Product:
    def _op() -> Product:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        if _sku_taken(account_id, patch["sku"]):
            raise ConflictError("SKU already exists for this account.", {"field": "sku"})
        product = Product(account_id=account_id, **patch)
        db.session.add(product)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def update_product(account_id: int, product_id: int, payload: dict) -> Product:
    def _op() -> Product:
        if isinstance(payload, dict) and "stock" in payload:
            raise ValidationError(
                "stock cannot be edited directly; use the stock adjustment endpoint",
                {"field": "stock"},
            )
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = get_owned_or_404(Product, product_id, account_id, label="Product")
        if "sku" in patch and patch["sku"] != product.sku and _sku_taken(account_id, patch["sku"], product.id):
            raise ConflictError("SKU already exists for this account.", {"field": "sku"})
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def adjust_product_stock(account_id: int, product_id: int, payload: dict) -> StockAdjustment:
    """Manual correction of on-hand stock, e.g. after a harvest or a count."""
    if not isinstance(payload, dict) or payload.get("delta") is None:
        raise ValidationError("delta is required", {"field": "delta"})
    delta = coerce_int(payload["delta"], "delta")
    if delta == 0:
        raise ValidationError("delta must not be zero", {"field": "delta"})

    get_owned_or_404(Product, product_id, account_id, label="Product")
    return stock_service.adjust(product_id, delta, account_id=account_id, commit=True)
