# Overview: Stock ledger for products; availability checks and guarded atomic adjustments.

"""
Stock invariants:
- products.stock never goes below zero (CHECK constraint plus a guarded
  UPDATE ... WHERE stock + :delta >= 0).
- Stock is only moved here: sales consume it, edits and deletions return it,
  manual adjustments correct it.
- Multi-line operations call check_availability for every line before the
  first adjust, so a rejected order leaves stock untouched.
- A decrement that leaves stock at or below LOW_STOCK_THRESHOLD produces an
  advisory warning; it never blocks the operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError
from .concurrency import run_in_transaction

DEFAULT_LOW_STOCK_THRESHOLD = 10


class InsufficientStockError(ConflictError):
    """Raised when one or more products cannot cover the requested quantity."""


@dataclass
class StockAdjustment:
    product_id: int
    delta: int
    stock: int
    warning: dict | None = field(default=None)

    @property
    def is_low(self) -> bool:
        return self.warning is not None


def low_stock_threshold() -> int:
    return int(current_app.config.get("LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD))


def _get_product(product_id: int, account_id: int | None) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if account_id is not None:
        query = query.filter_by(account_id=account_id)
    return query.first()


def is_available(product_id: int, required_qty: int, *, account_id: int | None = None) -> bool:
    """True iff the product exists and has at least required_qty on hand."""
    product = _get_product(product_id, account_id)
    if product is None:
        return False
    return product.stock >= required_qty


def _shortfall(product: Product, requested: int, available: int) -> dict:
    return {
        "product_id": product.id,
        "product_name": product.name,
        "sku": product.sku,
        "available": available,
        "requested": requested,
    }


def check_availability(
    account_id: int,
    requirements: dict[int, int],
    credits: dict[int, int] | None = None,
) -> None:
    """
    Validate a whole set of requirements {product_id: quantity} at once.

    credits are quantities that the same transaction will hand back before
    consuming (the old lines of an order being rebuilt). Raises
    InsufficientStockError listing every short product, or NotFoundError
    for a product outside the account.
    """
    credits = credits or {}
    insufficient = []
    for product_id, requested in requirements.items():
        product = _get_product(product_id, account_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        available = product.stock + credits.get(product_id, 0)
        if available < requested:
            insufficient.append(_shortfall(product, requested, available))

    if insufficient:
        first = insufficient[0]
        message = (
            f"Insufficient stock for {first['product_name']}: "
            f"available {first['available']}, requested {first['requested']}"
        )
        if len(insufficient) > 1:
            message += f" (and {len(insufficient) - 1} more product(s))"
        raise InsufficientStockError(message, details={"items": insufficient})


def _low_stock_warning(product: Product, threshold: int) -> dict:
    return {
        "product_id": product.id,
        "product_name": product.name,
        "stock": product.stock,
        "threshold": threshold,
        "message": f"Low stock: {product.name} has {product.stock} unit(s) left",
    }


def _adjust(product_id: int, delta: int, account_id: int | None) -> StockAdjustment:
    conditions = [Product.id == product_id, Product.stock + delta >= 0]
    if account_id is not None:
        conditions.append(Product.account_id == account_id)

    result = db.session.execute(
        update(Product)
        .where(*conditions)
        .values(stock=Product.stock + delta)
        .execution_options(synchronize_session=False)
    )

    product = _get_product(product_id, account_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    db.session.refresh(product)

    if not result.rowcount:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}: available {product.stock}, requested {-delta}",
            details={"items": [_shortfall(product, -delta, product.stock)]},
        )

    warning = None
    threshold = low_stock_threshold()
    if delta < 0 and product.stock <= threshold:
        warning = _low_stock_warning(product, threshold)

    return StockAdjustment(product_id=product.id, delta=delta, stock=product.stock, warning=warning)


def adjust(
    product_id: int,
    delta: int,
    *,
    account_id: int | None = None,
    commit: bool = False,
) -> StockAdjustment:
    """
    Atomically add delta to the product's stock.

    Evaluated server-side as stock = stock + delta with a non-negative guard,
    so concurrent sales cannot both pass on a stale read. By default runs in
    the caller's transaction; commit=True makes it a standalone unit of work.
    """
    if not commit:
        return _adjust(product_id, delta, account_id)
    return run_in_transaction(lambda: _adjust(product_id, delta, account_id))


def low_stock_warnings(account_id: int, product_ids) -> list[dict]:
    """Warnings for every touched product currently at or below the threshold."""
    threshold = low_stock_threshold()
    warnings = []
    for product_id in sorted(set(product_ids)):
        product = _get_product(product_id, account_id)
        if product is not None and product.stock <= threshold:
            warnings.append(_low_stock_warning(product, threshold))
    return warnings
