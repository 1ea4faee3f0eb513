# Overview: Service-layer reporting over sales; dashboard metrics, monthly revenue and top products.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Product, Sale
from ..validation import SALE_STATUSES, ValidationError
from farmdesk.time_utils import month_key, parse_iso_datetime

ACTIVE_ORDER_STATUSES = ("paid", "pending_shipment", "shipped")
TOP_PRODUCTS_LIMIT = 10


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    return start_dt, end_dt


def _sales_query(account_id: int, start: str | None, end: str | None):
    start_dt, end_dt = _parse_range(start, end)
    query = db.session.query(Sale).filter(Sale.account_id == account_id)
    if start_dt:
        query = query.filter(Sale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(Sale.sale_date <= end_dt)
    return query


def dashboard(account_id: int, *, start: str | None = None, end: str | None = None) -> dict:
    base = _sales_query(account_id, start, end)

    revenue, profit = base.with_entities(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.coalesce(func.sum(Sale.profit_cents), 0),
    ).one()

    status_counts = {status: 0 for status in SALE_STATUSES}
    for status, count in base.with_entities(Sale.status, func.count(Sale.id)).group_by(Sale.status).all():
        status_counts[status] = count

    total_customers = db.session.query(func.count(Customer.id)).filter(
        Customer.account_id == account_id
    ).scalar()

    return {
        "total_revenue_cents": int(revenue),
        "total_profit_cents": int(profit),
        "active_orders": sum(status_counts[s] for s in ACTIVE_ORDER_STATUSES),
        "total_customers": int(total_customers or 0),
        "total_sales": sum(status_counts.values()),
        "status_counts": status_counts,
    }


def revenue_by_month(account_id: int, *, start: str | None = None, end: str | None = None) -> list[dict]:
    """Monthly buckets ("YYYY-MM"), oldest first; months without sales are omitted."""
    rows = _sales_query(account_id, start, end).with_entities(
        Sale.sale_date, Sale.total_cents, Sale.profit_cents
    ).all()

    buckets: dict[str, dict] = {}
    for sale_date, total, profit in rows:
        key = month_key(sale_date)
        bucket = buckets.setdefault(key, {"month": key, "revenue_cents": 0, "profit_cents": 0, "sales_count": 0})
        bucket["revenue_cents"] += total
        bucket["profit_cents"] += profit
        bucket["sales_count"] += 1
    return [buckets[k] for k in sorted(buckets)]


def top_products(
    account_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    limit: int = TOP_PRODUCTS_LIMIT,
) -> list[dict]:
    start_dt, end_dt = _parse_range(start, end)
    revenue = func.sum(Sale.total_cents).label("revenue_cents")
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(Sale.quantity).label("quantity"),
            revenue,
            func.sum(Sale.profit_cents).label("profit_cents"),
        )
        .join(Sale, Sale.product_id == Product.id)
        .filter(Sale.account_id == account_id)
    )
    if start_dt:
        query = query.filter(Sale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(Sale.sale_date <= end_dt)

    rows = (
        query.group_by(Product.id, Product.name, Product.sku)
        .order_by(revenue.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.id,
            "product_name": row.name,
            "sku": row.sku,
            "quantity": int(row.quantity or 0),
            "revenue_cents": int(row.revenue_cents or 0),
            "profit_cents": int(row.profit_cents or 0),
        }
        for row in rows
    ]
