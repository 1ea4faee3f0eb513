from __future__ import annotations

from ..extensions import db
from farmdesk.time_utils import to_utc_z


class Sale(db.Model):
    """
    One line of a customer order.

    Multi-product orders are stored as several Sale rows that share a
    group_id (and, for older clients, a "[GROUP:<id>]" tag inside notes).
    total_cents and profit_cents are derived from quantity, prices and the
    product cost; services recompute them on every change.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.Index("ix_sales_account_group", "account_id", "group_id"),
        db.Index("ix_sales_account_status_date", "account_id", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("business_accounts.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)  # per unit
    total_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False, default="unpaid", index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    platform_source = db.Column(db.String(32), nullable=False, default="others")
    notes = db.Column(db.Text, nullable=True)

    group_id = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "created_by_user_id": self.created_by_user_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "profit_cents": self.profit_cents,
            "status": self.status,
            "sale_date": to_utc_z(self.sale_date),
            "platform_source": self.platform_source,
            "notes": self.notes,
            "group_id": self.group_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_detail_dict(self) -> dict:
        data = self.to_dict()
        data["customer"] = self.customer.to_dict() if self.customer else None
        data["product"] = self.product.to_dict() if self.product else None
        return data
