from __future__ import annotations

from ..extensions import db
from farmdesk.time_utils import to_utc_z


class AccountSettings(db.Model):
    """
    Per-account invoicing settings; also the counter row for invoice numbers.

    next_invoice_number is only moved by invoice_number_service through
    atomic UPDATE statements.
    """
    __tablename__ = "account_settings"
    __table_args__ = (
        db.UniqueConstraint("account_id", name="uq_account_settings_account"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("business_accounts.id"), nullable=False)

    invoice_prefix = db.Column(db.String(16), nullable=False, default="INV")
    next_invoice_number = db.Column(db.Integer, nullable=False, default=1)
    currency = db.Column(db.String(8), nullable=False, default="MYR")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # 600 = 6.00%
    payment_terms = db.Column(db.String(255), nullable=False, default="Payment due within 30 days")
    bank_details = db.Column(db.Text, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "invoice_prefix": self.invoice_prefix,
            "next_invoice_number": self.next_invoice_number,
            "currency": self.currency,
            "tax_rate_bps": self.tax_rate_bps,
            "payment_terms": self.payment_terms,
            "bank_details": self.bank_details,
            "updated_at": to_utc_z(self.updated_at),
        }


class ReusableInvoiceNumber(db.Model):
    """
    FIFO pool of invoice numbers freed by deletions.

    Oldest entry (created_at, then id) is handed out first.
    """
    __tablename__ = "reusable_invoice_numbers"
    __table_args__ = (
        db.UniqueConstraint("account_id", "invoice_number", name="uq_reusable_numbers_account_number"),
        db.Index("ix_reusable_numbers_account_created", "account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("business_accounts.id"), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "invoice_number": self.invoice_number,
            "created_at": to_utc_z(self.created_at),
        }


class Invoice(db.Model):
    """
    Invoice generated from a sale group.

    sale_id points at the group's anchor (first) row. At most one invoice
    references a given group at any time; the service layer enforces it.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("account_id", "invoice_number", name="uq_invoices_account_number"),
        db.Index("ix_invoices_account_status", "account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("business_accounts.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="draft")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="MYR")
    payment_terms = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    sale = db.relationship("Sale")
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        order_by="InvoiceItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "account_id": self.account_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "invoice_number": self.invoice_number,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """
    One invoice line per sale in the group.

    unit_price_cents is gross; discount_cents is per unit;
    line_total_cents = (unit_price_cents - discount_cents) * quantity.
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }
