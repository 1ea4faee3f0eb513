# Overview: Pytest coverage for invoice generation, deletion and numbering reuse.

from datetime import datetime

import pytest

from farmdesk.models import AccountSettings, Invoice, InvoiceItem
from farmdesk.services import invoice_number_service, invoice_service, sale_group_service
from farmdesk.services.sale_group_service import InvoiceConflictError
from farmdesk.validation import AccountAccessError, NotFoundError, ValidationError


@pytest.fixture
def order(db_session, account_a, owner_a, customer_a, durian, mango):
    """Two-line order dated 1 March 2026."""
    return sale_group_service.create_order(account_a.id, owner_a.id, {
        "customer_id": customer_a.id,
        "sale_date": "2026-03-01T08:30:00Z",
        "lines": [
            {"product_id": durian.id, "quantity": 2, "unit_price_cents": 4500, "discount_cents": 500},
            {"product_id": mango.id, "quantity": 3},
        ],
    })


def _single(account, user, customer, product, qty=1):
    result = sale_group_service.create_order(account.id, user.id, {
        "customer_id": customer.id,
        "lines": [{"product_id": product.id, "quantity": qty}],
    })
    return result.sales[0]


class TestComputeTax:

    @pytest.mark.parametrize("subtotal, bps, expected", [
        (10000, 0, 0),
        (10000, 600, 600),
        (1050, 1000, 105),
        (25, 1000, 3),
        (24, 1000, 2),
    ])
    def test_half_up(self, subtotal, bps, expected):
        assert invoice_service.compute_tax_cents(subtotal, bps) == expected


class TestGenerateInvoice:

    def test_invoice_mirrors_group(self, db_session, account_a, customer_a, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[1].id)

        assert invoice.invoice_number == "INV-0001"
        assert invoice.sale_id == order.sales[0].id
        assert invoice.customer_id == customer_a.id
        assert invoice.status == "draft"
        assert invoice.currency == "MYR"
        assert invoice.payment_terms == "Payment due within 30 days"
        assert invoice.subtotal_cents == 8000 + 2400
        assert invoice.tax_cents == 0
        assert invoice.total_cents == 10400
        assert invoice.invoice_date == datetime(2026, 3, 1, 8, 30)
        assert invoice.due_date == datetime(2026, 3, 31, 8, 30)

        items = invoice.items
        assert [(i.quantity, i.unit_price_cents, i.discount_cents, i.line_total_cents) for i in items] == [
            (2, 4500, 500, 8000),
            (3, 800, 0, 2400),
        ]
        assert items[0].description == "Musang King Durian"

    def test_tax_and_settings_copied(self, db_session, account_a, order):
        settings = invoice_number_service.ensure_settings(account_a.id)
        settings.tax_rate_bps = 600
        settings.currency = "SGD"
        settings.payment_terms = "Cash on delivery"
        db_session.commit()

        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)

        assert invoice.tax_cents == 624
        assert invoice.total_cents == 11024
        assert invoice.currency == "SGD"
        assert invoice.payment_terms == "Cash on delivery"

    def test_second_invoice_for_same_order_refused(self, db_session, account_a, order):
        invoice_service.generate_invoice(account_a.id, order.sales[0].id)

        with pytest.raises(InvoiceConflictError) as exc:
            invoice_service.generate_invoice(account_a.id, order.sales[1].id)

        assert "INV-0001" in str(exc.value)
        assert db_session.query(Invoice).count() == 1
        assert invoice_number_service.peek_next_number(account_a.id) == "INV-0002"

    def test_numbers_sequence_across_orders(self, db_session, account_a, owner_a, customer_a, mango):
        sales = [_single(account_a, owner_a, customer_a, mango) for _ in range(3)]
        numbers = [invoice_service.generate_invoice(account_a.id, s.id).invoice_number for s in sales]
        assert numbers == ["INV-0001", "INV-0002", "INV-0003"]

    def test_missing_sale(self, db_session, account_a):
        with pytest.raises(NotFoundError):
            invoice_service.generate_invoice(account_a.id, 99999)

    def test_foreign_sale(self, db_session, account_b, order):
        with pytest.raises(AccountAccessError):
            invoice_service.generate_invoice(account_b.id, order.sales[0].id)


class TestPreview:

    def test_preview_matches_next_allocation(self, db_session, account_a, order):
        assert invoice_service.preview_number(account_a.id) == "INV-0001"
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        assert invoice.invoice_number == "INV-0001"
        assert invoice_service.preview_number(account_a.id) == "INV-0002"

    def test_preview_provisions_settings(self, db_session, account_b):
        assert invoice_service.preview_number(account_b.id) == "INV-0001"
        db_session.rollback()
        assert db_session.query(AccountSettings).filter_by(account_id=account_b.id).count() == 1


class TestDeleteInvoice:

    def test_deleting_only_invoice_resets_numbering(self, db_session, account_a, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)

        result = invoice_service.delete_invoice(account_a.id, invoice.id)

        assert result == {"invoice_number": "INV-0001", "reclaimed_as": "reset"}
        assert db_session.query(InvoiceItem).count() == 0
        assert invoice_service.preview_number(account_a.id) == "INV-0001"

    def test_deleting_latest_steps_counter_back(self, db_session, account_a, owner_a, customer_a, mango):
        sales = [_single(account_a, owner_a, customer_a, mango) for _ in range(2)]
        invoices = [invoice_service.generate_invoice(account_a.id, s.id) for s in sales]

        result = invoice_service.delete_invoice(account_a.id, invoices[1].id)

        assert result["reclaimed_as"] == "counter"
        assert invoice_number_service.list_reusable_numbers(account_a.id) == []
        assert invoice_service.generate_invoice(account_a.id, sales[1].id).invoice_number == "INV-0002"

    def test_deleting_older_number_queues_it_for_reuse(self, db_session, account_a, owner_a, customer_a, mango):
        sales = [_single(account_a, owner_a, customer_a, mango) for _ in range(4)]
        invoices = [invoice_service.generate_invoice(account_a.id, s.id) for s in sales[:3]]

        result = invoice_service.delete_invoice(account_a.id, invoices[1].id)
        assert result == {"invoice_number": "INV-0002", "reclaimed_as": "queued"}

        reused = invoice_service.generate_invoice(account_a.id, sales[3].id)
        assert reused.invoice_number == "INV-0002"
        again = invoice_service.generate_invoice(account_a.id, sales[1].id)
        assert again.invoice_number == "INV-0004"

    def test_deleting_invoice_allows_order_deletion(self, db_session, account_a, order, durian, mango):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        invoice_service.delete_invoice(account_a.id, invoice.id)

        outcome = sale_group_service.delete_order(account_a.id, order.sales[0].id)
        assert outcome["deleted_count"] == 2

    def test_foreign_invoice(self, db_session, account_a, account_b, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        with pytest.raises(AccountAccessError):
            invoice_service.delete_invoice(account_b.id, invoice.id)


class TestInvoiceStatus:

    def test_status_change(self, db_session, account_a, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        updated = invoice_service.update_invoice_status(account_a.id, invoice.id, {"status": "sent"})
        assert updated.status == "sent"

    def test_unknown_status(self, db_session, account_a, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        with pytest.raises(ValidationError):
            invoice_service.update_invoice_status(account_a.id, invoice.id, {"status": "void"})

    def test_other_fields_rejected(self, db_session, account_a, order):
        invoice = invoice_service.generate_invoice(account_a.id, order.sales[0].id)
        with pytest.raises(ValidationError):
            invoice_service.update_invoice_status(account_a.id, invoice.id, {"status": "paid", "total_cents": 1})

    def test_list_filters(self, db_session, account_a, owner_a, customer_a, mango):
        sales = [_single(account_a, owner_a, customer_a, mango) for _ in range(2)]
        first, second = (invoice_service.generate_invoice(account_a.id, s.id) for s in sales)
        invoice_service.update_invoice_status(account_a.id, second.id, {"status": "paid"})

        paid = invoice_service.list_invoices(account_a.id, status="paid")
        assert [i.id for i in paid] == [second.id]
        assert len(invoice_service.list_invoices(account_a.id)) == 2
