# Overview: Pytest coverage for account settings.

import pytest

from farmdesk.services import invoice_service, sale_group_service, settings_service
from farmdesk.validation import ValidationError


class TestSettingsService:

    def test_defaults_provisioned(self, db_session, account_a):
        settings = settings_service.get_settings(account_a.id)
        assert settings.to_dict()["invoice_prefix"] == "INV"
        assert settings.next_invoice_number == 1
        assert settings.tax_rate_bps == 0

    def test_patch(self, db_session, account_a):
        settings = settings_service.update_settings(account_a.id, {
            "invoice_prefix": "GA",
            "tax_rate_bps": "600",
            "bank_details": "Maybank 1234567890",
        })
        assert settings.invoice_prefix == "GA"
        assert settings.tax_rate_bps == 600
        assert invoice_service.preview_number(account_a.id) == "GA-0001"

    @pytest.mark.parametrize("patch", [
        {"next_invoice_number": 0},
        {"tax_rate_bps": 10001},
        {"tax_rate_bps": -1},
        {"invoice_prefix": "A-B"},
        {"invoice_prefix": ""},
        {"currency": None},
        {"unknown": 1},
    ])
    def test_invalid_patch(self, db_session, account_a, patch):
        with pytest.raises(ValidationError):
            settings_service.update_settings(account_a.id, patch)

    def test_prefix_locked_while_invoices_exist(self, db_session, account_a, owner_a, customer_a, mango):
        result = sale_group_service.create_order(account_a.id, owner_a.id, {
            "customer_id": customer_a.id,
            "lines": [{"product_id": mango.id, "quantity": 1}],
        })
        invoice_service.generate_invoice(account_a.id, result.sales[0].id)

        with pytest.raises(ValidationError):
            settings_service.update_settings(account_a.id, {"invoice_prefix": "NEW"})
        settings_service.update_settings(account_a.id, {"payment_terms": "14 days"})


class TestSettingsRoutes:

    def test_get_and_put(self, client, db_session, headers_a):
        response = client.get("/api/settings", headers=headers_a)
        assert response.status_code == 200
        assert response.get_json()["settings"]["currency"] == "MYR"

        response = client.put("/api/settings", json={"currency": "SGD"}, headers=headers_a)
        assert response.status_code == 200
        assert response.get_json()["settings"]["currency"] == "SGD"

    def test_accounts_have_separate_settings(self, client, db_session, headers_a, headers_b):
        client.put("/api/settings", json={"invoice_prefix": "GA"}, headers=headers_a)
        response = client.get("/api/settings", headers=headers_b)
        assert response.get_json()["settings"]["invoice_prefix"] == "INV"
