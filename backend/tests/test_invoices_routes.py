# Overview: Pytest coverage for the invoices HTTP API.

import pytest


@pytest.fixture
def sale_ids(client, db_session, headers_a, customer_a, mango):
    ids = []
    for _ in range(3):
        response = client.post("/api/sales", json={
            "customer_id": customer_a.id,
            "lines": [{"product_id": mango.id, "quantity": 1}],
        }, headers=headers_a)
        ids.append(response.get_json()["sales"][0]["id"])
    return ids


def _generate(client, headers, sale_id):
    return client.post("/api/invoices/generate-from-sale", json={"sale_id": sale_id}, headers=headers)


class TestInvoiceRoutes:

    def test_preview_then_generate(self, client, db_session, headers_a, sale_ids):
        preview = client.post("/api/invoices/preview-number", headers=headers_a)
        assert preview.status_code == 200
        assert preview.get_json()["invoice_number"] == "INV-0001"

        response = _generate(client, headers_a, sale_ids[0])
        assert response.status_code == 201
        invoice = response.get_json()["invoice"]
        assert invoice["invoice_number"] == "INV-0001"
        assert invoice["total_cents"] == 800
        assert len(invoice["items"]) == 1
        assert invoice["invoice_date"].endswith("Z")

    def test_generate_requires_sale_id(self, client, db_session, headers_a):
        response = client.post("/api/invoices/generate-from-sale", json={}, headers=headers_a)
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "sale_id"

    def test_generate_twice_is_conflict(self, client, db_session, headers_a, sale_ids):
        _generate(client, headers_a, sale_ids[0])
        response = _generate(client, headers_a, sale_ids[0])
        assert response.status_code == 409
        assert "INV-0001" in response.get_json()["error"]

    def test_get_and_list(self, client, db_session, headers_a, sale_ids):
        created = _generate(client, headers_a, sale_ids[0]).get_json()["invoice"]

        response = client.get(f"/api/invoices/{created['id']}", headers=headers_a)
        assert response.status_code == 200
        assert response.get_json()["invoice"]["items"][0]["quantity"] == 1

        listed = client.get("/api/invoices", headers=headers_a).get_json()["invoices"]
        assert [i["id"] for i in listed] == [created["id"]]

        assert client.get("/api/invoices?status=nonsense", headers=headers_a).status_code == 400

    def test_status_update(self, client, db_session, headers_a, sale_ids):
        created = _generate(client, headers_a, sale_ids[0]).get_json()["invoice"]

        response = client.put(f"/api/invoices/{created['id']}/status", json={"status": "paid"}, headers=headers_a)
        assert response.status_code == 200
        assert response.get_json()["invoice"]["status"] == "paid"

        response = client.put(f"/api/invoices/{created['id']}/status", json={}, headers=headers_a)
        assert response.status_code == 400

    def test_delete_reuse_cycle(self, client, db_session, headers_a, sale_ids):
        invoices = [_generate(client, headers_a, sid).get_json()["invoice"] for sid in sale_ids]
        assert [i["invoice_number"] for i in invoices] == ["INV-0001", "INV-0002", "INV-0003"]

        response = client.delete(f"/api/invoices/{invoices[0]['id']}", headers=headers_a)
        assert response.get_json() == {"invoice_number": "INV-0001", "reclaimed_as": "queued"}

        response = client.delete(f"/api/invoices/{invoices[2]['id']}", headers=headers_a)
        assert response.get_json() == {"invoice_number": "INV-0003", "reclaimed_as": "counter"}

        preview = client.post("/api/invoices/preview-number", headers=headers_a).get_json()
        assert preview["invoice_number"] == "INV-0001"
        assert _generate(client, headers_a, sale_ids[0]).get_json()["invoice"]["invoice_number"] == "INV-0001"
        assert _generate(client, headers_a, sale_ids[2]).get_json()["invoice"]["invoice_number"] == "INV-0003"

    def test_delete_all_resets_numbering(self, client, db_session, headers_a, sale_ids):
        invoices = [_generate(client, headers_a, sid).get_json()["invoice"] for sid in sale_ids[:2]]
        client.delete(f"/api/invoices/{invoices[0]['id']}", headers=headers_a)
        response = client.delete(f"/api/invoices/{invoices[1]['id']}", headers=headers_a)

        assert response.get_json()["reclaimed_as"] == "reset"
        preview = client.post("/api/invoices/preview-number", headers=headers_a).get_json()
        assert preview["invoice_number"] == "INV-0001"

    def test_members_share_numbering(self, client, db_session, headers_a, headers_staff_a, sale_ids):
        first = _generate(client, headers_a, sale_ids[0]).get_json()["invoice"]
        second = _generate(client, headers_staff_a, sale_ids[1]).get_json()["invoice"]
        assert (first["invoice_number"], second["invoice_number"]) == ("INV-0001", "INV-0002")

    def test_missing_invoice_is_404(self, client, db_session, headers_a):
        assert client.delete("/api/invoices/999", headers=headers_a).status_code == 404
