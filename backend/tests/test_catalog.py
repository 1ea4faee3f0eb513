# Overview: Pytest coverage for customer and product management.

import pytest


class TestCustomers:

    def test_create_list_update(self, client, db_session, headers_a):
        response = client.post("/api/customers", json={
            "name": "Lim Ah Kow",
            "email": "lim@example.my",
            "phone": "019-8887777",
        }, headers=headers_a)
        assert response.status_code == 201
        customer = response.get_json()["customer"]

        response = client.put(f"/api/customers/{customer['id']}", json={"company": "Lim Fruits"}, headers=headers_a)
        assert response.get_json()["customer"]["company"] == "Lim Fruits"

        listed = client.get("/api/customers?search=lim", headers=headers_a).get_json()["customers"]
        assert [c["id"] for c in listed] == [customer["id"]]

    def test_duplicate_email_is_conflict(self, client, db_session, headers_a, customer_a):
        response = client.post("/api/customers", json={"name": "Other", "email": "SITI@example.my"}, headers=headers_a)
        assert response.status_code == 409

    def test_same_email_in_other_account_is_fine(self, client, db_session, headers_b, customer_a):
        response = client.post("/api/customers", json={"name": "Siti", "email": "siti@example.my"}, headers=headers_b)
        assert response.status_code == 201

    def test_missing_fields(self, client, db_session, headers_a):
        response = client.post("/api/customers", json={"name": "No Email"}, headers=headers_a)
        assert response.status_code == 400
        assert response.get_json()["details"]["missing"] == ["email"]


class TestProducts:

    def test_create_and_get(self, client, db_session, headers_a):
        response = client.post("/api/products", json={
            "sku": "BAN-001",
            "name": "Pisang Berangan",
            "cost_price_cents": 150,
            "selling_price_cents": 350,
            "stock": 40,
        }, headers=headers_a)
        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["status"] == "active"

        response = client.get(f"/api/products/{product['id']}", headers=headers_a)
        assert response.get_json()["product"]["stock"] == 40

    def test_duplicate_sku_is_conflict(self, client, db_session, headers_a, mango):
        response = client.post("/api/products", json={
            "sku": "MAN-001", "name": "Another Mango", "selling_price_cents": 100,
        }, headers=headers_a)
        assert response.status_code == 409

    def test_stock_cannot_be_patched(self, client, db_session, headers_a, mango):
        response = client.put(f"/api/products/{mango.id}", json={"stock": 999}, headers=headers_a)
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "stock"

    @pytest.mark.parametrize("body", [
        {"selling_price_cents": -5},
        {"selling_price_cents": 12.5},
        {"status": "archived"},
    ])
    def test_invalid_update(self, client, db_session, headers_a, mango, body):
        response = client.put(f"/api/products/{mango.id}", json=body, headers=headers_a)
        assert response.status_code == 400

    def test_manual_stock_adjustment(self, client, db_session, headers_a, pineapple):
        response = client.post(f"/api/products/{pineapple.id}/stock", json={"delta": 8}, headers=headers_a)
        assert response.status_code == 200
        body = response.get_json()
        assert body["product"]["stock"] == 20
        assert body["stock_warning"] is None

        response = client.post(f"/api/products/{pineapple.id}/stock", json={"delta": -15}, headers=headers_a)
        body = response.get_json()
        assert body["product"]["stock"] == 5
        assert body["stock_warning"]["stock"] == 5

    def test_stock_adjustment_cannot_go_negative(self, client, db_session, headers_a, pineapple):
        response = client.post(f"/api/products/{pineapple.id}/stock", json={"delta": -13}, headers=headers_a)
        assert response.status_code == 409

    def test_stock_adjustment_requires_delta(self, client, db_session, headers_a, pineapple):
        response = client.post(f"/api/products/{pineapple.id}/stock", json={}, headers=headers_a)
        assert response.status_code == 400

    def test_foreign_product(self, client, db_session, headers_b, mango):
        assert client.get(f"/api/products/{mango.id}", headers=headers_b).status_code == 403
