# Overview: Pytest coverage for bearer authentication and account isolation.

"""
Authorization Tests

Every /api route except /api/health requires a bearer token, and every
record is only reachable from the business account that owns it.
"""

import pytest

from farmdesk.models import SessionToken, User
from farmdesk.services import session_service
from farmdesk.time_utils import utcnow


class TestUnauthenticatedAccess:
    """Requests without a token are rejected before reaching services."""

    @pytest.mark.parametrize("method, path", [
        ("get", "/api/sales"),
        ("post", "/api/sales"),
        ("get", "/api/sales/1"),
        ("get", "/api/sales/1/group"),
        ("put", "/api/sales/1"),
        ("put", "/api/sales/1/status"),
        ("put", "/api/sales/1/multi-product"),
        ("delete", "/api/sales/1"),
        ("get", "/api/invoices"),
        ("post", "/api/invoices/generate-from-sale"),
        ("post", "/api/invoices/preview-number"),
        ("put", "/api/invoices/1/status"),
        ("delete", "/api/invoices/1"),
        ("get", "/api/settings"),
        ("put", "/api/settings"),
        ("get", "/api/customers"),
        ("post", "/api/products"),
        ("post", "/api/products/1/stock"),
        ("get", "/api/reports/dashboard"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        response = getattr(client, method)(path, json={})
        assert response.status_code == 401

    def test_bad_token(self, client, db_session):
        response = client.get("/api/sales", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid or expired token"

    def test_expired_token(self, client, db_session, owner_a):
        session, token = session_service.create_session(owner_a.id)
        session.expires_at = utcnow().replace(year=2000)
        db_session.commit()

        response = client.get("/api/sales", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_revoked_token(self, client, db_session, owner_a):
        _, token = session_service.create_session(owner_a.id)
        assert session_service.revoke_session(token) is True

        response = client.get("/api/sales", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_deactivated_account_revokes_session(self, client, db_session, account_a, owner_a):
        _, token = session_service.create_session(owner_a.id)
        account_a.is_active = False
        db_session.commit()

        response = client.get("/api/sales", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        stored = db_session.query(SessionToken).filter_by(token_hash=session_service.hash_token(token)).one()
        assert stored.is_revoked is True

    def test_user_without_account_cannot_get_token(self, db_session):
        loner = User(external_id="idp|loner", email="loner@example.my", is_active=True)
        db_session.add(loner)
        db_session.commit()

        with pytest.raises(ValueError):
            session_service.create_session(loner.id)


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"


class TestAccountIsolation:
    """Account B can neither read nor change account A's records."""

    @pytest.fixture
    def sale_a(self, client, db_session, headers_a, customer_a, mango):
        response = client.post("/api/sales", json={
            "customer_id": customer_a.id,
            "lines": [{"product_id": mango.id, "quantity": 1}],
        }, headers=headers_a)
        return response.get_json()["sales"][0]

    def test_list_only_shows_own_sales(self, client, db_session, headers_b, sale_a):
        response = client.get("/api/sales", headers=headers_b)
        assert response.get_json()["sales"] == []

    @pytest.mark.parametrize("method, suffix, body", [
        ("get", "", None),
        ("put", "/status", {"status": "paid"}),
        ("put", "", {"quantity": 2}),
        ("delete", "", None),
    ])
    def test_foreign_sale_is_forbidden(self, client, db_session, headers_b, sale_a, method, suffix, body):
        response = getattr(client, method)(f"/api/sales/{sale_a['id']}{suffix}", json=body, headers=headers_b)
        assert response.status_code == 403

    def test_cannot_invoice_foreign_sale(self, client, db_session, headers_b, sale_a):
        response = client.post(
            "/api/invoices/generate-from-sale", json={"sale_id": sale_a["id"]}, headers=headers_b
        )
        assert response.status_code == 403

    def test_cannot_sell_foreign_product(self, client, db_session, headers_b, customer_b, mango):
        response = client.post("/api/sales", json={
            "customer_id": customer_b.id,
            "lines": [{"product_id": mango.id, "quantity": 1}],
        }, headers=headers_b)
        assert response.status_code == 403

    def test_account_member_can_manage_shared_order(self, client, db_session, headers_staff_a, sale_a):
        response = client.put(
            f"/api/sales/{sale_a['id']}/status", json={"status": "paid"}, headers=headers_staff_a
        )
        assert response.status_code == 200

        response = client.delete(f"/api/sales/{sale_a['id']}", headers=headers_staff_a)
        assert response.status_code == 200
