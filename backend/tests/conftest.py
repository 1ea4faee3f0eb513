"""
Pytest fixtures for farmdesk backend tests.

Provides the in-memory database, two business accounts with members,
catalog records, bearer tokens and the test client.
"""

import pytest
from farmdesk import create_app
from farmdesk.extensions import db
from farmdesk.models import AccountMember, BusinessAccount, Customer, Product, User
from farmdesk.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOW_STOCK_THRESHOLD': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, account, external_id, email, role="member"):
    user = User(external_id=external_id, email=email, display_name=email.split("@")[0], is_active=True)
    db_session.add(user)
    db_session.flush()
    db_session.add(AccountMember(account_id=account.id, user_id=user.id, role=role))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def account_a(db_session):
    """Business account A (first tenant)."""
    account = BusinessAccount(name="Green Acres Farm", is_active=True)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def account_b(db_session):
    """Business account B (second tenant)."""
    account = BusinessAccount(name="Hilltop Orchard", is_active=True)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def owner_a(db_session, account_a):
    return _make_user(db_session, account_a, "idp|owner-a", "owner@greenacres.my", role="owner")


@pytest.fixture(scope='function')
def staff_a(db_session, account_a):
    """Second login sharing account A with the owner."""
    return _make_user(db_session, account_a, "idp|staff-a", "staff@greenacres.my")


@pytest.fixture(scope='function')
def owner_b(db_session, account_b):
    return _make_user(db_session, account_b, "idp|owner-b", "owner@hilltop.my", role="owner")


@pytest.fixture(scope='function')
def customer_a(db_session, account_a):
    customer = Customer(account_id=account_a.id, name="Siti Aminah", email="siti@example.my", phone="012-3456789")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, account_b):
    customer = Customer(account_id=account_b.id, name="Tan Wei Ming", email="tan@example.my")
    db_session.add(customer)
    db_session.commit()
    return customer


def make_product(db_session, account, sku, name, *, stock, cost=200, price=500):
    product = Product(
        account_id=account.id,
        sku=sku,
        name=name,
        cost_price_cents=cost,
        selling_price_cents=price,
        stock=stock,
        status="active",
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def durian(db_session, account_a):
    return make_product(db_session, account_a, "DUR-001", "Musang King Durian", stock=50, cost=2000, price=4500)


@pytest.fixture(scope='function')
def mango(db_session, account_a):
    return make_product(db_session, account_a, "MAN-001", "Harumanis Mango", stock=30, cost=300, price=800)


@pytest.fixture(scope='function')
def pineapple(db_session, account_a):
    return make_product(db_session, account_a, "PIN-001", "MD2 Pineapple", stock=12, cost=150, price=400)


@pytest.fixture(scope='function')
def product_b(db_session, account_b):
    return make_product(db_session, account_b, "APL-001", "Fuji Apple", stock=100, cost=100, price=250)


def issue_token(user) -> str:
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_a(owner_a):
    return auth_headers(issue_token(owner_a))


@pytest.fixture(scope='function')
def headers_staff_a(staff_a):
    return auth_headers(issue_token(staff_a))


@pytest.fixture(scope='function')
def headers_b(owner_b):
    return auth_headers(issue_token(owner_b))


@pytest.fixture(scope='function')
def product_factory(db_session, account_a):
    """Build extra products in account A: product_factory("SKU", "Name", stock=5)."""
    def _make(sku, name, *, stock, cost=200, price=500, account=None):
        return make_product(db_session, account or account_a, sku, name, stock=stock, cost=cost, price=price)
    return _make
