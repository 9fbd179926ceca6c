"""
Pytest fixtures for shopledger backend tests.

Provides the in-memory database, the test client, one admin and two
personnel users, and a small catalog/customer set.
"""

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Customer, Product, User
from shopledger.permissions import ROLE_ADMIN, ROLE_PERSONNEL
from shopledger.services.auth_service import hash_password


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.config['ALLOW_NEGATIVE_STOCK'] = True
        app.config['RETURN_WINDOW_DAYS'] = 17

        yield db.session

        db.session.rollback()


def _make_user(db_session, password_hash, username, display_name, role):
    user = User(
        username=username,
        display_name=display_name,
        password_hash=password_hash,
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, password_hash):
    return _make_user(db_session, password_hash, "admin", "Ayla Admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def personnel(db_session, password_hash):
    return _make_user(db_session, password_hash, "clerk", "Cem Clerk", ROLE_PERSONNEL)


@pytest.fixture(scope='function')
def personnel_b(db_session, password_hash):
    return _make_user(db_session, password_hash, "clerk_b", "Deniz Clerk", ROLE_PERSONNEL)


@pytest.fixture(scope='function')
def product(db_session):
    """Active product priced 10.00 with 10 units on hand."""
    p = Product(base_name="Olive Soap", variant_name="Large", price_cents=1000, stock_quantity=10)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def product_b(db_session):
    p = Product(base_name="Lavender Soap", price_cents=2500, stock_quantity=4)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Acme Bakery", sales_channel="Store", current_balance_cents=0)
    db_session.add(c)
    db_session.commit()
    return c


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope='function')
def personnel_headers(client, personnel):
    return auth_headers(get_auth_token(client, personnel.username))


@pytest.fixture(scope='function')
def personnel_b_headers(client, personnel_b):
    return auth_headers(get_auth_token(client, personnel_b.username))
