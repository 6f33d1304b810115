"""
Pytest fixtures for the ledger engine tests.

Provides the app on in-memory SQLite, a per-test clean database, a test
client, and small factories for products and till sessions.
"""

import pytest

from deposito import create_app
from deposito.extensions import db
from deposito.money import Money
from deposito.services import catalog_service, register_service


EMPLOYEE = "func-001"
MANAGER = "gestor-001"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF_SECONDS': 0,
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


@pytest.fixture
def employee_headers():
    return {"X-Employee-Id": EMPLOYEE}


@pytest.fixture
def manager_headers():
    return {"X-Employee-Id": MANAGER, "X-Employee-Role": "gestor"}


@pytest.fixture
def make_product(db_session):
    """Factory: product with an opening balance recorded through the ledger."""
    counter = {"n": 0}

    def _make(name=None, price_cents=699, stock=0, min_stock=0, **kwargs):
        counter["n"] += 1
        return catalog_service.create_product(
            name=name or f"Produto {counter['n']}",
            price=Money(price_cents),
            cost=Money(kwargs.pop("cost_cents", 0)),
            employee_id=EMPLOYEE,
            min_stock_quantity=min_stock,
            initial_stock=stock,
            **kwargs,
        )

    return _make


@pytest.fixture
def open_session(db_session):
    """Factory: open the till with an initial float (default R$ 100,00)."""
    def _open(initial_cents=10000, employee_id=EMPLOYEE):
        return register_service.open_session(
            initial_amount=Money(initial_cents),
            employee_id=employee_id,
        )

    return _open
