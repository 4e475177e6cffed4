"""
Pytest fixtures for the back-office ledger tests.

Provides an in-memory database wiped before every test, a test client, and
small factories for the entries and sessions most tests start from.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, EntryType, PaymentMethod
from backoffice.services import cash_session_service, ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DOCUMENT_NUMBER_PREFIX': '',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client on a clean database."""
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
def cash_session(db_session):
    """OPEN session at POS-1 with 10000 in the drawer."""
    return cash_session_service.open_session(
        point_of_sale_id="POS-1",
        user_id="cashier-1",
        opening_amount=Decimal("10000"),
    )


@pytest.fixture
def customer(db_session):
    customer = Customer(id="cust-1", first_name="Ana", last_name="Rojas")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def make_entry(db_session):
    """
    Factory for entries with sensible defaults per type.

    make_entry("SALE", 5000, cash_session_id=...) creates a confirmed sale.
    """
    defaults = {
        EntryType.SALE: {"point_of_sale_id": "POS-1", "payment_method": PaymentMethod.CASH},
        EntryType.SALE_RETURN: {"point_of_sale_id": "POS-1"},
        EntryType.PAYMENT_IN: {"point_of_sale_id": "POS-1", "payment_method": PaymentMethod.CASH},
        EntryType.PAYMENT_OUT: {},
        EntryType.PURCHASE: {"storage_id": "WH-1", "supplier_id": "sup-1"},
        EntryType.PURCHASE_RETURN: {"storage_id": "WH-1", "supplier_id": "sup-1"},
        EntryType.PURCHASE_ORDER: {"supplier_id": "sup-1", "storage_id": "WH-1"},
        EntryType.OPERATING_EXPENSE: {"expense_category_id": "cat-1", "cost_center_id": "cc-1"},
    }

    def _make(entry_type, total=None, confirm=True, **fields):
        data = {"user_id": "user-1", **defaults.get(entry_type, {})}
        if total is not None:
            data["subtotal"] = total
            data["total"] = total
        data.update(fields)
        return ledger_service.create_entry(entry_type, data, confirm=confirm)

    return _make
