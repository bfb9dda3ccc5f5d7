"""
Pytest fixtures for Kasir backend tests.

Provides the application on an in-memory database, a per-test clean
database, a test client, and small factories for catalog and contacts.
"""

import pytest

from kasir import create_app
from kasir.extensions import db
from kasir.models import Contact, Fee, Product
from kasir.pos_session import REGISTRY_KEY, get_registry
from kasir.services import settings_service


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


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database (and session registry) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop(REGISTRY_KEY, None)

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def pos(db_session):
    """An open POS session for a cashier."""
    return get_registry().open(user_id=7, user_name="Kasir 1")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: persisted product. Defaults to price 10000, stock 50."""
    def _make(name="Kopi Susu", price=10000, stock=50, **fields):
        product = Product(
            name=name,
            price=price,
            purchase_price=fields.pop("purchase_price", 0),
            stock=stock,
            discount=fields.pop("discount", None),
            wholesale_prices=fields.pop("wholesale_prices", []),
            variations=fields.pop("variations", []),
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(name="Budi", phone=None, barcode=None, type="customer"):
        contact = Contact(name=name, type=type, phone=phone, barcode=barcode, points=0)
        db_session.add(contact)
        db_session.commit()
        return contact
    return _make


@pytest.fixture(scope='function')
def make_fee(db_session):
    def _make(name="Layanan", type="percentage", value=10, is_default=False, is_tax=False):
        fee = Fee(name=name, type=type, value=value, is_default=is_default, is_tax=is_tax)
        db_session.add(fee)
        db_session.commit()
        return fee
    return _make


@pytest.fixture(scope='function')
def settings(db_session):
    """Setter for store settings: settings(enableDonationRounding=True, ...)."""
    def _set(**values):
        return settings_service.update_settings(values)
    return _set
