"""
Pytest fixtures for dealer backend tests.

Provides test database setup, record factories, and test client.
"""

import pytest

from dealer import create_app
from dealer.extensions import db
from dealer.models import Customer, TradeIn, User, Vehicle
from dealer.services import stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Maria Souza", document="12345678900", phone="11999990000")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def seller(db_session):
    seller = User(name="Carlos Lima", email="carlos@dealer.local", role="seller", is_active=True)
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def trade_in(db_session, customer):
    trade_in = TradeIn(
        customer_id=customer.id,
        brand="Fiat",
        model="Uno",
        year=2012,
        km=120000,
        table_value_cents=1800000,
        offer_value_cents=1500000,
        status="pending",
    )
    db_session.add(trade_in)
    db_session.commit()
    return trade_in


@pytest.fixture(scope='function')
def make_stock_item(db_session):
    """Factory: register a stock item through the intake service."""
    def _make(**overrides):
        payload = {
            "brand": "Toyota",
            "model": "Corolla",
            "year": 2020,
            "acquisition_value_cents": 8000000,
        }
        payload.update(overrides)
        return stock_service.create_stock_item(payload)
    return _make


@pytest.fixture(scope='function')
def make_vehicle(db_session):
    """Factory: insert a fleet vehicle directly."""
    def _make(**overrides):
        fields = {
            "brand": "Honda",
            "model": "Civic",
            "year": 2019,
            "plate": "ABC1D23",
            "acquisition_cost_cents": 7000000,
            "status": "available",
        }
        fields.update(overrides)
        vehicle = Vehicle(**fields)
        db_session.add(vehicle)
        db_session.commit()
        return vehicle
    return _make

