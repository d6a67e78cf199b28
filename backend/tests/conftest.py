"""
Pytest fixtures for bookstock backend tests.

Provides test database setup, stock locations, catalog products and test client.
"""

from decimal import Decimal

import pytest
from bookstock import create_app
from bookstock.extensions import db
from bookstock.models import StockLocation, Product
from bookstock.models.locations import LOCATION_KIND_DEPOT, LOCATION_KIND_LIBRARY


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
def depot(db_session):
    """Central depot (the usual source)."""
    location = StockLocation(name="Gros", code="depot", kind=LOCATION_KIND_DEPOT)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def branch(db_session):
    """Library branch (the usual destination)."""
    location = StockLocation(name="Librairie Al Ouloum", code="branch-1", kind=LOCATION_KIND_LIBRARY)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def other_branch(db_session):
    """Second library branch, never party to the test movements."""
    location = StockLocation(name="Librairie La Renaissance", code="branch-2", kind=LOCATION_KIND_LIBRARY)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product_a(db_session):
    product = Product(name="Le Petit Prince", reference="PA-001", price=Decimal("18.00"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(name="L'Etranger", reference="PB-001", price=Decimal("12.50"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def unpriced_product(db_session):
    product = Product(name="Cahier 96 pages", reference="PC-001", price=None)
    db_session.add(product)
    db_session.commit()
    return product
