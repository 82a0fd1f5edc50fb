"""
Pytest fixtures for stockrecon backend tests.

Provides an in-memory database, a test client and batch/sale helpers.
"""

from datetime import datetime

import pytest
from stockrecon import create_app
from stockrecon.extensions import db
from stockrecon.services import inventory_service
from stockrecon.services.sale_recorder import LineItem, SaleContext


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RECONCILIATION_MODE': 'reconciliation',
        'SCHEDULER_ENABLED': False,
        'TX_RETRY_BACKOFF': 0,
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
def receive(db_session):
    """Receive a batch: receive("P1", "B1", 5, 100, day=1)."""
    def _receive(product_id, batch_id, quantity, unit_price_cents=100, day=1, **kwargs):
        return inventory_service.receive_batch(
            product_id=product_id,
            batch_id=batch_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            received_at=datetime(2026, 1, day, 9, 0, 0),
            company_id=kwargs.get("company_id", "C1"),
            store_id=kwargs.get("store_id", "S1"),
        )
    return _receive


def make_context(order_id="ORD-1", company_id="C1", store_id="S1", **kwargs):
    return SaleContext(
        company_id=company_id,
        store_id=store_id,
        order_id=order_id,
        cashier_id=kwargs.get("cashier_id", "cashier-1"),
        invoice_number=kwargs.get("invoice_number"),
        payment_captured=kwargs.get("payment_captured", True),
    )


def line(product_id, quantity, unit_price_cents=100, product_name=None):
    return LineItem(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        product_name=product_name,
    )
