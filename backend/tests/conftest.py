"""
Pytest fixtures for cyclestock backend tests.

Provides test database setup, a test client and small factories for the raw
transaction streams (supplies, sales, stockouts).
"""

import itertools
from datetime import datetime

import pytest
from cyclestock import create_app
from cyclestock.config import TestConfig
from cyclestock.extensions import db
from cyclestock.models import (
    Category,
    Employee,
    PaymentMethod,
    Product,
    Sale,
    SaleDetail,
    Stockout,
    StockoutDetail,
    Supplier,
    Supply,
    SupplyDetail,
)
from cyclestock.models.sales import SALE_STATUS_COMPLETED
from cyclestock.models.supplies import SUPPLY_STATUS_RECEIVED


_sku_counter = itertools.count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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
def supplier(db_session):
    supplier = Supplier(name="Trailhead Distribution", contact="orders@trailhead.example")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def cashier(db_session):
    employee = Employee(first_name="Dana", middle_name="lee", last_name="Cruz")
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def catalog(db_session):
    """Categories and payment methods used by report dimensions."""
    db_session.add_all([
        Category(code="MTB", name="Mountain Bikes"),
        Category(code="ACC", name="Accessories"),
        PaymentMethod(code="CASH", name="Cash"),
        PaymentMethod(code="CARD", name="Card"),
    ])
    db_session.commit()


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Ridge 29er", reorder_level=5, supplier=None, category_code=None,
              price_cents=1000, is_active=True):
        product = Product(
            sku=f"SKU-{next(_sku_counter):05d}",
            name=name,
            reorder_level=reorder_level,
            supplier_id=supplier.id if supplier is not None else None,
            category_code=category_code,
            price_cents=price_cents,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def receive(db_session):
    """Record a supply: receive(product, qty, when) or receive([(product, qty), ...], when)."""
    def _receive(product_or_lines, quantity=None, when=datetime(2024, 1, 1, 9, 0),
                 supplier=None, status=SUPPLY_STATUS_RECEIVED, remarks=None):
        lines = product_or_lines if quantity is None else [(product_or_lines, quantity)]
        supply = Supply(
            supplier_id=supplier.id if supplier is not None else None,
            supply_date=when,
            status=status,
            remarks=remarks,
        )
        db_session.add(supply)
        db_session.flush()
        for product, qty in lines:
            db_session.add(SupplyDetail(supply_id=supply.id, product_id=product.id, quantity_supplied=qty))
        db_session.commit()
        return supply

    return _receive


@pytest.fixture(scope='function')
def sell(db_session):
    """Record a sale: sell(product, qty, when) or sell([(product, qty), ...], when). Returns the Sale."""
    def _sell(product_or_lines, quantity=None, when=datetime(2024, 1, 2, 12, 0),
              unit_price_cents=None, status=SALE_STATUS_COMPLETED, cashier=None,
              payment_method_code=None):
        lines = product_or_lines if quantity is None else [(product_or_lines, quantity)]
        sale = Sale(
            sale_date=when,
            status=status,
            cashier_id=cashier.id if cashier is not None else None,
            payment_method_code=payment_method_code,
        )
        db_session.add(sale)
        db_session.flush()
        for product, qty in lines:
            price = unit_price_cents if unit_price_cents is not None else product.price_cents
            db_session.add(SaleDetail(sale_id=sale.id, product_id=product.id,
                                      quantity_sold=qty, unit_price_cents=price))
        db_session.commit()
        return sale

    return _sell


@pytest.fixture(scope='function')
def stockout(db_session):
    def _stockout(product, quantity, when=datetime(2024, 1, 3, 8, 0), reason="Damaged", header_only=False):
        record = Stockout(stockout_date=when, reason=reason)
        if header_only:
            record.product_id = product.id
            record.quantity_removed = quantity
        db_session.add(record)
        db_session.flush()
        if not header_only:
            db_session.add(StockoutDetail(stockout_id=record.id, product_id=product.id,
                                          quantity_removed=quantity))
        db_session.commit()
        return record

    return _stockout
