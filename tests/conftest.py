"""Pytest fixtures for shopcore tests."""

import os

# Settings are read at import time; keep tests off PostgreSQL and RabbitMQ
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENTS_ENABLED"] = "false"

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from shopcore.database import build_engine, init_db
from shopcore.models import Coupon, Product, ProductVariant, User
from shopcore.models.enums import CouponScope, DiscountType, UserRole
from shopcore.utils import utcnow


class RecordingPublisher:
    """EventPublisher stand-in that keeps every event in memory."""

    def __init__(self):
        self.events = []

    def _record(self, event_type, data):
        self.events.append((event_type, data))
        return True

    def publish_order_created(self, order_data):
        return self._record("OrderCreated", order_data)

    def publish_order_status_changed(self, order_data):
        return self._record("OrderStatusChanged", order_data)

    def publish_refund_status_changed(self, refund_data):
        return self._record("RefundStatusChanged", refund_data)

    def publish_stock_low(self, alert_data):
        return self._record("StockLow", alert_data)

    def of_type(self, event_type):
        return [data for kind, data in self.events if kind == event_type]


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    engine = build_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def make_user(db):
    """Factory for committed users."""
    counter = {"n": 0}

    def _make(role=UserRole.CUSTOMER):
        counter["n"] += 1
        user = User(email=f"user{counter['n']}@example.com", full_name=f"User {counter['n']}", role=role.value)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_product(db):
    """Factory for committed active products."""
    counter = {"n": 0}

    def _make(price="100.00", stock=20, category_id=None, is_active=True):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']}",
            name=f"Product {counter['n']}",
            price=Decimal(price),
            stock_quantity=stock,
            category_id=category_id,
            is_active=is_active
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db):
    """Factory for committed variants."""

    def _make(product, stock=20, price_adjustment="0.00", attributes=None):
        variant = ProductVariant(
            product_id=product.id,
            variant_attributes=attributes or {"size": "M"},
            price_adjustment=Decimal(price_adjustment),
            stock_quantity=stock
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def make_coupon(db):
    """Factory for committed coupons valid from yesterday until next week."""

    def _make(code="SAVE10", discount_type=DiscountType.PERCENTAGE, discount_value="10", **overrides):
        now = utcnow()
        fields = {
            "code": code.upper(),
            "name": f"Coupon {code}",
            "discount_type": discount_type.value,
            "discount_value": Decimal(discount_value),
            "min_order_amount": Decimal("0"),
            "usage_limit": None,
            "used_count": 0,
            "user_limit": 1,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=7),
            "is_active": True,
            "applicable_to": CouponScope.ALL.value
        }
        fields.update(overrides)
        coupon = Coupon(**fields)
        db.add(coupon)
        db.commit()
        return coupon

    return _make
