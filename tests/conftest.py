"""
Shared pytest fixtures for the Print-shop Workflow Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_item: ORM factory placing an item in an arbitrary workflow state
    - actor: role → actor dict helper
"""

import pytest

from printshop import create_app
from printshop.models import db as _db
from printshop.models.order import Order, OrderItem


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── ORM factories (bypass the engine to set arbitrary starting states) ───


_ACTORS = {
    "sales": {"id": "u-sales", "role": "sales", "name": "Sam Sales"},
    "design": {"id": "u-design", "role": "design", "name": "Dana Design"},
    "prepress": {"id": "u-prepress", "role": "prepress", "name": "Pat Prepress"},
    "production": {"id": "u-prod", "role": "production", "name": "Pro Duction"},
    "admin": {"id": "u-admin", "role": "admin", "name": "Ada Admin"},
}


@pytest.fixture()
def actor():
    """``actor("design")`` → {"id", "role", "name"} for that role."""
    def _actor(role):
        return dict(_ACTORS[role])
    return _actor


@pytest.fixture()
def make_order():
    counter = {"n": 0}

    def _make_order(**kwargs):
        counter["n"] += 1
        kwargs.setdefault("order_number", f"WC-{53500 + counter['n']}")
        kwargs.setdefault("customer_name", "Acme Stationers")
        kwargs.setdefault("assigned_user", "u-sales")
        order = Order(**kwargs)
        _db.session.add(order)
        _db.session.flush()
        return order
    return _make_order


@pytest.fixture()
def make_item(make_order):
    """Create and commit an OrderItem in the given state; returns it."""
    def _make_item(order=None, **kwargs):
        order = order or make_order()
        kwargs.setdefault("product_name", "Wedding Card")
        kwargs.setdefault("quantity", 100)
        kwargs.setdefault("current_stage", "sales")
        kwargs.setdefault("status", "new_order")
        kwargs.setdefault("need_design", True)
        kwargs.setdefault("specifications", {})
        kwargs.setdefault("production_stage_sequence", [])
        item = OrderItem(order_id=order.id, **kwargs)
        _db.session.add(item)
        _db.session.commit()
        return item
    return _make_item
