"""Shared fixtures: a file-backed SQLite database per test, app client, tokens"""
import os

os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert, select

from storefront.config import Settings
from storefront.db.database import Database
from storefront.db.schema import detect_capabilities
from storefront.main import create_app
from storefront.models.product import Product
from storefront.services.auth import create_access_token
from storefront.services.order_service import OrderService

TEST_SECRET = "test-secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'storefront.db'}",
        environment="test",
        otel_enabled=False,
        log_format="text",
        log_level="WARNING",
        jwt_secret=TEST_SECRET,
        db_lock_timeout=10.0,
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url, lock_timeout=settings.db_lock_timeout)
    db.open()
    db.create_tables()
    yield db
    db.close()


@pytest.fixture
def capabilities(database):
    return detect_capabilities(database.engine)


@pytest.fixture
def order_service(capabilities):
    return OrderService(capabilities)


@pytest.fixture
def session(database):
    db = database.session()
    yield db
    db.close()


def add_product(database, product_id, stock, price="100.00", name=None, image=None):
    """Insert a catalog row and commit"""
    values = {
        "id": product_id,
        "name": name or f"Product {product_id}",
        "price": Decimal(price),
        "stock_quantity": stock,
        "in_stock": stock > 0,
    }
    if image is not None:
        values["image"] = image
    with database.engine.begin() as conn:
        conn.execute(insert(Product.__table__).values(**values))


def stock_of(database, product_id):
    """(stock_quantity, in_stock) as currently committed"""
    products = Product.__table__
    with database.engine.connect() as conn:
        row = conn.execute(
            select(products.c.stock_quantity, products.c.in_stock).where(products.c.id == product_id)
        ).one()
    return row.stock_quantity, bool(row.in_stock)


def count_rows(database, table):
    with database.engine.connect() as conn:
        return len(conn.execute(select(table)).all())


@pytest.fixture
def seed(database):
    def _seed(product_id, stock, **kwargs):
        add_product(database, product_id, stock, **kwargs)
    return _seed


@pytest.fixture
def client(settings, database):
    # database fixture creates the schema first so tests can seed it
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def bearer(user_id, role="user", secret=TEST_SECRET):
    token = create_access_token({"id": user_id, "role": role}, secret)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    return bearer("U1")


@pytest.fixture
def admin_headers():
    return bearer("A1", role="admin")
