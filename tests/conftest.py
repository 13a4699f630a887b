"""
Pytest fixtures: every test gets a fresh SQLite database under tmp_path.
"""

import pytest

from core import db
from core.services.products import add_product
from core.services.purchases import restock


@pytest.fixture
def conn(tmp_path):
    c = db.connect(tmp_path / "test.db")
    db.ensure_schema(c)
    yield c
    c.close()


@pytest.fixture
def counters(conn):
    """Return (current_stock, total_units_sold) for a product id."""

    def _read(product_id):
        r = db.select_one(conn, "products", {"id": product_id}, ["current_stock", "total_units_sold"])
        return int(r["current_stock"]), int(r["total_units_sold"])

    return _read


@pytest.fixture
def chips(conn):
    """Chips at 12 per unit with 10 units on hand (one batch of 10)."""
    pid = add_product(conn, name="Chips", unit_selling_price=12, cost_per_batch=100, units_per_batch=10)
    restock(conn, product_id=pid, batches=1, cost_per_batch=100)
    return pid


@pytest.fixture
def soda(conn):
    """Soda at 25 per unit with 24 units on hand."""
    pid = add_product(conn, name="Soda", unit_selling_price=25, cost_per_batch=480, units_per_batch=24)
    restock(conn, product_id=pid, batches=1, cost_per_batch=480)
    return pid
