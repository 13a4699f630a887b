"""Tests for restocking."""

import pytest

from core import db
from core.errors import ReadFailure
from core.services.products import add_product
from core.services.purchases import list_purchases, restock, restock_preview
from core.services.sales import SaleLineInput, record_sale


@pytest.fixture
def crate(conn):
    pid = add_product(conn, name="Juice", unit_selling_price=5, cost_per_batch=10, units_per_batch=24)
    db.update(conn, "products", {"current_stock": 5}, {"id": pid})
    return pid


def test_restock_adds_batches_times_units(conn, crate, counters):
    res = restock(conn, product_id=crate, batches=3, cost_per_batch=10)

    assert counters(crate) == (77, 0)
    assert res.units_added == 72
    assert res.total_cost == 30
    assert res.current_stock == 77

    purchase = db.select_one(conn, "stock_purchases", {"id": res.purchase_id})
    assert purchase["batches_purchased"] == 3
    assert purchase["cost_per_batch"] == 10
    assert purchase["total_cost"] == 30
    assert purchase["units_added"] == 72
    assert purchase["notes"] is None


def test_restock_accepts_matching_caller_values(conn, crate, counters):
    restock(conn, product_id=crate, batches=2, cost_per_batch=10, total_cost=20, units_added=48, notes=" market ")
    assert counters(crate) == (53, 0)
    assert db.select(conn, "stock_purchases")[0]["notes"] == "market"


def test_restock_rejects_wrong_units_added(conn, crate, counters):
    with pytest.raises(ValueError, match="Units added"):
        restock(conn, product_id=crate, batches=3, cost_per_batch=10, units_added=70)
    assert counters(crate) == (5, 0)
    assert db.select(conn, "stock_purchases") == []


def test_restock_rejects_wrong_total_cost(conn, crate, counters):
    with pytest.raises(ValueError, match="Total cost"):
        restock(conn, product_id=crate, batches=3, cost_per_batch=10, total_cost=31)
    assert counters(crate) == (5, 0)


@pytest.mark.parametrize("batches", [0, -2, 1.5, float("inf"), float("nan")])
def test_restock_needs_at_least_one_whole_batch(conn, crate, batches):
    with pytest.raises(ValueError):
        restock(conn, product_id=crate, batches=batches, cost_per_batch=10)


def test_restock_rejects_negative_cost(conn, crate):
    with pytest.raises(ValueError):
        restock(conn, product_id=crate, batches=1, cost_per_batch=-1)


def test_restock_rejects_infinite_cost(conn, crate, counters):
    with pytest.raises(ValueError):
        restock(conn, product_id=crate, batches=1, cost_per_batch=float("inf"))
    assert counters(crate) == (5, 0)


def test_restock_free_goods(conn, crate, counters):
    res = restock(conn, product_id=crate, batches=1, cost_per_batch=0)
    assert res.total_cost == 0
    assert counters(crate) == (29, 0)


def test_restock_unknown_product(conn):
    with pytest.raises(ReadFailure):
        restock(conn, product_id=404, batches=1, cost_per_batch=1)
    assert db.select(conn, "stock_purchases") == []


def test_restock_does_not_touch_units_sold(conn, crate, counters):
    record_sale(conn, [SaleLineInput(crate, 2, 5)])
    restock(conn, product_id=crate, batches=1, cost_per_batch=10)
    assert counters(crate) == (27, 2)


def test_restock_preview():
    assert restock_preview(24, 3, 10) == (72, 30)
    assert restock_preview(6, 2, 12.345) == (12, 24.69)


def test_list_purchases_newest_first(conn, crate):
    restock(conn, product_id=crate, batches=1, cost_per_batch=10)
    restock(conn, product_id=crate, batches=2, cost_per_batch=10)
    rows = list_purchases(conn)
    assert [r["batches_purchased"] for r in rows] == [2, 1]
    assert rows[0]["product"] == "Juice"
