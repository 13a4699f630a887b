from __future__ import annotations

import logging
import random

from core.db import delete, ensure_schema, select, transaction
from core.schema import TABLES_FK_ORDER
from core.services.products import add_product
from core.services.purchases import restock
from core.services.sales import SaleLineInput, record_sale

logger = logging.getLogger(__name__)

# (name, description, price, cost per batch, units per batch)
DEMO_PRODUCTS = [
    ("Chips", "Salted potato chips, 50g", 12.0, 200.0, 24),
    ("Soda", "330ml can", 25.0, 480.0, 24),
    ("Chocolate Bar", None, 40.0, 700.0, 20),
    ("Bottled Water", "500ml", 20.0, 180.0, 12),
    ("Chewing Gum", None, 5.0, 90.0, 30),
]


def reset_sales(conn) -> None:
    """Clear sales history. Stock counters are left as they are."""
    with transaction(conn):
        n_items = delete(conn, "sale_items", {})
        n_sales = delete(conn, "sales", {})
    logger.warning("Sales history cleared (%d sale(s), %d line(s))", n_sales, n_items)


def factory_reset(conn) -> None:
    # Keep schema, delete data (order matters for FKs).
    with transaction(conn):
        for t in TABLES_FK_ORDER:
            delete(conn, t, {})
    logger.warning("Factory reset: all products, sales and purchases deleted")


def load_demo_data(conn, *, seed: int = 7) -> None:
    rng = random.Random(seed)
    ensure_schema(conn)

    existing = {str(r["name"]) for r in select(conn, "products", ["name"])}
    for name, desc, price, cost, units in DEMO_PRODUCTS:
        if name in existing:
            continue
        pid = add_product(
            conn,
            name=name,
            description=desc,
            unit_selling_price=price,
            cost_per_batch=cost,
            units_per_batch=units,
        )
        restock(conn, product_id=pid, batches=rng.randint(1, 3), cost_per_batch=cost, notes="Demo opening stock")

    products = select(conn, "products", order="id")

    # A few sales of 1-3 lines each, never more than what is on hand
    for _ in range(6):
        picks = rng.sample(list(products), k=min(len(products), rng.randint(1, 3)))
        lines = []
        for p in picks:
            on_hand = int(select(conn, "products", ["current_stock"], {"id": int(p["id"])})[0]["current_stock"])
            if on_hand <= 0:
                continue
            lines.append(
                SaleLineInput(
                    product_id=int(p["id"]),
                    quantity=rng.randint(1, min(5, on_hand)),
                    unit_price=float(p["unit_selling_price"]),
                )
            )
        if lines:
            record_sale(conn, lines)
