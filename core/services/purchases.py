from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from core.db import insert, q, transaction
from core.services.stock import load_counters, write_counters
from core.utils import iso_now, money

logger = logging.getLogger(__name__)


@dataclass
class RestockResult:
    purchase_id: int
    product_id: int
    batches: int
    units_added: int
    total_cost: float
    current_stock: int


def _batches(v: Any) -> int:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError("Batches must be a whole number.")
    if not math.isfinite(f) or f != int(f) or int(f) < 1:
        raise ValueError("Batches must be a whole number >= 1.")
    return int(f)


def _cost(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError("Cost per batch must be a number.")
    if not math.isfinite(f):
        raise ValueError("Cost per batch must be a number.")
    if f < 0:
        raise ValueError("Cost per batch must be >= 0.")
    return money(f)


def restock_preview(units_per_batch: int, batches: int, cost_per_batch: float) -> tuple[int, float]:
    """(units_added, total_cost) for a restock; the page shows this before confirming."""
    return int(units_per_batch) * int(batches), money(int(batches) * float(cost_per_batch))


def restock(
    conn,
    *,
    product_id: int,
    batches: int,
    cost_per_batch: float,
    notes: Optional[str] = None,
    total_cost: Optional[float] = None,
    units_added: Optional[int] = None,
) -> RestockResult:
    """
    Append a stock purchase and add its units to the product's stock.

    units_added and total_cost are derived here from the product's
    units_per_batch; values passed by the caller are only checked against
    them. total_units_sold is not touched.
    """
    n = _batches(batches)
    cpb = _cost(cost_per_batch)

    with transaction(conn):
        counters = load_counters(conn, [int(product_id)])
        c = counters[int(product_id)]
        units, cost = restock_preview(c.units_per_batch, n, cpb)

        if units_added is not None and int(units_added) != units:
            raise ValueError(
                f"Units added {units_added} does not match {n} batch(es) x {c.units_per_batch} units = {units}."
            )
        if total_cost is not None and abs(money(float(total_cost)) - cost) >= 0.005:
            raise ValueError(f"Total cost {float(total_cost):,.2f} does not match {n} x {cpb:,.2f} = {cost:,.2f}.")

        purchase_id = insert(
            conn,
            "stock_purchases",
            {
                "product_id": int(product_id),
                "batches_purchased": n,
                "cost_per_batch": cpb,
                "total_cost": cost,
                "units_added": units,
                "notes": (str(notes).strip() or None) if notes is not None else None,
                "purchase_date": iso_now(),
            },
        )[0]
        c.receive(units)
        write_counters(conn, counters)

    logger.info("Restocked product #%s: %d batch(es), +%d units, cost %.2f", product_id, n, units, cost)
    return RestockResult(
        purchase_id=int(purchase_id),
        product_id=int(product_id),
        batches=n,
        units_added=units,
        total_cost=cost,
        current_stock=c.current_stock,
    )


def list_purchases(conn, limit: int = 25):
    return q(
        conn,
        """
        SELECT sp.id, sp.purchase_date, p.name AS product, sp.batches_purchased,
               sp.cost_per_batch, sp.total_cost, sp.units_added, sp.notes
        FROM stock_purchases sp
        LEFT JOIN products p ON p.id = sp.product_id
        ORDER BY sp.id DESC
        LIMIT ?
        """,
        (int(limit),),
    )
