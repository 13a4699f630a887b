from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from core.db import select, update_versioned
from core.errors import ReadFailure
from core.utils import iso_now

logger = logging.getLogger(__name__)


@dataclass
class StockCounters:
    """In-memory copy of a product's counters, mutated before a single write-back."""

    product_id: int
    name: str
    version: int
    units_per_batch: int
    current_stock: int
    total_units_sold: int
    loaded_stock: int
    loaded_sold: int

    def restore(self, quantity: int) -> None:
        # Floor at zero: tolerate earlier manual corrections of the sold counter.
        self.current_stock += int(quantity)
        self.total_units_sold = max(0, self.total_units_sold - int(quantity))

    def deduct(self, quantity: int) -> None:
        self.current_stock -= int(quantity)
        self.total_units_sold += int(quantity)

    def receive(self, units: int) -> None:
        self.current_stock += int(units)

    @property
    def changed(self) -> bool:
        return self.current_stock != self.loaded_stock or self.total_units_sold != self.loaded_sold


def load_counters(conn, product_ids: Iterable[int]) -> dict[int, StockCounters]:
    ids = sorted({int(p) for p in product_ids})
    if not ids:
        return {}

    rows = select(
        conn,
        "products",
        ["id", "name", "version", "units_per_batch", "current_stock", "total_units_sold"],
        {"id": ids},
    )
    found = {int(r["id"]): r for r in rows}
    missing = [p for p in ids if p not in found]
    if missing:
        raise ReadFailure(f"Product(s) not found: {', '.join(map(str, missing))}.")

    return {
        pid: StockCounters(
            product_id=pid,
            name=str(r["name"]),
            version=int(r["version"]),
            units_per_batch=int(r["units_per_batch"]),
            current_stock=int(r["current_stock"]),
            total_units_sold=int(r["total_units_sold"]),
            loaded_stock=int(r["current_stock"]),
            loaded_sold=int(r["total_units_sold"]),
        )
        for pid, r in found.items()
    }


def write_counters(conn, counters: dict[int, StockCounters]) -> None:
    """Caller must hold a transaction; every product write is version-checked."""
    now = iso_now()
    for c in counters.values():
        if not c.changed:
            continue
        c.version = update_versioned(
            conn,
            "products",
            c.product_id,
            c.version,
            {"current_stock": c.current_stock, "total_units_sold": c.total_units_sold, "updated_at": now},
        )
        c.loaded_stock, c.loaded_sold = c.current_stock, c.total_units_sold
        if c.current_stock < 0:
            logger.warning("Product #%s %r stock is negative (%s)", c.product_id, c.name, c.current_stock)
