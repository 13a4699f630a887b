from __future__ import annotations

import logging
import math
from typing import Any, Optional

from core.db import insert, select, select_one, transaction, update_versioned
from core.utils import iso_now, money

logger = logging.getLogger(__name__)

CATALOG_FIELDS = ("name", "description", "unit_selling_price", "cost_per_batch", "units_per_batch")


def _normalize_text(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def _non_negative_money(v: Any, label: str) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number.")
    if not math.isfinite(f):
        raise ValueError(f"{label} must be a number.")
    if f < 0:
        raise ValueError(f"{label} must be >= 0.")
    return money(f)


def _units_per_batch(v: Any) -> int:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError("Units per batch must be a whole number.")
    if not math.isfinite(f) or f != int(f):
        raise ValueError("Units per batch must be a whole number.")
    if int(f) < 1:
        raise ValueError("Units per batch must be >= 1.")
    return int(f)


def _clean_catalog_fields(fields: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in fields.items():
        if k not in CATALOG_FIELDS:
            raise ValueError(f"Unknown product field: {k}")
        if k == "name":
            name = _normalize_text(v)
            if not name:
                raise ValueError("Product name is required.")
            out[k] = name
        elif k == "description":
            out[k] = _normalize_text(v)
        elif k == "unit_selling_price":
            out[k] = _non_negative_money(v, "Selling price")
        elif k == "cost_per_batch":
            out[k] = _non_negative_money(v, "Cost per batch")
        else:
            out[k] = _units_per_batch(v)
    return out


def add_product(
    conn,
    *,
    name: str,
    unit_selling_price: float,
    cost_per_batch: float,
    units_per_batch: int,
    description: Optional[str] = None,
) -> int:
    """New products start with zero stock and zero units sold; stock arrives via restock."""
    fields = _clean_catalog_fields(
        {
            "name": name,
            "description": description,
            "unit_selling_price": unit_selling_price,
            "cost_per_batch": cost_per_batch,
            "units_per_batch": units_per_batch,
        }
    )
    now = iso_now()
    product_id = insert(
        conn,
        "products",
        {**fields, "current_stock": 0, "total_units_sold": 0, "version": 1, "created_at": now, "updated_at": now},
    )[0]
    logger.info("Added product #%s %r", product_id, fields["name"])
    return int(product_id)


def get_product(conn, product_id: int):
    return select_one(conn, "products", {"id": int(product_id)})


def list_products(conn, *, search: Optional[str] = None, in_stock_only: bool = False) -> list:
    rows = select(conn, "products", order=["name", "id"])
    term = (search or "").strip().lower()
    out = []
    for r in rows:
        if term and term not in str(r["name"]).lower():
            continue
        if in_stock_only and int(r["current_stock"]) <= 0:
            continue
        out.append(r)
    return out


def update_product(conn, product_id: int, *, expected_version: int, **fields: Any) -> int:
    """
    Edit catalog fields only; stock and sold counters are owned by sales and restocks.
    Returns the new version.
    """
    if not fields:
        raise ValueError("Nothing to update.")
    clean = _clean_catalog_fields(fields)
    with transaction(conn):
        get_product(conn, product_id)
        version = update_versioned(
            conn, "products", int(product_id), int(expected_version), {**clean, "updated_at": iso_now()}
        )
    logger.info("Updated product #%s (%s)", product_id, ", ".join(sorted(clean)))
    return version
