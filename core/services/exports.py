from __future__ import annotations

from datetime import date
from typing import Optional

import pandas as pd

from core.db import q

INVENTORY_COLUMNS = {
    "name": "Name",
    "description": "Description",
    "unit_selling_price": "Selling Price",
    "cost_per_batch": "Cost (Batch)",
    "units_per_batch": "Units (Batch)",
    "current_stock": "Current Stock",
    "total_units_sold": "Total Sold",
}

SALES_COLUMNS = {
    "sale_date": "Sale Date",
    "product": "Product",
    "quantity": "Quantity",
    "unit_price": "Unit Price",
    "subtotal": "Subtotal",
    "total_amount": "Order Total",
    "sale_id": "Sale ID",
}


def inventory_frame(conn) -> pd.DataFrame:
    rows = q(
        conn,
        f"SELECT {', '.join(INVENTORY_COLUMNS)} FROM products ORDER BY name, id",
    )
    df = pd.DataFrame([dict(r) for r in rows], columns=list(INVENTORY_COLUMNS))
    return df.rename(columns=INVENTORY_COLUMNS)


def sales_frame(conn) -> pd.DataFrame:
    """One row per sale line, flattened with its sale header."""
    rows = q(
        conn,
        """
        SELECT s.sale_date,
               COALESCE(p.name, 'Unknown') AS product,
               si.quantity, si.unit_price, si.subtotal,
               s.total_amount,
               s.id AS sale_id
        FROM sale_items si
        JOIN sales s ON s.id = si.sale_id
        LEFT JOIN products p ON p.id = si.product_id
        ORDER BY s.sale_date DESC, s.id DESC, si.id
        """,
    )
    df = pd.DataFrame([dict(r) for r in rows], columns=list(SALES_COLUMNS))
    return df.rename(columns=SALES_COLUMNS)


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False, lineterminator="\r\n").encode("utf-8")


def export_filename(kind: str, on: Optional[date] = None) -> str:
    d = on or date.today()
    return f"stall_{kind}_{d.isoformat()}.csv"
