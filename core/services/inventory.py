from __future__ import annotations

from typing import Any

from core.db import q
from core.utils import money, safe_div


def inventory_summary(conn):
    return q(
        conn,
        """
        SELECT
          p.id,
          p.name,
          p.description,
          ROUND(p.unit_selling_price, 2) AS unit_selling_price,
          ROUND(p.cost_per_batch, 2) AS cost_per_batch,
          p.units_per_batch,
          p.current_stock,
          p.total_units_sold,
          ROUND(p.current_stock * p.cost_per_batch / p.units_per_batch, 2) AS stock_value,
          p.version
        FROM products p
        ORDER BY p.name, p.id
        """,
    )


def low_stock_products(conn, threshold: int):
    """Products whose stock is strictly below `threshold`, lowest first."""
    return q(
        conn,
        """
        SELECT id, name, current_stock
        FROM products
        WHERE current_stock < ?
        ORDER BY current_stock ASC, name
        """,
        (int(threshold),),
    )


def product_metrics(conn) -> list[dict[str, Any]]:
    """
    Per product: revenue from sale lines, cost from stock purchases,
    profit and margin (% of revenue, 0 when nothing was sold).
    """
    rows = q(
        conn,
        """
        WITH rev AS (
          SELECT product_id,
                 COALESCE(SUM(subtotal),0) AS revenue,
                 COALESCE(SUM(quantity),0) AS units
          FROM sale_items
          GROUP BY product_id
        ),
        cost AS (
          SELECT product_id, COALESCE(SUM(total_cost),0) AS total_cost
          FROM stock_purchases
          GROUP BY product_id
        )
        SELECT
          p.id, p.name, p.unit_selling_price, p.current_stock, p.total_units_sold,
          COALESCE(r.revenue,0) AS total_revenue,
          COALESCE(c.total_cost,0) AS total_cost
        FROM products p
        LEFT JOIN rev r ON r.product_id = p.id
        LEFT JOIN cost c ON c.product_id = p.id
        ORDER BY p.name, p.id
        """,
    )

    out: list[dict[str, Any]] = []
    for r in rows:
        revenue = money(r["total_revenue"])
        cost = money(r["total_cost"])
        profit = money(revenue - cost)
        out.append(
            {
                "id": int(r["id"]),
                "name": str(r["name"]),
                "unit_selling_price": float(r["unit_selling_price"]),
                "current_stock": int(r["current_stock"]),
                "total_units_sold": int(r["total_units_sold"]),
                "total_revenue": revenue,
                "total_cost": cost,
                "profit": profit,
                "profit_margin": round(safe_div(profit, revenue) * 100.0, 2) if revenue > 0 else 0.0,
            }
        )
    return out


def dashboard_totals(metrics: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "total_revenue": money(sum(m["total_revenue"] for m in metrics)),
        "total_profit": money(sum(m["profit"] for m in metrics)),
        "total_products": len(metrics),
    }
