from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from core.db import delete, insert, q, select, select_one, transaction, update
from core.errors import ConcurrentModification
from core.services.stock import load_counters, write_counters
from core.utils import iso_now, money, same_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    quantity: int
    unit_price: float

    @property
    def subtotal(self) -> float:
        return money(self.quantity * self.unit_price)


@dataclass
class SaleResult:
    sale_id: int
    total_amount: float
    lines: list[SaleLineInput]


LineLike = Union[SaleLineInput, Mapping[str, Any]]


def _quantity(v: Any) -> int:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError("Quantity must be a whole number.")
    if not math.isfinite(f) or f != int(f):
        raise ValueError("Quantity must be a whole number.")
    if int(f) <= 0:
        raise ValueError("Quantity must be > 0.")
    return int(f)


def _unit_price(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError("Unit price must be a number.")
    if not math.isfinite(f):
        raise ValueError("Unit price must be a number.")
    if f < 0:
        raise ValueError("Unit price must be >= 0.")
    return money(f)


def _to_line(line: LineLike) -> SaleLineInput:
    if isinstance(line, SaleLineInput):
        pid, qty, price = line.product_id, line.quantity, line.unit_price
    else:
        pid = line.get("product_id")
        qty = line.get("quantity")
        price = line.get("unit_price", line.get("price"))
    if pid is None:
        raise ValueError("Each line needs a product.")
    return SaleLineInput(product_id=int(pid), quantity=_quantity(qty), unit_price=_unit_price(price))


def normalize_lines(lines: Iterable[LineLike]) -> list[SaleLineInput]:
    items = [_to_line(l) for l in (lines or [])]
    if not items:
        raise ValueError("A sale needs at least one line.")
    return items


def lines_total(lines: Iterable[SaleLineInput]) -> float:
    return money(sum(l.subtotal for l in lines))


def _check_total(lines: list[SaleLineInput], total: Optional[float]) -> float:
    computed = lines_total(lines)
    if total is not None and not same_money(float(total), computed):
        raise ValueError(f"Total {float(total):,.2f} does not match the sum of line subtotals {computed:,.2f}.")
    return computed


def _line_key(line: LineLike) -> tuple[int, int]:
    if isinstance(line, SaleLineInput):
        return (int(line.product_id), int(line.quantity))
    return (int(line["product_id"]), int(line["quantity"]))


def _verify_lines(sale_id: int, stored: list[SaleLineInput], claimed: Iterable[LineLike]) -> None:
    if Counter(_line_key(l) for l in stored) != Counter(_line_key(l) for l in claimed):
        raise ConcurrentModification(f"Sale #{sale_id} was changed by someone else. Reload and retry.")


def _insert_lines(conn, sale_id: int, lines: list[SaleLineInput], ts: str) -> None:
    insert(
        conn,
        "sale_items",
        [
            {
                "sale_id": int(sale_id),
                "product_id": l.product_id,
                "quantity": l.quantity,
                "unit_price": l.unit_price,
                "subtotal": l.subtotal,
                "created_at": ts,
            }
            for l in lines
        ],
    )


def get_sale_lines(conn, sale_id: int) -> list[SaleLineInput]:
    rows = select(conn, "sale_items", ["product_id", "quantity", "unit_price"], {"sale_id": int(sale_id)}, order="id")
    return [
        SaleLineInput(product_id=int(r["product_id"]), quantity=int(r["quantity"]), unit_price=float(r["unit_price"]))
        for r in rows
    ]


# -------------------------
# Engine operations
# -------------------------

def record_sale(conn, lines: Iterable[LineLike], total: Optional[float] = None) -> SaleResult:
    """
    Create a sale with its lines and deduct stock, all in one transaction.

    `total` is optional; when given it must equal the sum of line subtotals.
    Overselling is allowed here (stock may go negative); the POS page caps
    quantities at what is on hand.
    """
    items = normalize_lines(lines)
    amount = _check_total(items, total)

    with transaction(conn):
        counters = load_counters(conn, (l.product_id for l in items))
        for l in items:
            counters[l.product_id].deduct(l.quantity)

        ts = iso_now()
        sale_id = insert(conn, "sales", {"sale_date": ts, "total_amount": amount})[0]
        _insert_lines(conn, sale_id, items, ts)
        write_counters(conn, counters)

    logger.info("Recorded sale #%s: %d line(s), total %.2f", sale_id, len(items), amount)
    return SaleResult(sale_id=int(sale_id), total_amount=amount, lines=items)


def void_sale(conn, sale_id: int, lines: Optional[Iterable[LineLike]] = None) -> SaleResult:
    """
    Restore stock for every line, then delete the lines and the sale.

    Quantities come from the stored lines. `lines`, if passed, is what the
    caller last saw and must still match. Voiding a sale that no longer
    exists raises ReadFailure, so a repeated void never restores twice.
    """
    with transaction(conn):
        sale = select_one(conn, "sales", {"id": int(sale_id)})
        stored = get_sale_lines(conn, sale_id)
        if lines is not None:
            _verify_lines(sale_id, stored, lines)

        counters = load_counters(conn, (l.product_id for l in stored))
        for l in stored:
            counters[l.product_id].restore(l.quantity)
        write_counters(conn, counters)

        delete(conn, "sale_items", {"sale_id": int(sale_id)})
        delete(conn, "sales", {"id": int(sale_id)})

    logger.info("Voided sale #%s (%d line(s) restored)", sale_id, len(stored))
    return SaleResult(sale_id=int(sale_id), total_amount=float(sale["total_amount"]), lines=stored)


def edit_sale(
    conn,
    sale_id: int,
    new_lines: Iterable[LineLike],
    new_total: Optional[float] = None,
    original_lines: Optional[Iterable[LineLike]] = None,
) -> SaleResult:
    """
    Replace a sale's lines, keeping its id and date.

    Stock is reconciled as "restore every original line, then deduct every
    new line" (no line diffing). The counters are replayed in memory and the
    result is written in one transaction together with the new lines and
    total.
    """
    items = normalize_lines(new_lines)
    amount = _check_total(items, new_total)

    with transaction(conn):
        select_one(conn, "sales", {"id": int(sale_id)})
        stored = get_sale_lines(conn, sale_id)
        if original_lines is not None:
            _verify_lines(sale_id, stored, original_lines)

        counters = load_counters(conn, [l.product_id for l in stored] + [l.product_id for l in items])
        for l in stored:
            counters[l.product_id].restore(l.quantity)
        for l in items:
            counters[l.product_id].deduct(l.quantity)

        delete(conn, "sale_items", {"sale_id": int(sale_id)})
        update(conn, "sales", {"total_amount": amount}, {"id": int(sale_id)})
        _insert_lines(conn, sale_id, items, iso_now())
        write_counters(conn, counters)

    logger.info("Edited sale #%s: %d -> %d line(s), total %.2f", sale_id, len(stored), len(items), amount)
    return SaleResult(sale_id=int(sale_id), total_amount=amount, lines=items)


# -------------------------
# Queries
# -------------------------

def recent_sales(conn, limit: int = 20) -> list[dict]:
    """Newest first, each with its items (product name or "Unknown")."""
    sales = select(conn, "sales", ["id", "sale_date", "total_amount"], order=["sale_date DESC", "id DESC"], limit=limit)
    if not sales:
        return []

    ids = [int(s["id"]) for s in sales]
    items = q(
        conn,
        f"""
        SELECT si.sale_id, si.product_id, si.quantity, si.unit_price, si.subtotal,
               p.name AS product_name
        FROM sale_items si
        LEFT JOIN products p ON p.id = si.product_id
        WHERE si.sale_id IN ({', '.join('?' * len(ids))})
        ORDER BY si.id
        """,
        ids,
    )

    by_sale: dict[int, list[dict]] = {i: [] for i in ids}
    for r in items:
        by_sale[int(r["sale_id"])].append(
            {
                "product_id": int(r["product_id"]),
                "product_name": r["product_name"] or "Unknown",
                "quantity": int(r["quantity"]),
                "unit_price": float(r["unit_price"]),
                "subtotal": float(r["subtotal"]),
            }
        )

    return [
        {
            "id": int(s["id"]),
            "sale_date": str(s["sale_date"]),
            "total_amount": float(s["total_amount"]),
            "items": by_sale[int(s["id"])],
        }
        for s in sales
    ]


def filter_sales(sales: list[dict], term: Optional[str]) -> list[dict]:
    t = (term or "").strip().lower()
    if not t:
        return sales
    return [
        s
        for s in sales
        if t == str(s["id"]) or any(t in str(i["product_name"]).lower() for i in s["items"])
    ]


# -------------------------
# Sale editor rows
# -------------------------

def product_label(product: Mapping[str, Any]) -> str:
    """Selectbox label; carries the id since product names are not unique."""
    return f"{product['name']} (#{int(product['id'])})"


def editor_rows(sale: Mapping[str, Any]) -> list[dict]:
    return [
        {
            "Product": product_label({"id": i["product_id"], "name": i["product_name"]}),
            "Quantity": i["quantity"],
            "Unit Price": i["unit_price"],
        }
        for i in sale["items"]
    ]


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v))


def lines_from_editor(
    rows: Iterable[Mapping[str, Any]], products: Iterable[Mapping[str, Any]]
) -> tuple[list[SaleLineInput], list[str]]:
    """
    Turn edited rows back into sale lines.

    Products are resolved by label, so two products sharing a name stay
    distinct. An empty unit price falls back to the product's current price.
    Returns (lines, problems).
    """
    by_label = {product_label(p): p for p in products}
    lines: list[SaleLineInput] = []
    problems: list[str] = []
    for r in rows:
        label = r.get("Product")
        p = None if _blank(label) else by_label.get(str(label))
        if p is None:
            problems.append(f"Unknown product: {label}")
            continue
        try:
            qty = _quantity(r.get("Quantity"))
            price = r.get("Unit Price")
            unit_price = _unit_price(p["unit_selling_price"] if _blank(price) else price)
        except ValueError as e:
            problems.append(f"{label}: {e}")
            continue
        lines.append(SaleLineInput(product_id=int(p["id"]), quantity=qty, unit_price=unit_price))
    return lines, problems
