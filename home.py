from __future__ import annotations

import streamlit as st
import pandas as pd

from core.config import get_settings
from core.db import get_conn, ensure_schema
from core.logs import configure_logging
from core.services.inventory import dashboard_totals, low_stock_products, product_metrics
from core.services.sales import recent_sales

st.set_page_config(page_title="Stall POS", page_icon="🛍️", layout="wide")

st.title("🛍️ Dashboard")
st.caption("Welcome back to your stall overview.")

settings = get_settings()
configure_logging(settings.log_level, settings.log_path)
conn = get_conn(settings.db_path)
ensure_schema(conn)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")

metrics = product_metrics(conn)
totals = dashboard_totals(metrics)

c1, c2, c3 = st.columns(3)
c1.metric("Total revenue", f"{settings.currency} {totals['total_revenue']:,.2f}")
c2.metric("Total profit", f"{settings.currency} {totals['total_profit']:,.2f}")
c3.metric("Products", f"{totals['total_products']}")

if not metrics:
    st.info(
        "No products yet. Add products in **📦 Inventory**, or load demo data in **⚙️ Settings**.",
        icon="ℹ️",
    )
    st.stop()

low = low_stock_products(conn, settings.low_stock_threshold)
if low:
    names = ", ".join(f"{r['name']} ({r['current_stock']})" for r in low)
    st.warning(f"Low stock (below {settings.low_stock_threshold}): {names}")

left, right = st.columns([3, 2], gap="large")

with left:
    st.subheader("Product performance")
    df = pd.DataFrame(metrics).drop(columns=["id"])
    st.dataframe(df, use_container_width=True, hide_index=True)

with right:
    st.subheader("Recent sales")
    sales = recent_sales(conn, limit=10)
    if sales:
        rows = [
            {
                "Sale": s["id"],
                "Date": s["sale_date"],
                "Items": ", ".join(f"{i['quantity']}× {i['product_name']}" for i in s["items"]),
                "Total": s["total_amount"],
            }
            for s in sales
        ]
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("No sales yet.")
