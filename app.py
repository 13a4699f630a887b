from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="Stall POS", page_icon="🛍️", layout="wide")

pages = [
    st.Page("home.py", title="Dashboard", icon="🏠"),
    st.Page("pages/1_🛒_POS.py", title="Point of Sale", icon="🛒"),
    st.Page("pages/2_📦_Inventory.py", title="Inventory", icon="📦"),
    st.Page("pages/3_🧾_Transactions.py", title="Transactions", icon="🧾"),
    st.Page("pages/4_⚙️_Settings.py", title="Settings", icon="⚙️"),
]

st.navigation(pages).run()
