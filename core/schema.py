SCHEMA_SQL = r"""
-- Product catalog with running counters
CREATE TABLE IF NOT EXISTS products (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  description TEXT,
  unit_selling_price REAL NOT NULL DEFAULT 0,
  cost_per_batch REAL NOT NULL DEFAULT 0,
  units_per_batch INTEGER NOT NULL DEFAULT 1 CHECK (units_per_batch >= 1),
  current_stock INTEGER NOT NULL DEFAULT 0,     -- may go negative if oversold
  total_units_sold INTEGER NOT NULL DEFAULT 0,
  version INTEGER NOT NULL DEFAULT 1,           -- bumped on every update
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

-- Sale headers
CREATE TABLE IF NOT EXISTS sales (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  sale_date TEXT NOT NULL,                      -- ISO datetime (UTC)
  total_amount REAL NOT NULL DEFAULT 0
);

-- Sale lines; unit_price is captured at sale time
CREATE TABLE IF NOT EXISTS sale_items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  sale_id INTEGER NOT NULL,
  product_id INTEGER NOT NULL,
  quantity INTEGER NOT NULL CHECK (quantity > 0),
  unit_price REAL NOT NULL,
  subtotal REAL NOT NULL,
  created_at TEXT NOT NULL,
  FOREIGN KEY (sale_id) REFERENCES sales(id),
  FOREIGN KEY (product_id) REFERENCES products(id)
);

-- Restock events (append-only)
CREATE TABLE IF NOT EXISTS stock_purchases (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  batches_purchased INTEGER NOT NULL CHECK (batches_purchased >= 1),
  cost_per_batch REAL NOT NULL,
  total_cost REAL NOT NULL,
  units_added INTEGER NOT NULL,
  notes TEXT,
  purchase_date TEXT NOT NULL,
  FOREIGN KEY (product_id) REFERENCES products(id)
);

CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id);
CREATE INDEX IF NOT EXISTS idx_sale_items_product ON sale_items(product_id);
CREATE INDEX IF NOT EXISTS idx_stock_purchases_product ON stock_purchases(product_id);
"""

# Deletion order that respects the foreign keys above.
TABLES_FK_ORDER = ["sale_items", "sales", "stock_purchases", "products"]
