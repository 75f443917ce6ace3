from pathlib import Path
import logging
import sqlite3

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- users (operators) -------- */
CREATE TABLE IF NOT EXISTS users (
    user_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    username   TEXT UNIQUE NOT NULL,
    full_name  TEXT NOT NULL,
    role       TEXT NOT NULL DEFAULT 'user',
    is_active  INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

/* -------- clients -------- */
CREATE TABLE IF NOT EXISTS clients (
    client_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    phone        TEXT,
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    name                  TEXT NOT NULL,
    sku                   TEXT,
    last_sale_price       NUMERIC CHECK (last_sale_price IS NULL OR CAST(last_sale_price AS REAL) >= 0),
    suggested_sale_price  NUMERIC CHECK (suggested_sale_price IS NULL OR CAST(suggested_sale_price AS REAL) >= 0)
);

/* ======================== SALES ======================== */

CREATE TABLE IF NOT EXISTS sales (
    sale_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number  INTEGER NOT NULL,
    client_id     INTEGER,
    created_by    INTEGER,
    sale_date     DATE NOT NULL DEFAULT CURRENT_DATE,
    status        TEXT NOT NULL DEFAULT 'draft'
                  CHECK (status IN ('draft','pending','completed','cancelled')),

    /* totals: always computed here, never trusted from the terminal */
    total_amount    NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(total_amount AS REAL) >= 0),
    paid_amount     NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(paid_amount AS REAL) >= 0),
    discount_amount NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount_amount AS REAL) >= 0),
    discount_type   TEXT NOT NULL DEFAULT 'fixed' CHECK (discount_type IN ('fixed','percentage')),

    notes       TEXT,
    created_at  TIMESTAMP NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f','now')),
    FOREIGN KEY (client_id)  REFERENCES clients(client_id),
    FOREIGN KEY (created_by) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_date ON sales(sale_date);
CREATE UNIQUE INDEX IF NOT EXISTS idx_sales_day_order ON sales(sale_date, order_number);

CREATE TABLE IF NOT EXISTS sale_items (
    item_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id     INTEGER NOT NULL,
    product_id  INTEGER NOT NULL,
    quantity    INTEGER NOT NULL CHECK (quantity > 0),
    unit_price  NUMERIC NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    FOREIGN KEY (sale_id)    REFERENCES sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
/* one line per product per sale: a second add is a business conflict */
CREATE UNIQUE INDEX IF NOT EXISTS idx_sale_items_one_per_product
ON sale_items(sale_id, product_id);

CREATE TABLE IF NOT EXISTS sale_payments (
    payment_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id           INTEGER NOT NULL,
    method            TEXT NOT NULL CHECK (method IN
                        ('cash','visa','mastercard','bank_transfer','mada','store_credit','other')),
    amount            NUMERIC NOT NULL CHECK (CAST(amount AS REAL) > 0),
    payment_date      DATE NOT NULL DEFAULT CURRENT_DATE,
    reference_number  TEXT,
    notes             TEXT,
    created_by        INTEGER,
    FOREIGN KEY (sale_id)    REFERENCES sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (created_by) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_payments_sale ON sale_payments(sale_id);
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "pos.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
        conn.commit()
    _log.debug("Schema applied to %s", db_path)
