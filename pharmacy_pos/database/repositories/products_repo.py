# pharmacy_pos/database/repositories/products_repo.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import sqlite3
from pathlib import Path

from ...utils.helpers import to_money


@dataclass
class Product:
    product_id: int | None
    name: str
    sku: str | None
    last_sale_price: Optional[Decimal]
    suggested_sale_price: Optional[Decimal]


def _product(r: sqlite3.Row) -> Product:
    return Product(
        product_id=int(r["product_id"]),
        name=r["name"],
        sku=r["sku"],
        last_sale_price=None if r["last_sale_price"] is None else to_money(r["last_sale_price"]),
        suggested_sale_price=None if r["suggested_sale_price"] is None else to_money(r["suggested_sale_price"]),
    )


class ProductsRepo:
    """Read-side product lookup for the till (scan / search)."""

    _COLS = "product_id, name, sku, last_sale_price, suggested_sale_price"

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        return con

    def get(self, product_id: int) -> Product | None:
        con = self._connect()
        try:
            r = con.execute(
                f"SELECT {self._COLS} FROM products WHERE product_id=?",
                (product_id,),
            ).fetchone()
            return _product(r) if r else None
        finally:
            con.close()

    def search(self, term: str, limit: int = 20) -> list[Product]:
        """
        Matches using LIKE on name and sku, and exact id when the term is numeric.
        """
        pattern = f"%{term.strip()}%"
        con = self._connect()
        try:
            rows = con.execute(
                f"SELECT {self._COLS} FROM products "
                "WHERE name LIKE ? OR sku LIKE ? OR CAST(product_id AS TEXT) = ? "
                "ORDER BY name LIMIT ?",
                (pattern, pattern, term.strip(), limit),
            ).fetchall()
            return [_product(r) for r in rows]
        finally:
            con.close()
