from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Iterator

from ...constants import (
    ALREADY_EXISTS_MESSAGE,
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    MAX_AMOUNT,
    MAX_LINE_QUANTITY,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_DRAFT,
    SALE_STATUS_PENDING,
)
from ...utils.helpers import to_money
from ...utils.validators import is_positive_int
from .sale_payments_repo import PaymentValidationError, SalePaymentsRepo

_log = logging.getLogger(__name__)

_UNSET = object()


# Domain-level error the facade maps onto the POS error kinds
class DomainError(Exception):
    pass


class RecordNotFound(DomainError):
    pass


class SalesRepo:
    """
    Authoritative sale store for the POS terminal.

    This repository plays the part of the sale service: every write returns the
    full sale payload (header + items + payments) as it stands after the write,
    and every derived field is computed here, never taken from the caller.

    Key behavior:
      - A sale starts as 'draft' with no items and a per-day order number.
      - The first item moves it to 'pending'.
      - A product can be a line only once per sale; a second add returns the
        current sale with message ALREADY_EXISTS_MESSAGE and changes nothing.
      - Removing the last item collapses the sale to 'cancelled'.
      - The sale becomes 'completed' when recorded payments cover the total.
      - 'completed' and 'cancelled' sales reject item and header changes.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self.payments = SalePaymentsRepo(db_path)

    # ---------------------------------------------------------------------
    # Connection / TX helpers
    # ---------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys=ON;")
        return con

    @contextmanager
    def _immediate_tx(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection and start an IMMEDIATE transaction,
        commit on success, rollback on error.
        """
        con = self._connect()
        try:
            con.execute("BEGIN IMMEDIATE")
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    @staticmethod
    def _header_row(con: sqlite3.Connection, sale_id: int) -> sqlite3.Row | None:
        return con.execute(
            """
            SELECT s.sale_id, s.order_number, s.client_id, c.name AS client_name,
                   s.created_by, u.full_name AS operator_name,
                   s.sale_date, s.status,
                   s.total_amount, s.paid_amount,
                   s.discount_amount, s.discount_type,
                   s.notes, s.created_at
            FROM sales s
            LEFT JOIN clients c ON c.client_id = s.client_id
            LEFT JOIN users u   ON u.user_id   = s.created_by
            WHERE s.sale_id = ?
            """,
            (sale_id,),
        ).fetchone()

    @staticmethod
    def _item_rows(con: sqlite3.Connection, sale_id: int) -> list[dict]:
        rows = con.execute(
            """
            SELECT si.item_id, si.sale_id, si.product_id, p.name AS product_name,
                   si.quantity, si.unit_price
            FROM sale_items si
            JOIN products p ON p.product_id = si.product_id
            WHERE si.sale_id = ?
            ORDER BY si.item_id
            """,
            (sale_id,),
        ).fetchall()
        items = []
        for r in rows:
            it = dict(r)
            it["total_price"] = str(to_money(it["unit_price"]) * int(it["quantity"]))
            items.append(it)
        return items

    def _payload(self, con: sqlite3.Connection, sale_id: int) -> dict:
        head = self._header_row(con, sale_id)
        if head is None:
            raise RecordNotFound(f"Sale {sale_id} not found.")
        sale = dict(head)
        total = to_money(sale["total_amount"])
        paid = to_money(sale["paid_amount"])
        sale["due_amount"] = str(max(Decimal("0.00"), total - paid))
        sale["items"] = self._item_rows(con, sale_id)
        sale["payments"] = self.payments.rows_for_sale(con, sale_id)
        return sale

    def get_sale(self, sale_id: int) -> dict:
        con = self._connect()
        try:
            return self._payload(con, sale_id)
        finally:
            con.close()

    def list_day_sales(
        self,
        sale_date: str,
        *,
        created_by: int | None = None,
        include_cancelled: bool = False,
    ) -> list[dict]:
        """
        Sales dated `sale_date`, newest first (by creation time).
        Pass created_by to narrow to one operator.
        """
        where = ["DATE(s.sale_date) = DATE(?)"]
        params: list = [sale_date]
        if created_by is not None:
            where.append("s.created_by = ?")
            params.append(created_by)
        if not include_cancelled:
            where.append("s.status <> ?")
            params.append(SALE_STATUS_CANCELLED)

        sql = "SELECT s.sale_id FROM sales s WHERE " + " AND ".join(where)
        sql += " ORDER BY s.created_at DESC, s.sale_id DESC"

        con = self._connect()
        try:
            ids = [int(r["sale_id"]) for r in con.execute(sql, params).fetchall()]
            return [self._payload(con, sid) for sid in ids]
        finally:
            con.close()

    # ---------------------------------------------------------------------
    # INTERNAL
    # ---------------------------------------------------------------------
    @staticmethod
    def _next_order_number(con: sqlite3.Connection, sale_date: str) -> int:
        row = con.execute(
            "SELECT MAX(order_number) AS m FROM sales WHERE sale_date = ?",
            (sale_date,),
        ).fetchone()
        last = int(row["m"]) if row and row["m"] is not None else 0
        return last + 1

    def _open_header(self, con: sqlite3.Connection, sale_id: int) -> sqlite3.Row:
        """Header of a sale that still accepts changes."""
        head = self._header_row(con, sale_id)
        if head is None:
            raise RecordNotFound(f"Sale {sale_id} not found.")
        if head["status"] == SALE_STATUS_COMPLETED:
            raise DomainError(f"Sale {sale_id} is completed and can no longer be changed.")
        if head["status"] == SALE_STATUS_CANCELLED:
            raise DomainError(f"Sale {sale_id} was cancelled.")
        return head

    @staticmethod
    def _check_quantity(quantity) -> int:
        if not is_positive_int(quantity):
            raise DomainError(f"Quantity must be a whole number greater than zero, got {quantity!r}.")
        q = int(Decimal(str(quantity)))
        if q > MAX_LINE_QUANTITY:
            raise DomainError(f"Quantity cannot exceed {MAX_LINE_QUANTITY}, got {q}.")
        return q

    @staticmethod
    def _check_price(unit_price) -> Decimal:
        try:
            price = to_money(unit_price)
        except ValueError as e:
            raise DomainError(str(e)) from e
        if price < 0:
            raise DomainError("Unit price cannot be negative.")
        if price > Decimal(MAX_AMOUNT):
            raise DomainError(f"Amount cannot exceed {MAX_AMOUNT}.")
        return price

    def _recalculate(self, con: sqlite3.Connection, sale_id: int, *, settle: bool = False) -> str:
        """
        Recompute total / paid / status from items, discount and payments.
        Returns the resulting status.
        """
        head = con.execute(
            "SELECT status, discount_amount, discount_type FROM sales WHERE sale_id=?",
            (sale_id,),
        ).fetchone()
        items = con.execute(
            "SELECT quantity, unit_price FROM sale_items WHERE sale_id=?", (sale_id,)
        ).fetchall()

        subtotal = sum(
            (to_money(r["unit_price"]) * int(r["quantity"]) for r in items),
            Decimal("0.00"),
        )
        discount = to_money(head["discount_amount"])
        if head["discount_type"] == DISCOUNT_PERCENTAGE:
            discount = to_money(subtotal * discount / Decimal(100))
        total = max(Decimal("0.00"), subtotal - discount)
        paid = self.payments.paid_total(con, sale_id)

        status = head["status"]
        if not items:
            status = SALE_STATUS_CANCELLED if status != SALE_STATUS_DRAFT else SALE_STATUS_DRAFT
        elif settle and paid >= total:
            status = SALE_STATUS_COMPLETED
        elif status in (SALE_STATUS_DRAFT, SALE_STATUS_PENDING):
            status = SALE_STATUS_PENDING

        con.execute(
            "UPDATE sales SET total_amount=?, paid_amount=?, status=? WHERE sale_id=?",
            (str(total), str(paid), status, sale_id),
        )
        return status

    # ---------------------------------------------------------------------
    # WRITE — sale header
    # ---------------------------------------------------------------------
    def create_empty_sale(
        self,
        *,
        sale_date: str,
        client_id: int | None = None,
        notes: str | None = None,
        created_by: int | None = None,
    ) -> dict:
        """Create a 'draft' sale with no items and return its payload."""
        with self._immediate_tx() as con:
            cur = con.execute(
                """
                INSERT INTO sales (order_number, client_id, created_by, sale_date, status, notes)
                VALUES (?,?,?,?,?,?)
                """,
                (
                    self._next_order_number(con, sale_date),
                    client_id,
                    created_by,
                    sale_date,
                    SALE_STATUS_DRAFT,
                    notes,
                ),
            )
            sale_id = int(cur.lastrowid)
            _log.debug("Created empty sale %s dated %s", sale_id, sale_date)
            return self._payload(con, sale_id)

    def update_header(
        self,
        sale_id: int,
        *,
        sale_date=_UNSET,
        client_id=_UNSET,
        notes=_UNSET,
        discount_amount=_UNSET,
        discount_type=_UNSET,
    ) -> dict:
        """
        Update header fields; only the keyword arguments actually passed are
        written. Changing the date re-numbers the sale within its new day.
        Date and notes stay editable on a completed sale; client and discount
        do not.
        """
        with self._immediate_tx() as con:
            touches_money = client_id is not _UNSET or discount_amount is not _UNSET or discount_type is not _UNSET
            head = self._header_row(con, sale_id)
            if head is None or touches_money or head["status"] == SALE_STATUS_CANCELLED:
                head = self._open_header(con, sale_id)
            sets: list[str] = []
            params: list = []

            if sale_date is not _UNSET and sale_date != head["sale_date"]:
                if not sale_date:
                    raise DomainError("Sale date is required.")
                sets += ["sale_date=?", "order_number=?"]
                params += [sale_date, self._next_order_number(con, sale_date)]
            if client_id is not _UNSET:
                sets.append("client_id=?")
                params.append(client_id)
            if notes is not _UNSET:
                sets.append("notes=?")
                params.append(notes)
            if discount_type is not _UNSET:
                if discount_type not in DISCOUNT_TYPES:
                    raise DomainError(f"Unknown discount type: {discount_type!r}")
                sets.append("discount_type=?")
                params.append(discount_type)
            if discount_amount is not _UNSET:
                amount = self._check_price(discount_amount)
                kind = discount_type if discount_type is not _UNSET else head["discount_type"]
                if kind == DISCOUNT_PERCENTAGE and amount > 100:
                    raise DomainError("Percentage discount cannot exceed 100.")
                sets.append("discount_amount=?")
                params.append(str(amount))

            if sets:
                con.execute(f"UPDATE sales SET {', '.join(sets)} WHERE sale_id=?", (*params, sale_id))
                self._recalculate(con, sale_id)
            return self._payload(con, sale_id)

    # ---------------------------------------------------------------------
    # WRITE — items
    # ---------------------------------------------------------------------
    def add_item(self, sale_id: int, product_id: int, quantity, unit_price) -> dict:
        """
        Returns {"sale": payload, "message": None} when a line was added, or
        {"sale": payload, "message": ALREADY_EXISTS_MESSAGE} when the product is
        already on the sale (nothing written).
        """
        q = self._check_quantity(quantity)
        price = self._check_price(unit_price)
        with self._immediate_tx() as con:
            self._open_header(con, sale_id)
            if con.execute("SELECT 1 FROM products WHERE product_id=?", (product_id,)).fetchone() is None:
                raise RecordNotFound(f"Product {product_id} not found.")

            exists = con.execute(
                "SELECT item_id FROM sale_items WHERE sale_id=? AND product_id=?",
                (sale_id, product_id),
            ).fetchone()
            if exists is not None:
                _log.debug("Product %s already on sale %s (item %s)", product_id, sale_id, exists["item_id"])
                return {"sale": self._payload(con, sale_id), "message": ALREADY_EXISTS_MESSAGE}

            con.execute(
                "INSERT INTO sale_items (sale_id, product_id, quantity, unit_price) VALUES (?,?,?,?)",
                (sale_id, product_id, q, str(price)),
            )
            self._recalculate(con, sale_id)
            return {"sale": self._payload(con, sale_id), "message": None}

    def update_item(self, sale_id: int, item_id: int, quantity, unit_price) -> dict:
        q = self._check_quantity(quantity)
        price = self._check_price(unit_price)
        with self._immediate_tx() as con:
            self._open_header(con, sale_id)
            cur = con.execute(
                "UPDATE sale_items SET quantity=?, unit_price=? WHERE item_id=? AND sale_id=?",
                (q, str(price), item_id, sale_id),
            )
            if cur.rowcount == 0:
                raise RecordNotFound(f"Item {item_id} is not on sale {sale_id}.")
            self._recalculate(con, sale_id)
            return self._payload(con, sale_id)

    def delete_item(self, sale_id: int, item_id: int) -> dict:
        """
        Delete one line. Returns a summary with the resulting ``sale_status``;
        'cancelled' means that was the last line.
        """
        with self._immediate_tx() as con:
            self._open_header(con, sale_id)
            row = con.execute(
                """
                SELECT si.quantity, p.name AS product_name
                FROM sale_items si JOIN products p ON p.product_id = si.product_id
                WHERE si.item_id=? AND si.sale_id=?
                """,
                (item_id, sale_id),
            ).fetchone()
            if row is None:
                raise RecordNotFound(f"Item {item_id} is not on sale {sale_id}.")

            con.execute("DELETE FROM sale_items WHERE item_id=?", (item_id,))
            status = self._recalculate(con, sale_id)
            remaining = con.execute(
                "SELECT COUNT(*) AS n FROM sale_items WHERE sale_id=?", (sale_id,)
            ).fetchone()["n"]
            total = con.execute(
                "SELECT total_amount FROM sales WHERE sale_id=?", (sale_id,)
            ).fetchone()["total_amount"]

            message = "Sale cancelled" if status == SALE_STATUS_CANCELLED else "Item removed"
            return {
                "message": message,
                "deleted_quantity": int(row["quantity"]),
                "product_name": row["product_name"],
                "new_sale_total": str(to_money(total)),
                "remaining_items_count": int(remaining),
                "sale_status": status,
            }

    # ---------------------------------------------------------------------
    # WRITE — payments
    # ---------------------------------------------------------------------
    def record_payments(
        self,
        sale_id: int,
        payments: Iterable[dict],
        *,
        created_by: int | None = None,
    ) -> dict:
        """
        Record the valid entries of `payments`; invalid entries are skipped and
        reported in "errors". Returns {"sale": payload, "errors": [...]}.
        Raises DomainError when nothing could be recorded.
        """
        entries = list(payments)
        if not entries:
            raise DomainError("No payments to record.")

        with self._immediate_tx() as con:
            head = self._open_header(con, sale_id)
            if head["status"] == SALE_STATUS_DRAFT:
                raise DomainError("Cannot take payment for a sale with no items.")

            errors: list[str] = []
            recorded = 0
            for i, entry in enumerate(entries, start=1):
                try:
                    p = self.payments.normalize(entry)
                except PaymentValidationError as e:
                    errors.append(f"Payment {i}: {e}")
                    continue
                self.payments.insert(con, sale_id, p, created_by)
                recorded += 1

            if recorded == 0:
                raise DomainError("; ".join(errors) or "No valid payments.")

            status = self._recalculate(con, sale_id, settle=True)
            _log.debug("Recorded %d payment(s) on sale %s -> %s", recorded, sale_id, status)
            return {"sale": self._payload(con, sale_id), "errors": errors}
