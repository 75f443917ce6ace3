from __future__ import annotations

import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Optional

from ...constants import PAYMENT_METHODS
from ...utils.helpers import to_money, today_str
from ...utils.validators import try_parse_decimal


class PaymentValidationError(ValueError):
    """A single payment entry was rejected; message is user-facing."""


class SalePaymentsRepo:
    """
    Repository for payments received against a sale (rows in sale_payments).

    Rules enforced here (mirrors the CHECK constraints):
      • method must be one of PAYMENT_METHODS.
      • amount must be strictly positive; refunds are not taken at the till.
      • bank_transfer needs a reference number.

    Lifecycle:
      • SalesRepo.record_payments(...) validates every entry with normalize(...)
        and inserts the accepted ones with insert(...) inside its own transaction,
        so the sale roll-up and the payment rows commit together.
    """

    METHODS: tuple[str, ...] = PAYMENT_METHODS

    # Methods that must carry a transaction/reference number
    REFERENCE_REQUIRED: set[str] = {"bank_transfer"}

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    # --- soft validations mirroring DB rules -------------------------------

    def normalize(self, entry: dict) -> dict:
        """
        Returns a normalized copy of a payment entry
        (method, amount, payment_date, reference_number, notes)
        or raises PaymentValidationError with a user-facing message.
        """
        method = str(entry.get("method") or "").strip().lower()
        if method not in self.METHODS:
            raise PaymentValidationError(f"Unsupported payment method: {entry.get('method')!r}")

        raw_amount = entry.get("amount")
        ok, amount = try_parse_decimal(raw_amount)
        if raw_amount is None or not ok or not amount.is_finite():
            raise PaymentValidationError(f"Invalid amount for {method} payment: {raw_amount!r}")
        amount = to_money(amount)
        if amount <= 0:
            raise PaymentValidationError(f"{method} payment must be a positive amount.")

        reference: Optional[str] = (entry.get("reference_number") or "").strip() or None
        if method in self.REFERENCE_REQUIRED and not reference:
            raise PaymentValidationError(f"{method} requires a transaction/reference number.")

        return {
            "method": method,
            "amount": amount,
            "payment_date": entry.get("payment_date") or today_str(),
            "reference_number": reference,
            "notes": (entry.get("notes") or None),
        }

    # --- writes (caller owns the transaction) -------------------------------

    def insert(self, con: sqlite3.Connection, sale_id: int, p: dict, created_by: int | None) -> int:
        cur = con.execute(
            """
            INSERT INTO sale_payments (
                sale_id, method, amount, payment_date, reference_number, notes, created_by
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (
                sale_id,
                p["method"],
                str(p["amount"]),
                p["payment_date"],
                p["reference_number"],
                p["notes"],
                created_by,
            ),
        )
        return int(cur.lastrowid)

    @staticmethod
    def paid_total(con: sqlite3.Connection, sale_id: int) -> Decimal:
        rows = con.execute(
            "SELECT amount FROM sale_payments WHERE sale_id=?", (sale_id,)
        ).fetchall()
        return sum((to_money(r["amount"]) for r in rows), Decimal("0.00"))

    # --- reads ---------------------------------------------------------------

    @staticmethod
    def rows_for_sale(con: sqlite3.Connection, sale_id: int) -> list[dict]:
        rows = con.execute(
            """
            SELECT sp.payment_id, sp.sale_id, sp.method,
                   sp.amount, sp.payment_date, sp.reference_number, sp.notes,
                   sp.created_by, u.full_name AS operator_name
            FROM sale_payments sp
            LEFT JOIN users u ON u.user_id = sp.created_by
            WHERE sp.sale_id = ?
            ORDER BY sp.payment_id
            """,
            (sale_id,),
        ).fetchall()
        return [dict(r) for r in rows]

