# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns the Qt application (qapp/qtbot); it is a
#   QCoreApplication, nothing here needs widgets
# - Every test gets its own file-backed SQLite DB under tmp_path, with
#   the schema applied and a small catalogue seeded
# - Engine tests run against FakeSaleService, an in-memory sale service
#   that records every call and can be told to fail the next one
# ---------------------------------------------------------------------

from __future__ import annotations

import os
from decimal import Decimal

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QCoreApplication

from pharmacy_pos.database import get_connection
from pharmacy_pos.database.repositories.products_repo import ProductsRepo
from pharmacy_pos.database.repositories.sales_repo import SalesRepo
from pharmacy_pos.modules.pos.errors import NotFound, ValidationFailure
from pharmacy_pos.modules.pos.facade import LocalSaleFacade
from pharmacy_pos.modules.pos.domain import (
    CartLine,
    DeleteItemOutcome,
    ItemAdded,
    ItemAlreadyPresent,
    PaymentOutcome,
    ProductRef,
    Sale,
    SaleStatus,
)
from pharmacy_pos.utils.auth import OperatorContext


# ---------- Qt: headless application ----------
@pytest.fixture(scope="session")
def qapp_cls():
    return QCoreApplication


# ---------- SQLite: per-test database ----------
@pytest.fixture()
def db_path(tmp_path):
    path = tmp_path / "pos.db"
    con = get_connection(path)  # schema + default operators
    try:
        con.executemany(
            "INSERT INTO clients(client_id, name, phone) VALUES (?,?,?)",
            [(1, "Sara Haddad", "0500000001"), (2, "Omar Nasser", None)],
        )
        con.executemany(
            "INSERT INTO products(product_id, name, sku, last_sale_price, suggested_sale_price) VALUES (?,?,?,?,?)",
            [
                (1, "Paracetamol 500mg", "PAR-500", "12.50", "13.00"),
                (2, "Vitamin C 1000mg", "VIT-C", None, "20.00"),
                (3, "Elastic Bandage", "BND-01", None, None),
                (4, "Cough Syrup", "SYR-100", "7.25", None),
            ],
        )
        con.commit()
    finally:
        con.close()
    return path


@pytest.fixture()
def ids(db_path) -> dict:
    """Seeded operator ids (admin / cashier)."""
    con = get_connection(db_path)
    try:
        rows = con.execute("SELECT user_id, username FROM users").fetchall()
        return {r["username"]: int(r["user_id"]) for r in rows}
    finally:
        con.close()


@pytest.fixture()
def current_user(ids) -> dict:
    return {"user_id": ids["cashier"], "username": "cashier", "role": "user"}


@pytest.fixture()
def operator(current_user) -> OperatorContext:
    return OperatorContext.from_user(current_user)


@pytest.fixture()
def repo(db_path) -> SalesRepo:
    return SalesRepo(db_path)


@pytest.fixture()
def local_facade(repo, operator) -> LocalSaleFacade:
    return LocalSaleFacade(repo, operator)


@pytest.fixture()
def catalogue(db_path) -> dict[int, ProductRef]:
    pr = ProductsRepo(db_path)
    return {pid: ProductRef.from_product(pr.get(pid)) for pid in (1, 2, 3, 4)}


# ---------- In-memory sale service ----------
class FakeSaleService:
    """
    Minimal sale service with the same answers as the real one: per-sale
    duplicate detection, zero-item collapse to 'cancelled', 'completed' when
    paid in full. ``total_skew`` is added to every total so tests can tell a
    server total from a locally summed one.
    """

    def __init__(self, products: dict[int, str], *, next_sale_id=501, next_line_id=9001, operator_id=None):
        self.products = dict(products)
        self.operator_id = operator_id
        self.next_sale_id = next_sale_id
        self.next_line_id = next_line_id
        self.sales: dict[int, dict] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.total_skew = Decimal("0.00")
        self._clock = 0

    # --- test helpers ---
    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def fail_next(self, name: str, exc: Exception) -> None:
        self.fail[name] = exc

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        exc = self.fail.pop(name, None)
        if exc is not None:
            raise exc

    def _row(self, sale_id: int) -> dict:
        try:
            return self.sales[sale_id]
        except KeyError:
            raise NotFound(f"Sale {sale_id} not found.") from None

    def _open(self, sale_id: int) -> dict:
        s = self._row(sale_id)
        if s["status"] in ("completed", "cancelled"):
            raise ValidationFailure(f"Sale {sale_id} is {s['status']}.")
        return s

    def _total(self, s: dict) -> Decimal:
        subtotal = sum((ln["price"] * ln["qty"] for ln in s["items"]), Decimal("0.00"))
        return max(Decimal("0.00"), subtotal - s["discount"]) + self.total_skew

    def _sale(self, s: dict) -> Sale:
        total = self._total(s)
        return Sale(
            sale_id=s["sale_id"],
            order_number=s["order_number"],
            sale_date=s["sale_date"],
            status=SaleStatus(s["status"]),
            total_amount=total,
            paid_amount=s["paid"],
            due_amount=max(Decimal("0.00"), total - s["paid"]),
            discount_amount=s["discount"],
            discount_type=s["discount_type"],
            client_id=s["client_id"],
            operator_id=s["created_by"],
            created_at=f"{s['sale_date']} 10:00:{s['created']:02d}.000",
            items=tuple(
                CartLine(
                    product_id=ln["product_id"],
                    product_name=self.products.get(ln["product_id"], "Unknown Product"),
                    quantity=ln["qty"],
                    unit_price=ln["price"],
                    line_id=ln["line_id"],
                    total=ln["price"] * ln["qty"],
                )
                for ln in s["items"]
            ),
        )

    # --- SaleFacade ---
    def create_empty_sale(self, client_id, sale_date, notes=None) -> Sale:
        self._record("create_empty_sale", client_id, sale_date)
        sid = self.next_sale_id
        self.next_sale_id += 1
        self._clock += 1
        self.sales[sid] = {
            "sale_id": sid,
            "order_number": sid,
            "sale_date": sale_date,
            "status": "draft",
            "client_id": client_id,
            "created_by": self.operator_id,
            "items": [],
            "discount": Decimal("0.00"),
            "discount_type": "fixed",
            "paid": Decimal("0.00"),
            "created": self._clock,
        }
        return self._sale(self.sales[sid])

    def add_sale_item(self, sale_id, product_id, quantity, unit_price):
        self._record("add_sale_item", sale_id, product_id, quantity, unit_price)
        s = self._open(sale_id)
        if any(ln["product_id"] == product_id for ln in s["items"]):
            return ItemAlreadyPresent(self._sale(s))
        s["items"].append({
            "line_id": self.next_line_id,
            "product_id": product_id,
            "qty": int(quantity),
            "price": Decimal(unit_price),
        })
        self.next_line_id += 1
        s["status"] = "pending"
        return ItemAdded(self._sale(s))

    def update_sale_item(self, sale_id, line_id, quantity, unit_price) -> Sale:
        self._record("update_sale_item", sale_id, line_id, quantity, unit_price)
        s = self._open(sale_id)
        for ln in s["items"]:
            if ln["line_id"] == line_id:
                ln["qty"] = int(quantity)
                ln["price"] = Decimal(unit_price)
                return self._sale(s)
        raise NotFound(f"Item {line_id} is not on sale {sale_id}.")

    def delete_sale_item(self, sale_id, line_id) -> DeleteItemOutcome:
        self._record("delete_sale_item", sale_id, line_id)
        s = self._open(sale_id)
        before = len(s["items"])
        s["items"] = [ln for ln in s["items"] if ln["line_id"] != line_id]
        if len(s["items"]) == before:
            raise NotFound(f"Item {line_id} is not on sale {sale_id}.")
        if not s["items"]:
            s["status"] = "cancelled"
            return DeleteItemOutcome("Sale cancelled", SaleStatus.CANCELLED, 0)
        return DeleteItemOutcome("Item removed", SaleStatus(s["status"]), len(s["items"]))

    def get_sale(self, sale_id) -> Sale:
        self._record("get_sale", sale_id)
        return self._sale(self._row(sale_id))

    def get_todays_sales(self, operator_id=None, sale_date=None) -> list[Sale]:
        self._record("get_todays_sales", operator_id, sale_date)
        rows = [
            s for s in self.sales.values()
            if s["status"] != "cancelled"
            and (operator_id is None or s["created_by"] == operator_id)
            and (sale_date is None or s["sale_date"] == sale_date)
        ]
        rows.sort(key=lambda s: s["created"], reverse=True)
        return [self._sale(s) for s in rows]

    def update_sale(self, sale_id, **fields) -> Sale:
        self._record("update_sale", sale_id, fields)
        s = self._row(sale_id)
        if "sale_date" in fields:
            s["sale_date"] = fields["sale_date"]
        if "client_id" in fields:
            s["client_id"] = fields["client_id"]
        if "discount_amount" in fields:
            s["discount"] = Decimal(fields["discount_amount"])
        if "discount_type" in fields:
            s["discount_type"] = fields["discount_type"]
        return self._sale(s)

    def record_payment(self, sale_id, payments) -> PaymentOutcome:
        self._record("record_payment", sale_id, payments)
        s = self._open(sale_id)
        s["paid"] += sum((Decimal(str(p["amount"])) for p in payments), Decimal("0.00"))
        if s["paid"] >= self._total(s):
            s["status"] = "completed"
        return PaymentOutcome(sale=self._sale(s))


@pytest.fixture()
def service() -> FakeSaleService:
    return FakeSaleService(
        {10: "Amoxicillin 250mg", 11: "Saline Spray", 12: "Ibuprofen 400mg"},
        operator_id=2,
    )


@pytest.fixture()
def products() -> dict[str, ProductRef]:
    return {
        "A": ProductRef(10, "Amoxicillin 250mg", last_sale_price=Decimal("18.00"), suggested_sale_price=Decimal("19.50")),
        "B": ProductRef(11, "Saline Spray", suggested_sale_price=Decimal("9.75")),
        "C": ProductRef(12, "Ibuprofen 400mg"),
    }


@pytest.fixture()
def engine(qapp, service):
    from pharmacy_pos.modules.pos.engine import SaleSyncEngine
    return SaleSyncEngine(service, OperatorContext(user_id=2, username="cashier"))


@pytest.fixture()
def notices(engine) -> list[tuple[str, str]]:
    """Every (level, message) the engine emits."""
    seen: list[tuple[str, str]] = []
    engine.notify.connect(lambda level, msg: seen.append((level, msg)))
    return seen

