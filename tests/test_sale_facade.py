# tests/test_sale_facade.py
from decimal import Decimal

import pytest

from pharmacy_pos.database.repositories.sales_repo import SalesRepo
from pharmacy_pos.modules.pos.engine import SaleSyncEngine
from pharmacy_pos.modules.pos.errors import NotFound, TransportFailure, ValidationFailure
from pharmacy_pos.modules.pos.facade import LocalSaleFacade
from pharmacy_pos.modules.pos.domain import (
    AddOutcome,
    EngineState,
    ItemAdded,
    ItemAlreadyPresent,
    RemoveOutcome,
    SaleStatus,
)
from pharmacy_pos.utils.auth import OperatorContext
from pharmacy_pos.utils.helpers import today_str


def test_created_sale_is_stamped_with_operator(local_facade, ids):
    sale = local_facade.create_empty_sale(1, today_str())
    assert sale.status is SaleStatus.DRAFT
    assert sale.operator_id == ids["cashier"]
    assert sale.client_name == "Sara Haddad"
    assert sale.order_number == 1


def test_exists_message_becomes_tag(local_facade):
    sale = local_facade.create_empty_sale(None, today_str())
    first = local_facade.add_sale_item(sale.sale_id, 1, 1, Decimal("12.50"))
    second = local_facade.add_sale_item(sale.sale_id, 1, 1, Decimal("12.50"))
    assert isinstance(first, ItemAdded)
    assert isinstance(second, ItemAlreadyPresent)
    assert len(second.sale.items) == 1
    assert second.sale.items[0].line_id is not None


def test_error_kinds(local_facade, tmp_path):
    with pytest.raises(NotFound):
        local_facade.get_sale(404)

    sale = local_facade.create_empty_sale(None, today_str())
    with pytest.raises(ValidationFailure):
        local_facade.add_sale_item(sale.sale_id, 1, 0, Decimal("1"))

    broken = LocalSaleFacade(SalesRepo(tmp_path / "missing" / "pos.db"))
    with pytest.raises(TransportFailure):
        broken.get_sale(1)


def test_delete_outcome_carries_status(local_facade):
    sale = local_facade.create_empty_sale(None, today_str())
    line = local_facade.add_sale_item(sale.sale_id, 2, 1, Decimal("20")).sale.items[0]
    out = local_facade.delete_sale_item(sale.sale_id, line.line_id)
    assert out.sale_status is SaleStatus.CANCELLED
    assert out.remaining_items_count == 0


def test_todays_sales_operator_filter(repo, ids):
    mine = LocalSaleFacade(repo, OperatorContext(user_id=ids["cashier"]))
    other = LocalSaleFacade(repo, OperatorContext(user_id=ids["admin"]))
    mine.create_empty_sale(None, today_str())
    other.create_empty_sale(None, today_str())

    assert len(mine.get_todays_sales()) == 2
    assert [s.operator_id for s in mine.get_todays_sales(operator_id=ids["cashier"])] == [ids["cashier"]]


def test_payment_outcome(local_facade):
    sale = local_facade.create_empty_sale(None, today_str())
    local_facade.add_sale_item(sale.sale_id, 4, 1, Decimal("7.25"))
    out = local_facade.record_payment(sale.sale_id, [{"method": "mada", "amount": "7.25"}])
    assert out.sale.is_completed
    assert out.errors == ()
    assert out.sale.payments[0].amount == Decimal("7.25")


# -------------------------
# Engine over the SQLite store
# -------------------------

def test_engine_walkthrough_against_store(qapp, local_facade, operator, catalogue, repo):
    engine = SaleSyncEngine(local_facade, operator)
    para = catalogue[1]

    assert engine.add_product(para) is AddOutcome.ADDED
    assert engine.add_product(para) is AddOutcome.ALREADY_IN_CART
    sale_id = engine.session.selected_sale.sale_id
    assert len(engine.session.cart_lines) == 1

    engine.update_quantity(1, 3)
    assert engine.session.displayed_total == Decimal("37.50")

    assert engine.remove_product(1) is RemoveOutcome.SALE_CANCELLED
    assert engine.session.state is EngineState.EMPTY
    assert repo.get_sale(sale_id)["status"] == "cancelled"


def test_engine_payment_against_store(qapp, local_facade, operator, catalogue):
    engine = SaleSyncEngine(local_facade, operator)
    engine.add_product(catalogue[2])
    engine.record_payment([{"method": "cash", "amount": "20"}])
    s = engine.session
    assert s.state is EngineState.SETTLED
    assert s.selected_sale.status is SaleStatus.COMPLETED
    assert s.selected_sale.due_amount == Decimal("0.00")


def test_engine_rejects_out_of_range_input(qapp, local_facade, operator, catalogue):
    engine = SaleSyncEngine(local_facade, operator)
    engine.add_product(catalogue[1])
    before = engine.session

    with pytest.raises(ValidationFailure):
        engine.update_quantity(1, 10**20)
    with pytest.raises(ValidationFailure):
        engine.update_unit_price(1, "1e30")
    with pytest.raises(ValidationFailure):
        engine.apply_discount("1e30")
    assert engine.session.cart_lines == before.cart_lines
    assert engine.session.displayed_total == Decimal("12.50")


def test_facade_maps_overflow_to_validation(local_facade):
    sale = local_facade.create_empty_sale(None, today_str())
    with pytest.raises(ValidationFailure):
        local_facade.update_sale(sale.sale_id, client_id=10**20)
