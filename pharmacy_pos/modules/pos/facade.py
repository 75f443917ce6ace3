"""
Operation contract between the sync engine and the sale service.

``SaleFacade`` is what the engine depends on. ``LocalSaleFacade`` binds it to
the SQLite ``SalesRepo`` (the authoritative store on this terminal) and
translates that repository's raw payloads and exceptions into the POS types.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, Protocol

from ...constants import ALREADY_EXISTS_MESSAGE
from ...database.repositories.sales_repo import (
    DomainError as RepoDomainError,
    RecordNotFound,
    SalesRepo,
    _UNSET as UNSET,
)
from ...utils.auth import OperatorContext
from ...utils.helpers import today_str
from .errors import NotFound, TransportFailure, ValidationFailure
from .domain import (
    AddItemResult,
    DeleteItemOutcome,
    ItemAdded,
    ItemAlreadyPresent,
    PaymentOutcome,
    Sale,
    SaleStatus,
)

_log = logging.getLogger(__name__)


class SaleFacade(Protocol):
    def create_empty_sale(self, client_id: Optional[int], sale_date: str, notes: Optional[str] = None) -> Sale: ...

    def add_sale_item(self, sale_id: int, product_id: int, quantity: int, unit_price) -> AddItemResult: ...

    def update_sale_item(self, sale_id: int, line_id: int, quantity: int, unit_price) -> Sale: ...

    def delete_sale_item(self, sale_id: int, line_id: int) -> DeleteItemOutcome: ...

    def get_sale(self, sale_id: int) -> Sale: ...

    def get_todays_sales(self, operator_id: Optional[int] = None, sale_date: Optional[str] = None) -> list[Sale]: ...

    def update_sale(self, sale_id: int, **fields) -> Sale: ...

    def record_payment(self, sale_id: int, payments: Iterable[dict]) -> PaymentOutcome: ...


class LocalSaleFacade:
    """SaleFacade over a SalesRepo; writes are stamped with the operator id."""

    def __init__(self, repo: SalesRepo, operator: Optional[OperatorContext] = None):
        self.repo = repo
        self.operator = operator or OperatorContext()

    @contextmanager
    def _translated(self, action: str) -> Iterator[None]:
        try:
            yield
        except RecordNotFound as e:
            raise NotFound(str(e)) from e
        except RepoDomainError as e:
            raise ValidationFailure(str(e)) from e
        except sqlite3.IntegrityError as e:
            raise ValidationFailure(f"{action} rejected: {e}") from e
        except OverflowError as e:
            raise ValidationFailure(f"{action} rejected: value out of range") from e
        except sqlite3.Error as e:
            _log.error("%s failed at the store: %s", action, e)
            raise TransportFailure(f"{action} failed: {e}") from e

    # ------------------------------------------------------------------
    def create_empty_sale(self, client_id: Optional[int], sale_date: str, notes: Optional[str] = None) -> Sale:
        with self._translated("Create sale"):
            payload = self.repo.create_empty_sale(
                sale_date=sale_date or today_str(),
                client_id=client_id,
                notes=notes,
                created_by=self.operator.current_operator_id,
            )
        return Sale.from_payload(payload)

    def add_sale_item(self, sale_id: int, product_id: int, quantity: int, unit_price) -> AddItemResult:
        with self._translated("Add item"):
            res = self.repo.add_item(sale_id, product_id, quantity, unit_price)
        sale = Sale.from_payload(res["sale"])
        if res.get("message") == ALREADY_EXISTS_MESSAGE:
            return ItemAlreadyPresent(sale)
        return ItemAdded(sale)

    def update_sale_item(self, sale_id: int, line_id: int, quantity: int, unit_price) -> Sale:
        with self._translated("Update item"):
            payload = self.repo.update_item(sale_id, line_id, quantity, unit_price)
        return Sale.from_payload(payload)

    def delete_sale_item(self, sale_id: int, line_id: int) -> DeleteItemOutcome:
        with self._translated("Delete item"):
            res = self.repo.delete_item(sale_id, line_id)
        return DeleteItemOutcome(
            message=res["message"],
            sale_status=SaleStatus(res["sale_status"]),
            remaining_items_count=res.get("remaining_items_count"),
        )

    def get_sale(self, sale_id: int) -> Sale:
        with self._translated("Load sale"):
            payload = self.repo.get_sale(sale_id)
        return Sale.from_payload(payload)

    def get_todays_sales(self, operator_id: Optional[int] = None, sale_date: Optional[str] = None) -> list[Sale]:
        with self._translated("Load today's sales"):
            rows = self.repo.list_day_sales(sale_date or today_str(), created_by=operator_id)
        return [Sale.from_payload(r) for r in rows]

    def update_sale(
        self,
        sale_id: int,
        *,
        sale_date=UNSET,
        client_id=UNSET,
        notes=UNSET,
        discount_amount=UNSET,
        discount_type=UNSET,
    ) -> Sale:
        with self._translated("Update sale"):
            payload = self.repo.update_header(
                sale_id,
                sale_date=sale_date,
                client_id=client_id,
                notes=notes,
                discount_amount=discount_amount,
                discount_type=discount_type,
            )
        return Sale.from_payload(payload)

    def record_payment(self, sale_id: int, payments: Iterable[dict]) -> PaymentOutcome:
        with self._translated("Record payment"):
            res = self.repo.record_payments(
                sale_id, payments, created_by=self.operator.current_operator_id
            )
        return PaymentOutcome(sale=Sale.from_payload(res["sale"]), errors=tuple(res["errors"]))
