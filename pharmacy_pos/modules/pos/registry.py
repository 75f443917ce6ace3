# pharmacy_pos/modules/pos/registry.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from ...constants import FILTER_BY_OPERATOR_DEFAULT, NOTIFY_ERROR
from ...utils.auth import OperatorContext
from ...utils.helpers import today_str
from .errors import DomainError
from .facade import SaleFacade
from .domain import Sale

_log = logging.getLogger(__name__)


class TodaysSalesRegistry(QObject):
    """
    The day's sales as last fetched from the sale service.

    Always a full reload: every mutation reported by the engine triggers a
    fresh fetch and the whole list is replaced. With ``filter_by_operator``
    on, only the logged-in operator's sales are listed.
    """

    salesReloaded = Signal(object)  # list[Sale]
    loadingChanged = Signal(bool)
    notify = Signal(str, str)

    def __init__(
        self,
        facade: SaleFacade,
        operator: Optional[OperatorContext] = None,
        *,
        filter_by_operator: bool = FILTER_BY_OPERATOR_DEFAULT,
        sale_date: Optional[str] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._facade = facade
        self.operator = operator or OperatorContext()
        self._filter_by_operator = filter_by_operator
        self._sale_date = sale_date
        self._sales: list[Sale] = []
        self._lock = threading.RLock()

    # --- properties ---------------------------------------------------------
    @property
    def sales(self) -> list[Sale]:
        with self._lock:
            return list(self._sales)

    @property
    def sale_date(self) -> str:
        return self._sale_date or today_str()

    @property
    def filter_by_operator(self) -> bool:
        return self._filter_by_operator

    # --- settings (each one reloads) ----------------------------------------
    def set_filter_by_operator(self, on: bool) -> None:
        if bool(on) == self._filter_by_operator:
            return
        self._filter_by_operator = bool(on)
        self.refresh()

    def set_sale_date(self, sale_date: Optional[str]) -> None:
        """None follows the calendar (today)."""
        self._sale_date = sale_date
        self.refresh()

    # --- loading ------------------------------------------------------------
    def refresh(self) -> list[Sale]:
        operator_id = self.operator.current_operator_id if self._filter_by_operator else None
        with self._lock:
            self.loadingChanged.emit(True)
            try:
                self._sales = self._facade.get_todays_sales(operator_id=operator_id, sale_date=self.sale_date)
            except DomainError as e:
                _log.error("Could not load sales for %s: %s", self.sale_date, e)
                self._sales = []
                self.notify.emit(NOTIFY_ERROR, f"Could not load today's sales: {e}")
            finally:
                self.loadingChanged.emit(False)
            _log.debug("Loaded %d sale(s) for %s", len(self._sales), self.sale_date)
            sales = list(self._sales)
        self.salesReloaded.emit(sales)
        return sales

    @Slot(object)
    def on_sale_mutated(self, sale_id) -> None:
        self.refresh()

    # --- lookups ------------------------------------------------------------
    def find(self, sale_id: int) -> Optional[Sale]:
        with self._lock:
            return next((s for s in self._sales if s.sale_id == sale_id), None)

    def latest(self) -> Optional[Sale]:
        """Most recently created sale in the last load."""
        with self._lock:
            if not self._sales:
                return None
            return max(self._sales, key=lambda s: (s.created_at or "", s.sale_id))
