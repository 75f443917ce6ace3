# pharmacy_pos/modules/pos/finalizer.py
"""
What happens on the terminal once a payment settles the sale.

Receipt workflow (default): keep a settled sale on screen read-only and ask
the UI to open the receipt. A sale that was opened from the list stays
selected; a sale rung up fresh is looked up again in the refreshed list
(most recently created) and shown. With the receipt workflow off the
terminal goes straight to a new, empty sale.
"""
from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from ...constants import AUTO_OPEN_RECEIPT
from .engine import SaleSyncEngine
from .registry import TodaysSalesRegistry
from .domain import SettlementEvent

_log = logging.getLogger(__name__)


class PaymentFinalizer(QObject):
    receiptRequested = Signal(object)  # Sale
    newSaleStarted = Signal()

    def __init__(
        self,
        engine: SaleSyncEngine,
        registry: TodaysSalesRegistry,
        open_receipt: bool = AUTO_OPEN_RECEIPT,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.engine = engine
        self.registry = registry
        self.open_receipt = open_receipt

    def attach(self) -> None:
        self.engine.settled.connect(self.on_settled)

    @Slot(object)
    def on_settled(self, event: SettlementEvent) -> None:
        if not self.open_receipt:
            self.engine.start_new_session()
            self.newSaleStarted.emit()
            return

        if event.was_editing:
            sale = event.sale
        else:
            sale = self.registry.latest()
            if sale is None:
                _log.warning("Settled sale not found in the refreshed list; keeping %s",
                             event.sale.sale_id if event.sale else None)
                sale = event.sale
            self.engine.show_settled_sale(sale)

        if sale is not None:
            _log.info("Receipt requested for sale %s", sale.sale_id)
            self.receiptRequested.emit(sale)
