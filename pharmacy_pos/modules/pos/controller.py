# pharmacy_pos/modules/pos/controller.py
import logging
from pathlib import Path

from PySide6.QtCore import QObject, Qt, Signal

from ...config import DB_PATH
from ...database import get_connection
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.sales_repo import SalesRepo
from ...utils.auth import OperatorContext
from ...utils.loggers import get_logger
from ...constants import NOTIFY_ERROR
from .engine import SaleSyncEngine
from .facade import LocalSaleFacade
from .finalizer import PaymentFinalizer
from .model import CartLinesModel, TodaysSalesModel
from .mutation_queue import MutationQueue
from .registry import TodaysSalesRegistry
from .domain import ProductRef

_log = logging.getLogger(__name__)


class PosController(QObject):
    """
    Order-entry screen wiring: engine, today's sales, payment finalizer and
    the two table models the view binds to. Scans and edits are queued on the
    mutation queue; the models follow the engine and registry signals.
    """

    notify = Signal(str, str)
    receiptRequested = Signal(object)

    def __init__(self, db_path: str | Path | None, current_user: dict | None):
        super().__init__()
        db_path = Path(db_path) if db_path is not None else DB_PATH
        # schema + seed are idempotent
        get_connection(db_path).close()
        self.user = current_user
        self._app_log = get_logger()
        self.operator = OperatorContext.from_user(current_user)

        self.repo = SalesRepo(db_path)
        self.products = ProductsRepo(db_path)
        self.facade = LocalSaleFacade(self.repo, self.operator)

        self.queue = MutationQueue(self)
        self.engine = SaleSyncEngine(self.facade, self.operator, queue=self.queue, parent=self)
        self.registry = TodaysSalesRegistry(self.facade, self.operator, parent=self)
        self.finalizer = PaymentFinalizer(self.engine, self.registry, parent=self)

        self.cart_model = CartLinesModel()
        self.sales_model = TodaysSalesModel()

        self._wire()
        self._reload()

    # ---- internals --------------------------------------------------------

    def _wire(self):
        self.engine.sale_lookup = self.registry.find
        # registry and finalizer run on the queue thread, right after the engine
        self.engine.saleMutated.connect(self.registry.on_sale_mutated, Qt.DirectConnection)
        self.engine.settled.connect(self.finalizer.on_settled, Qt.DirectConnection)

        self.engine.sessionChanged.connect(self.cart_model.replace_from_session)
        self.registry.salesReloaded.connect(self.sales_model.replace)

        self.engine.notify.connect(self.notify)
        self.registry.notify.connect(self.notify)
        self.finalizer.receiptRequested.connect(self.receiptRequested)
        self.queue.failed.connect(self._on_job_failed)
        self.notify.connect(self._log_notice)

    def _reload(self):
        self.registry.refresh()
        self.cart_model.replace_from_session(self.engine.session)

    def _log_notice(self, level: str, message: str):
        self._app_log.info("[%s] %s", level, message)

    def _on_job_failed(self, label: str, err: object):
        # already surfaced through engine.notify
        _log.debug("Queued %s failed: %s", label, err)

    # ---- actions ----------------------------------------------------------

    def scan(self, product_id: int) -> None:
        p = self.products.get(product_id)
        if p is None:
            _log.warning("Scanned unknown product %s", product_id)
            self.notify.emit(NOTIFY_ERROR, f"Unknown product {product_id}.")
            return
        self.engine.submit("add_product", ProductRef.from_product(p))

    def find_products(self, term: str) -> list[ProductRef]:
        return [ProductRef.from_product(p) for p in self.products.search(term)]

    def open_sale(self, row: int) -> None:
        self.engine.submit("select_existing_sale", self.sales_model.at(row))

    def set_quantity(self, product_id: int, quantity) -> None:
        self.engine.submit("update_quantity", product_id, quantity)

    def remove(self, product_id: int) -> None:
        self.engine.submit("remove_product", product_id)

    def pay(self, payments: list[dict]) -> None:
        self.engine.submit("record_payment", payments)

    def shutdown(self, msecs: int = 5000) -> bool:
        return self.queue.wait_for_idle(msecs)
