# pharmacy_pos/modules/pos/engine.py
"""
Sale synchronization engine.

Owns the terminal's Session (the sale being built or edited) and keeps it in
step with the sale service:

  - The first product scanned provisions a sale (today, selected client);
    lines staged before that are replayed onto it in order, then the sale is
    reloaded so the Session starts from the server's copy.
  - After every write the cart lines and the total are taken verbatim from
    the service's response. Nothing is summed locally.
  - A product already on the sale is a no-op with an "already in cart" notice.
  - Removing the last line makes the service cancel the sale; the Session is
    reset.
  - A completed sale is read-only.

Each public operation runs under one lock. On failure the Session is left as
it was (except a delete the server took but could not be re-read: the Session
is then reset), the error is logged, emitted on ``notify`` and re-raised. UI callers
go through ``submit`` so operations run one after another on the mutation
queue.
"""
from __future__ import annotations

import functools
import logging
import threading
from decimal import Decimal
from typing import Callable, Iterable, Optional

from PySide6.QtCore import QObject, Signal

from ...constants import (
    DISCOUNT_FIXED,
    DISCOUNT_TYPES,
    MAX_AMOUNT,
    MAX_LINE_QUANTITY,
    NOTIFY_ERROR,
    NOTIFY_INFO,
    NOTIFY_SUCCESS,
)
from ...utils.auth import OperatorContext
from ...utils.helpers import fmt_money, to_money, today_str
from ...utils.validators import try_parse_decimal
from .errors import DomainError, ItemNotFound, SaleLocked, ValidationFailure
from .facade import SaleFacade
from .mutation_queue import MutationQueue
from .domain import (
    AddManyOutcome,
    AddOutcome,
    CartLine,
    ClientRef,
    EngineState,
    ItemAlreadyPresent,
    PaymentOutcome,
    PaymentResult,
    ProductRef,
    RemoveOutcome,
    Sale,
    SaleStatus,
    Session,
    SettlementEvent,
)

_log = logging.getLogger(__name__)


def _operation(fn):
    """Serialize on the engine lock and surface domain errors."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return fn(self, *args, **kwargs)
            except DomainError as e:
                _log.error("%s failed: %s", fn.__name__, e)
                self.notify.emit(NOTIFY_ERROR, str(e))
                raise
            except Exception:
                _log.exception("%s failed unexpectedly", fn.__name__)
                self.notify.emit(NOTIFY_ERROR, "Unexpected error, see the log for details.")
                raise
    return wrapper


class SaleSyncEngine(QObject):
    sessionChanged = Signal(object)  # Session snapshot
    notify = Signal(str, str)        # level, message
    saleMutated = Signal(object)     # sale_id
    settled = Signal(object)         # SettlementEvent

    # Operations that may be handed to submit()
    QUEUEABLE = frozenset({
        "add_product",
        "add_products",
        "create_empty_sale",
        "hold_line",
        "update_quantity",
        "update_unit_price",
        "remove_product",
        "select_existing_sale",
        "change_client",
        "change_sale_date",
        "apply_discount",
        "record_payment",
        "finalize_payment",
        "reload",
        "start_new_session",
        "show_settled_sale",
    })

    def __init__(
        self,
        facade: SaleFacade,
        operator: Optional[OperatorContext] = None,
        queue: Optional[MutationQueue] = None,
        parent: Optional[QObject] = None,
        sale_lookup: Optional[Callable[[int], Optional[Sale]]] = None,
    ):
        super().__init__(parent)
        self._facade = facade
        self.operator = operator or OperatorContext()
        self._queue = queue
        # listed copy of a sale (e.g. TodaysSalesRegistry.find), used when get_sale fails
        self.sale_lookup = sale_lookup
        self._session = Session()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def session(self) -> Session:
        with self._lock:
            return self._session.snapshot()

    @property
    def state(self) -> EngineState:
        return self._session.state

    def submit(self, op_name: str, *args, **kwargs) -> None:
        """Run an operation on the mutation queue (inline when there is none)."""
        if op_name not in self.QUEUEABLE:
            raise ValueError(f"Unknown engine operation: {op_name!r}")
        op = getattr(self, op_name)
        if self._queue is None:
            op(*args, **kwargs)
            return
        self._queue.submit(op_name, op, *args, **kwargs)

    # ------------------------------------------------------------------
    # Session plumbing
    # ------------------------------------------------------------------
    def _publish(self) -> None:
        self.sessionChanged.emit(self._session.snapshot())

    def _adopt(self, sale: Sale, state: EngineState = EngineState.ACTIVE) -> None:
        """Take the service's copy of the sale: lines, discount and total."""
        s = self._session
        s.selected_sale = sale
        s.cart_lines = list(sale.items)
        s.discount_amount = sale.discount_amount
        s.discount_type = sale.discount_type
        s.state = state
        self._publish()

    def _reset(self, keep_client: bool = True) -> None:
        client = self._session.selected_client if keep_client else None
        self._session = Session(selected_client=client)
        self._publish()

    def _open_sale(self) -> Optional[Sale]:
        sale = self._session.selected_sale
        if sale is not None and sale.is_completed:
            raise SaleLocked(sale.sale_id)
        return sale

    def _locate(self, product_id: int) -> tuple[Sale, CartLine]:
        sale = self._open_sale()
        line = self._session.line_for(product_id)
        if sale is None or line is None or line.line_id is None:
            raise ItemNotFound(product_id)
        return sale, line

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------
    def _provision(self) -> Sale:
        s = self._session
        held = s.held_lines
        client_id = s.selected_client.client_id if s.selected_client else None

        s.state = EngineState.PROVISIONING
        self._publish()
        try:
            sale = self._facade.create_empty_sale(client_id, today_str())
        except Exception:
            s.state = EngineState.EMPTY
            self._publish()
            raise
        _log.info("Provisioned sale %s (order #%s)", sale.sale_id, sale.order_number)

        if held:
            sale = self._replay(sale, held)
        self._adopt(sale)
        self.saleMutated.emit(sale.sale_id)
        return sale

    def _replay(self, sale: Sale, held: list[CartLine]) -> Sale:
        """Send staged lines one by one, then reload the canonical sale."""
        last = sale
        for i, line in enumerate(held):
            try:
                res = self._facade.add_sale_item(sale.sale_id, line.product_id, line.quantity, line.unit_price)
            except DomainError:
                unsent = ", ".join(ln.product_name for ln in held[i:])
                _log.error("Replay onto sale %s stopped; not sent: %s", sale.sale_id, unsent)
                self._adopt(last)
                self.saleMutated.emit(sale.sale_id)
                raise
            if isinstance(res, ItemAlreadyPresent):
                _log.warning("Staged product %s already on sale %s", line.product_id, sale.sale_id)
            last = res.sale
        try:
            return self._facade.get_sale(sale.sale_id)
        except DomainError:
            self._adopt(last)
            self.saleMutated.emit(sale.sale_id)
            raise

    # ------------------------------------------------------------------
    # Adding
    # ------------------------------------------------------------------
    def _add(self, product: ProductRef) -> AddOutcome:
        if self._session.state is EngineState.SETTLED:
            self._reset(keep_client=False)
        sale = self._open_sale()
        if sale is None:
            sale = self._provision()

        res = self._facade.add_sale_item(sale.sale_id, product.product_id, 1, product.default_unit_price())
        if isinstance(res, ItemAlreadyPresent):
            _log.warning("Product %s already on sale %s", product.product_id, sale.sale_id)
            self.notify.emit(NOTIFY_INFO, f"{product.name} is already in the cart")
            return AddOutcome.ALREADY_IN_CART

        self._adopt(res.sale)
        _log.info("Added product %s to sale %s", product.product_id, sale.sale_id)
        self.saleMutated.emit(sale.sale_id)
        return AddOutcome.ADDED

    @_operation
    def add_product(self, product: ProductRef) -> AddOutcome:
        outcome = self._add(product)
        if outcome is AddOutcome.ADDED:
            self.notify.emit(NOTIFY_SUCCESS, f"{product.name} added")
        return outcome

    @_operation
    def add_products(self, products: Iterable[ProductRef]) -> AddManyOutcome:
        products = list(products)
        if not products:
            return AddManyOutcome(added=0)
        added = 0
        present: list[ProductRef] = []
        for product in products:
            if self._add(product) is AddOutcome.ADDED:
                added += 1
            else:
                present.append(product)
        if added:
            self.notify.emit(NOTIFY_SUCCESS, f"{added} product(s) added")
        return AddManyOutcome(added=added, already_present=tuple(present))

    @_operation
    def create_empty_sale(self) -> Sale:
        s = self._session
        if s.selected_sale is not None or s.state is EngineState.SETTLED:
            self._reset(keep_client=True)
        sale = self._provision()
        self.notify.emit(NOTIFY_SUCCESS, f"Sale #{sale.order_number} created")
        return sale

    @_operation
    def hold_line(self, product: ProductRef, quantity=1) -> AddOutcome:
        """Stage a line locally; it is sent when the sale is provisioned."""
        s = self._session
        if s.selected_sale is not None:
            raise ValidationFailure("A sale is already open; add the product to it directly.")
        qty = self._whole_quantity(quantity)
        if qty <= 0:
            raise ValidationFailure("Quantity must be greater than zero.")
        if s.line_for(product.product_id) is not None:
            self.notify.emit(NOTIFY_INFO, f"{product.name} is already in the cart")
            return AddOutcome.ALREADY_IN_CART
        s.cart_lines.append(
            CartLine(
                product_id=product.product_id,
                product_name=product.name,
                quantity=qty,
                unit_price=product.default_unit_price(),
            )
        )
        self._publish()
        return AddOutcome.ADDED

    # ------------------------------------------------------------------
    # Line edits
    # ------------------------------------------------------------------
    @staticmethod
    def _whole_quantity(quantity) -> int:
        if isinstance(quantity, bool):
            raise ValidationFailure(f"Invalid quantity: {quantity!r}")
        ok, q = try_parse_decimal(quantity)
        if not ok or q is None or not q.is_finite():
            raise ValidationFailure(f"Invalid quantity: {quantity!r}")
        if q > 0 and q != q.to_integral_value():
            raise ValidationFailure("Quantity must be a whole number.")
        if q > MAX_LINE_QUANTITY:
            raise ValidationFailure(f"Quantity cannot exceed {MAX_LINE_QUANTITY}.")
        return int(q)

    @_operation
    def update_quantity(self, product_id: int, quantity) -> Optional[RemoveOutcome]:
        qty = self._whole_quantity(quantity)
        if qty <= 0:
            return self._remove(product_id, keep_client=True)

        sale, line = self._locate(product_id)
        updated = self._facade.update_sale_item(sale.sale_id, line.line_id, qty, line.unit_price)
        self._adopt(updated)
        _log.info("Sale %s: product %s quantity -> %s", sale.sale_id, product_id, qty)
        self.saleMutated.emit(sale.sale_id)
        return None

    @_operation
    def update_unit_price(self, product_id: int, price) -> None:
        ok, value = try_parse_decimal(price)
        if not ok or value is None or not value.is_finite():
            raise ValidationFailure(f"Invalid unit price: {price!r}")
        if value < 0:
            raise ValidationFailure("Unit price cannot be negative.")
        if value > Decimal(MAX_AMOUNT):
            raise ValidationFailure(f"Unit price cannot exceed {MAX_AMOUNT}.")

        sale, line = self._locate(product_id)
        updated = self._facade.update_sale_item(sale.sale_id, line.line_id, line.quantity, to_money(value))
        self._adopt(updated)
        _log.info("Sale %s: product %s price -> %s", sale.sale_id, product_id, value)
        self.saleMutated.emit(sale.sale_id)

    def _remove(self, product_id: int, keep_client: bool) -> RemoveOutcome:
        sale, line = self._locate(product_id)
        outcome = self._facade.delete_sale_item(sale.sale_id, line.line_id)

        if outcome.sale_status is SaleStatus.CANCELLED:
            _log.info("Sale %s cancelled after its last line was removed", sale.sale_id)
            self._session.state = EngineState.CANCELLED
            self._publish()
            self._reset(keep_client=keep_client)
            self.notify.emit(NOTIFY_INFO, "Sale cancelled")
            self.saleMutated.emit(sale.sale_id)
            return RemoveOutcome.SALE_CANCELLED

        self.saleMutated.emit(sale.sale_id)
        try:
            fresh = self._facade.get_sale(sale.sale_id)
        except DomainError as e:
            fresh = self.sale_lookup(sale.sale_id) if self.sale_lookup else None
            if fresh is None or fresh.line_for(product_id) is not None:
                # the line is gone on the server; drop the stale cart
                _log.error("Sale %s: line removed but no fresh copy (%s); Session reset", sale.sale_id, e)
                self._reset(keep_client=True)
                raise
            _log.warning("Sale %s: reload failed (%s), using the listed copy", sale.sale_id, e)
        self._adopt(fresh)
        self.notify.emit(NOTIFY_SUCCESS, outcome.message)
        return RemoveOutcome.REMOVED

    @_operation
    def remove_product(self, product_id: int, keep_client: bool = True) -> RemoveOutcome:
        return self._remove(product_id, keep_client)

    # ------------------------------------------------------------------
    # Sale header
    # ------------------------------------------------------------------
    @_operation
    def select_existing_sale(self, sale: Sale, *, refetch: bool = True) -> None:
        chosen = sale
        if refetch:
            try:
                chosen = self._facade.get_sale(sale.sale_id)
            except DomainError as e:
                _log.warning("Could not refresh sale %s, using the listed copy: %s", sale.sale_id, e)
                self.notify.emit(NOTIFY_ERROR, f"Could not load the latest copy of sale #{sale.order_number}: {e}")
        if chosen.is_cancelled:
            raise ValidationFailure(f"Sale #{chosen.order_number} was cancelled.")

        state = EngineState.SETTLED if chosen.is_completed else EngineState.ACTIVE
        self._session = Session.for_sale(chosen, state=state)
        _log.info("Selected sale %s (%s)", chosen.sale_id, chosen.status.value)
        self._publish()

    @_operation
    def change_client(self, client: Optional[ClientRef]) -> None:
        s = self._session
        if s.state is EngineState.SETTLED:
            # picking a client after a settled sale starts the next one
            self._session = Session(selected_client=client)
            self._publish()
            return

        sale = s.selected_sale
        if sale is None:
            s.selected_client = client
            self._publish()
            return

        updated = self._facade.update_sale(sale.sale_id, client_id=client.client_id if client else None)
        s.selected_client = client
        self._adopt(updated)
        self.saleMutated.emit(sale.sale_id)

    @_operation
    def change_sale_date(self, sale_id: int, new_date: str) -> Sale:
        if not new_date:
            raise ValidationFailure("Sale date is required.")
        updated = self._facade.update_sale(sale_id, sale_date=new_date)
        _log.info("Sale %s re-dated to %s (order #%s)", sale_id, new_date, updated.order_number)
        s = self._session
        if s.selected_sale is not None and s.selected_sale.sale_id == sale_id:
            s.selected_sale = updated
            self._publish()
        self.saleMutated.emit(sale_id)
        self.notify.emit(NOTIFY_SUCCESS, "Sale date updated")
        return updated

    @_operation
    def apply_discount(self, amount, discount_type: str = DISCOUNT_FIXED) -> None:
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationFailure(f"Unknown discount type: {discount_type!r}")
        ok, value = try_parse_decimal(amount)
        if not ok or value is None or not value.is_finite() or value < 0 or value > Decimal(MAX_AMOUNT):
            raise ValidationFailure(f"Invalid discount: {amount!r}")
        sale = self._open_sale()
        if sale is None:
            raise ValidationFailure("Add a product before applying a discount.")

        updated = self._facade.update_sale(
            sale.sale_id, discount_amount=to_money(value), discount_type=discount_type
        )
        self._adopt(updated)
        self.saleMutated.emit(sale.sale_id)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------
    @_operation
    def record_payment(self, payments: Iterable[dict]) -> PaymentOutcome:
        sale = self._open_sale()
        if sale is None:
            raise ValidationFailure("No sale is selected.")

        outcome = self._facade.record_payment(sale.sale_id, list(payments))
        for err in outcome.errors:
            self.notify.emit(NOTIFY_ERROR, err)

        if outcome.sale.is_completed:
            self._finalize(PaymentResult(success=True, sale=outcome.sale, errors=outcome.errors))
            return outcome

        self._adopt(outcome.sale)
        self.saleMutated.emit(sale.sale_id)
        self.notify.emit(NOTIFY_INFO, f"Payment recorded, {fmt_money(outcome.sale.due_amount)} still due")
        return outcome

    def _finalize(self, result: PaymentResult) -> bool:
        s = self._session
        if not result.success:
            msg = result.message or "Payment failed"
            _log.error("Payment not completed: %s", msg)
            self.notify.emit(NOTIFY_ERROR, msg)
            return False

        was_editing = s.editing_existing
        sale = result.sale
        if sale is None and s.selected_sale is not None:
            sale = self._facade.get_sale(s.selected_sale.sale_id)

        self._session = Session(
            selected_sale=sale,
            cart_lines=[],
            selected_client=s.selected_client,
            state=EngineState.SETTLED,
            editing_existing=was_editing,
        )
        self._publish()
        _log.info("Sale %s settled", sale.sale_id if sale else None)
        self.notify.emit(NOTIFY_SUCCESS, "Sale updated" if was_editing else "Sale completed")
        if sale is not None:
            self.saleMutated.emit(sale.sale_id)
        self.settled.emit(SettlementEvent(sale=sale, was_editing=was_editing))
        return True

    @_operation
    def finalize_payment(self, result: PaymentResult) -> bool:
        return self._finalize(result)

    @_operation
    def show_settled_sale(self, sale: Optional[Sale]) -> None:
        """Read-only view of a settled sale (receipt workflow)."""
        if sale is None:
            self._session.cart_lines = []
            self._session.state = EngineState.SETTLED
        else:
            self._session = Session.for_sale(sale, state=EngineState.SETTLED, keep_lines=False)
            self._session.discount_amount = Decimal("0.00")
            self._session.discount_type = DISCOUNT_FIXED
        self._publish()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @_operation
    def reload(self) -> Optional[Sale]:
        """Rebuild the Session from the service's copy of the selected sale."""
        sale = self._session.selected_sale
        if sale is None:
            self._publish()
            return None
        fresh = self._facade.get_sale(sale.sale_id)
        if fresh.is_cancelled:
            self._reset(keep_client=True)
            return None
        if fresh.is_completed:
            editing = self._session.editing_existing
            self._session = Session.for_sale(fresh, state=EngineState.SETTLED)
            self._session.editing_existing = editing
            self._publish()
        else:
            self._adopt(fresh)
        return fresh

    @_operation
    def start_new_session(self) -> None:
        self._reset(keep_client=False)
