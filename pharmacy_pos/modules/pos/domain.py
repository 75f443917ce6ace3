# pharmacy_pos/modules/pos/domain.py
"""
Shared vocabulary of the POS core: sales, cart lines, payments and the
engine-owned Session.

Everything coming from the sale service is frozen; the only mutable piece is
``Session``, and only the synchronization engine writes to it.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from ...constants import (
    DISCOUNT_FIXED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_DRAFT,
    SALE_STATUS_PENDING,
)
from ...utils.helpers import to_money

ZERO = Decimal("0.00")


class SaleStatus(str, Enum):
    DRAFT = SALE_STATUS_DRAFT
    PENDING = SALE_STATUS_PENDING
    COMPLETED = SALE_STATUS_COMPLETED
    CANCELLED = SALE_STATUS_CANCELLED


class EngineState(Enum):
    EMPTY = "empty"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    SETTLED = "settled"


def _opt_int(v) -> Optional[int]:
    return None if v is None else int(v)


# ---------------------------------------------------------------------------
# References to things owned elsewhere
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProductRef:
    product_id: int
    name: str
    last_sale_price: Optional[Decimal] = None
    suggested_sale_price: Optional[Decimal] = None

    def default_unit_price(self) -> Decimal:
        """Last sale price, else suggested price, else zero."""
        if self.last_sale_price is not None:
            return to_money(self.last_sale_price)
        if self.suggested_sale_price is not None:
            return to_money(self.suggested_sale_price)
        return ZERO

    @classmethod
    def from_product(cls, product) -> "ProductRef":
        return cls(
            product_id=int(product.product_id),
            name=product.name,
            last_sale_price=product.last_sale_price,
            suggested_sale_price=product.suggested_sale_price,
        )


@dataclass(frozen=True)
class ClientRef:
    client_id: int
    name: str = ""


# ---------------------------------------------------------------------------
# Sale aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartLine:
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    line_id: Optional[int] = None
    total: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        # server-echoed when present
        if self.total is not None:
            return self.total
        return to_money(self.unit_price * self.quantity)

    @property
    def is_persisted(self) -> bool:
        return self.line_id is not None

    @classmethod
    def from_payload(cls, item: dict) -> "CartLine":
        return cls(
            product_id=int(item["product_id"]),
            product_name=item.get("product_name") or "Unknown Product",
            quantity=int(item["quantity"]),
            unit_price=to_money(item["unit_price"]),
            line_id=_opt_int(item.get("item_id")),
            total=None if item.get("total_price") is None else to_money(item["total_price"]),
        )


@dataclass(frozen=True)
class Payment:
    payment_id: Optional[int]
    sale_id: int
    method: str
    amount: Decimal
    payment_date: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    operator_id: Optional[int] = None
    operator_name: Optional[str] = None

    @classmethod
    def from_payload(cls, p: dict) -> "Payment":
        return cls(
            payment_id=_opt_int(p.get("payment_id")),
            sale_id=int(p["sale_id"]),
            method=p["method"],
            amount=to_money(p["amount"]),
            payment_date=p["payment_date"],
            reference_number=p.get("reference_number"),
            notes=p.get("notes"),
            operator_id=_opt_int(p.get("created_by")),
            operator_name=p.get("operator_name"),
        )


@dataclass(frozen=True)
class Sale:
    sale_id: int
    order_number: int
    sale_date: str
    status: SaleStatus
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    due_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    discount_type: str = DISCOUNT_FIXED
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    operator_id: Optional[int] = None
    operator_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    items: tuple[CartLine, ...] = ()
    payments: tuple[Payment, ...] = ()

    @property
    def is_completed(self) -> bool:
        return self.status is SaleStatus.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.status is SaleStatus.CANCELLED

    def line_for(self, product_id: int) -> Optional[CartLine]:
        return next((ln for ln in self.items if ln.product_id == product_id), None)

    @classmethod
    def from_payload(cls, d: dict) -> "Sale":
        """Build from the service's sale payload (header + items + payments)."""
        return cls(
            sale_id=int(d["sale_id"]),
            order_number=int(d.get("order_number") or 0),
            sale_date=d["sale_date"],
            status=SaleStatus(d["status"]),
            total_amount=to_money(d.get("total_amount")),
            paid_amount=to_money(d.get("paid_amount")),
            due_amount=to_money(d.get("due_amount")),
            discount_amount=to_money(d.get("discount_amount")),
            discount_type=d.get("discount_type") or DISCOUNT_FIXED,
            client_id=_opt_int(d.get("client_id")),
            client_name=d.get("client_name"),
            operator_id=_opt_int(d.get("created_by")),
            operator_name=d.get("operator_name"),
            notes=d.get("notes"),
            created_at=d.get("created_at"),
            items=tuple(CartLine.from_payload(it) for it in d.get("items") or ()),
            payments=tuple(Payment.from_payload(p) for p in d.get("payments") or ()),
        )


# ---------------------------------------------------------------------------
# Facade results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ItemAdded:
    sale: Sale


@dataclass(frozen=True)
class ItemAlreadyPresent:
    """The product is already a line on the sale; nothing was written."""
    sale: Sale


AddItemResult = Union[ItemAdded, ItemAlreadyPresent]


@dataclass(frozen=True)
class DeleteItemOutcome:
    message: str
    sale_status: SaleStatus
    remaining_items_count: Optional[int] = None


@dataclass(frozen=True)
class PaymentOutcome:
    sale: Sale
    errors: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Engine-facing results
# ---------------------------------------------------------------------------

class AddOutcome(Enum):
    ADDED = "added"
    ALREADY_IN_CART = "already_in_cart"


class RemoveOutcome(Enum):
    REMOVED = "removed"
    SALE_CANCELLED = "sale_cancelled"


@dataclass(frozen=True)
class AddManyOutcome:
    added: int
    already_present: tuple[ProductRef, ...] = ()


@dataclass(frozen=True)
class PaymentResult:
    """What the payment step hands to ``finalize_payment``."""
    success: bool
    sale: Optional[Sale] = None
    errors: tuple[str, ...] = ()
    message: Optional[str] = None

    @classmethod
    def failed(cls, message: str) -> "PaymentResult":
        return cls(success=False, message=message)


@dataclass(frozen=True)
class SettlementEvent:
    sale: Optional[Sale]
    was_editing: bool


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass
class Session:
    selected_sale: Optional[Sale] = None
    cart_lines: list[CartLine] = field(default_factory=list)
    discount_amount: Decimal = ZERO
    discount_type: str = DISCOUNT_FIXED
    selected_client: Optional[ClientRef] = None
    state: EngineState = EngineState.EMPTY
    # True when the sale was opened from the list rather than provisioned here
    editing_existing: bool = False

    @property
    def displayed_total(self) -> Decimal:
        if self.selected_sale is None:
            return ZERO
        return self.selected_sale.total_amount

    @property
    def payments(self) -> tuple[Payment, ...]:
        return self.selected_sale.payments if self.selected_sale else ()

    @property
    def held_lines(self) -> list[CartLine]:
        return [ln for ln in self.cart_lines if not ln.is_persisted]

    def line_for(self, product_id: int) -> Optional[CartLine]:
        return next((ln for ln in self.cart_lines if ln.product_id == product_id), None)

    def snapshot(self) -> "Session":
        """Copy handed to observers; mutating it does not touch the engine."""
        return replace(self, cart_lines=list(self.cart_lines))

    @classmethod
    def for_sale(cls, sale: Sale, *, state: EngineState, keep_lines: bool = True) -> "Session":
        client = ClientRef(sale.client_id, sale.client_name or "") if sale.client_id is not None else None
        return cls(
            selected_sale=sale,
            cart_lines=list(sale.items) if keep_lines else [],
            discount_amount=sale.discount_amount,
            discount_type=sale.discount_type,
            selected_client=client,
            state=state,
            editing_existing=True,
        )
