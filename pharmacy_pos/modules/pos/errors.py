# pharmacy_pos/modules/pos/errors.py
"""
Error kinds raised by the sale facade and the synchronization engine.

A duplicate add is deliberately absent: the sale service answers it with a
normal response, which the facade turns into ``ItemAlreadyPresent``.
"""
from __future__ import annotations


# Domain-level error the controller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


class ValidationFailure(DomainError):
    """Bad input: missing product, negative price, rejected payment..."""


class SaleLocked(ValidationFailure):
    """The sale is completed; items and totals can no longer change."""

    def __init__(self, sale_id: int | None):
        self.sale_id = sale_id
        super().__init__(f"Sale {sale_id} is completed and can no longer be changed.")


class NotFound(DomainError):
    """A referenced sale or line does not exist."""


class ItemNotFound(NotFound):
    """No persisted cart line for the product (no server line id)."""

    def __init__(self, product_id: int | None, detail: str | None = None):
        self.product_id = product_id
        msg = f"Product {product_id} is not in the cart."
        if detail:
            msg = f"{msg} {detail}"
        super().__init__(msg)


class TransportFailure(DomainError):
    """The sale service could not be reached or failed internally."""
