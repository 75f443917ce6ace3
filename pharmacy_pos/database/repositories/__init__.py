# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from pharmacy_pos.database.repositories import (
        # Products
        ProductsRepo, Product,
        # Sales
        SalesRepo, SalePaymentsRepo, SalesDomainError, SaleRecordNotFound,
    )
"""

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product

# ------------------ Sales ------------------
from .sale_payments_repo import SalePaymentsRepo, PaymentValidationError
from .sales_repo import (
    SalesRepo,
    DomainError as SalesDomainError,
    RecordNotFound as SaleRecordNotFound,
)

__all__ = [
    # products_repo
    "ProductsRepo",
    "Product",
    # sales
    "SalePaymentsRepo",
    "PaymentValidationError",
    "SalesRepo",
    "SalesDomainError",
    "SaleRecordNotFound",
]
