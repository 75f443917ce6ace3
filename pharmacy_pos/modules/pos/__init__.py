from .engine import SaleSyncEngine
from .errors import DomainError, ItemNotFound, NotFound, SaleLocked, TransportFailure, ValidationFailure
from .facade import LocalSaleFacade, SaleFacade
from .finalizer import PaymentFinalizer
from .mutation_queue import MutationQueue
from .registry import TodaysSalesRegistry

__all__ = [
    "SaleSyncEngine",
    "SaleFacade",
    "LocalSaleFacade",
    "TodaysSalesRegistry",
    "PaymentFinalizer",
    "MutationQueue",
    "DomainError",
    "ValidationFailure",
    "SaleLocked",
    "NotFound",
    "ItemNotFound",
    "TransportFailure",
]
