"""Pure domain layer: clock, transaction type table, DTOs."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.transaction_types import (
    TRANSACTION_TYPES,
    CategoryType,
    Flow,
    TransactionType,
    TypeTraits,
    traits_of,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "TRANSACTION_TYPES",
    "CategoryType",
    "Flow",
    "TransactionType",
    "TypeTraits",
    "traits_of",
]
