"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.selectors.balance_selector import (
    BalanceSelector,
    CategoryBreakdown,
    CounterpartyBalance,
    DashboardSummary,
)
from ledger_kernel.selectors.transaction_selector import TransactionSelector

__all__ = [
    "AllocationSelector",
    "BalanceSelector",
    "CategoryBreakdown",
    "CounterpartyBalance",
    "DashboardSummary",
    "TransactionSelector",
]
