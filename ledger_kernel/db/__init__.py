"""
Database layer - base classes, column types, migrations, snapshots.

The transaction boundary lives in ``ledger_kernel.db.engine``; it is not
re-exported here because it pulls in the services layer.
"""

from ledger_kernel.db.base import TABLE_OPTIONS, Base, TimestampMixin
from ledger_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    RATE_DECIMAL_PLACES,
    ZERO,
    ScaledDecimal,
    round_money,
    to_decimal,
)

__all__ = [
    "Base",
    "MONEY_DECIMAL_PLACES",
    "RATE_DECIMAL_PLACES",
    "ScaledDecimal",
    "TABLE_OPTIONS",
    "TimestampMixin",
    "ZERO",
    "round_money",
    "to_decimal",
]
