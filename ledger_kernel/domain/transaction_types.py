"""
Transaction type table.

Responsibility:
    The four transaction types form one closed variant.  Everything that
    depends on the type -- which categories are allowed, the sign of the
    running balance, whether a row can take part in an allocation and on
    which side, and whether it counts as income or expense -- is read from
    the single ``TRANSACTION_TYPES`` table below.  No other module branches
    on type names.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models, services and
    engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TransactionType(str, Enum):
    """Closed set of ledger transaction types."""

    INVOICE_OUT = "invoice_out"  # Sales invoice issued by the firm
    PAYMENT_IN = "payment_in"  # Money collected
    INVOICE_IN = "invoice_in"  # Purchase invoice received
    PAYMENT_OUT = "payment_out"  # Money paid


class CategoryType(str, Enum):
    """Category groups; payment categories are shared by both payment types."""

    INVOICE_OUT = "invoice_out"
    INVOICE_IN = "invoice_in"
    PAYMENT = "payment"


class Flow(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


@dataclass(frozen=True)
class TypeTraits:
    """
    Static properties of one transaction type.

    Guarantees:
        - Exactly one of ``is_invoice`` / ``is_payment`` is True.
        - ``settles`` is set iff ``is_payment``; it names the invoice type
          a payment of this type may be allocated against.
    """

    sign: int
    is_invoice: bool
    category_group: CategoryType
    flow: Flow
    settles: TransactionType | None = None

    @property
    def is_payment(self) -> bool:
        return not self.is_invoice

    def can_settle(self, invoice_type: TransactionType | str) -> bool:
        """True iff a payment of this type may be allocated to ``invoice_type``."""
        return self.settles is not None and self.settles == invoice_type


TRANSACTION_TYPES: dict[TransactionType, TypeTraits] = {
    TransactionType.INVOICE_OUT: TypeTraits(
        sign=1,
        is_invoice=True,
        category_group=CategoryType.INVOICE_OUT,
        flow=Flow.INCOME,
    ),
    TransactionType.PAYMENT_IN: TypeTraits(
        sign=1,
        is_invoice=False,
        category_group=CategoryType.PAYMENT,
        flow=Flow.INCOME,
        settles=TransactionType.INVOICE_OUT,
    ),
    TransactionType.INVOICE_IN: TypeTraits(
        sign=-1,
        is_invoice=True,
        category_group=CategoryType.INVOICE_IN,
        flow=Flow.EXPENSE,
    ),
    TransactionType.PAYMENT_OUT: TypeTraits(
        sign=-1,
        is_invoice=False,
        category_group=CategoryType.PAYMENT,
        flow=Flow.EXPENSE,
        settles=TransactionType.INVOICE_IN,
    ),
}

INVOICE_TYPES: tuple[TransactionType, ...] = tuple(
    t for t, traits in TRANSACTION_TYPES.items() if traits.is_invoice
)
PAYMENT_TYPES: tuple[TransactionType, ...] = tuple(
    t for t, traits in TRANSACTION_TYPES.items() if traits.is_payment
)


def traits_of(tx_type: TransactionType | str) -> TypeTraits:
    """Look up the traits of a type given as enum member or raw value."""
    return TRANSACTION_TYPES[TransactionType(tx_type)]


def settled_by(invoice_type: TransactionType | str) -> TransactionType:
    """Payment type that settles the given invoice type."""
    invoice_type = TransactionType(invoice_type)
    for tx_type, traits in TRANSACTION_TYPES.items():
        if traits.settles is invoice_type:
            return tx_type
    raise ValueError(f"{invoice_type.value} is not an invoice type")
