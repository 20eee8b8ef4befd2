"""
Module: ledger_engines.cash_flow
Responsibility:
    Month-by-month figures for one calendar year: invoiced income and
    expense, cash collected and paid, and the cumulative cash position.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Always twelve rows, January first; months without activity are zero.
    - cumulative[m] == sum(net_cash[1..m]).
    - Rows dated outside ``year`` are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.transaction_types import TransactionType


class DatedRow(Protocol):
    type: str
    date: date
    amount_in_base: Decimal


@dataclass(frozen=True)
class MonthlyTotals:
    month: int
    income: Decimal
    expense: Decimal
    collected: Decimal
    paid: Decimal


@dataclass(frozen=True)
class CashFlowMonth:
    month: int
    collected: Decimal
    paid: Decimal
    net_cash: Decimal
    cumulative: Decimal


_COLUMN = {
    TransactionType.INVOICE_OUT: "income",
    TransactionType.INVOICE_IN: "expense",
    TransactionType.PAYMENT_IN: "collected",
    TransactionType.PAYMENT_OUT: "paid",
}


@traced_engine("cash_flow.monthly", "1.0", fingerprint_fields=("txs", "year"))
def monthly_totals(txs: Iterable[DatedRow], year: int) -> tuple[MonthlyTotals, ...]:
    sums = {m: dict.fromkeys(_COLUMN.values(), ZERO) for m in range(1, 13)}
    for tx in txs:
        if tx.date.year != year:
            continue
        sums[tx.date.month][_COLUMN[TransactionType(tx.type)]] += tx.amount_in_base
    return tuple(MonthlyTotals(month=m, **sums[m]) for m in range(1, 13))


def cash_flow_report(txs: Iterable[DatedRow], year: int) -> tuple[CashFlowMonth, ...]:
    """Collections less payments per month, with a running total from January."""
    cumulative = ZERO
    months: list[CashFlowMonth] = []
    for row in monthly_totals(txs, year):
        net = row.collected - row.paid
        cumulative += net
        months.append(
            CashFlowMonth(
                month=row.month,
                collected=row.collected,
                paid=row.paid,
                net_cash=net,
                cumulative=cumulative,
            )
        )
    return tuple(months)
