"""
Module: ledger_engines.balances
Responsibility:
    Turn a set of transactions into the financial summaries of the three
    ledger views -- the company (cari) running account, the project
    profitability view, the firm-wide dashboard -- plus the totals row of a
    filtered transaction list.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  BalanceSelector loads
    TransactionInfo rows (with their allocated sums) and feeds them in.

Invariants enforced:
    - One O(n) pass: every calculator starts from ``accumulate(txs)``.
    - Type-dependent behaviour (sign, income/expense, payment or invoice)
      is read from TRANSACTION_TYPES only.
    - Company view: every payment reduces the running account in full,
      allocated or not.  Project view: only the allocated part of a payment
      settles invoices; the unallocated part counts as independent income
      or expense.  This asymmetry is deliberate and must not be unified.
    - project_debt and client_receivable are never negative.
    - CompanyLedger.balance == receivable - payable exactly.

Failure modes:
    - ValueError from traits_of() on an unknown transaction type.

Usage:
    from ledger_engines.balances import calculate_company_ledger

    ledger = calculate_company_ledger(transactions)
    ledger.balance
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.transaction_types import (
    Flow,
    TransactionType,
    traits_of,
)

HUNDRED = Decimal("100")


class LedgerRow(Protocol):
    type: str
    amount_in_base: Decimal
    allocated_amount: Decimal


def _zero_by_type() -> dict[TransactionType, Decimal]:
    return {t: ZERO for t in TransactionType}


@dataclass
class TypeTotals:
    """
    Per-type sums gathered in one pass.

    ``allocated`` is the matched portion and ``independent`` the unmatched
    portion (``max(0, amount - allocated)`` per row) of each type.
    """

    total: dict[TransactionType, Decimal] = field(default_factory=_zero_by_type)
    allocated: dict[TransactionType, Decimal] = field(default_factory=_zero_by_type)
    independent: dict[TransactionType, Decimal] = field(default_factory=_zero_by_type)
    by_flow: dict[Flow, Decimal] = field(
        default_factory=lambda: {Flow.INCOME: ZERO, Flow.EXPENSE: ZERO}
    )
    signed: Decimal = ZERO
    count: int = 0

    def __getitem__(self, tx_type: TransactionType) -> Decimal:
        return self.total[tx_type]


def accumulate(txs: Iterable[LedgerRow]) -> TypeTotals:
    """Scan once and sum amounts by type, allocation state, flow and sign."""
    totals = TypeTotals()
    for tx in txs:
        tx_type = TransactionType(tx.type)
        traits = traits_of(tx_type)
        amount = tx.amount_in_base
        allocated = tx.allocated_amount or ZERO
        totals.total[tx_type] += amount
        totals.allocated[tx_type] += allocated
        totals.independent[tx_type] += max(ZERO, amount - allocated)
        totals.by_flow[traits.flow] += amount
        totals.signed += traits.sign * amount
        totals.count += 1
    return totals


@dataclass(frozen=True)
class CompanyLedger:
    total_invoice_out: Decimal
    total_payment_in: Decimal
    total_invoice_in: Decimal
    total_payment_out: Decimal
    receivable: Decimal
    payable: Decimal
    balance: Decimal


@dataclass(frozen=True)
class ProjectLedger:
    """
    Project profitability and open exposure.

    ``estimated_profit`` is None when the project has no budget; then
    ``budget_used_pct`` is 0.
    """

    ownership: str
    total_invoice_out: Decimal
    total_invoice_in: Decimal
    total_payment_in: Decimal
    total_payment_out: Decimal
    independent_payment_in: Decimal
    independent_payment_out: Decimal
    total_income: Decimal
    total_expense: Decimal
    profit: Decimal
    estimated_profit: Decimal | None
    budget_used_pct: Decimal
    project_debt: Decimal
    client_receivable: Decimal


@dataclass(frozen=True)
class DashboardTotals:
    total_income: Decimal
    total_expense: Decimal
    net_profit: Decimal
    total_collected: Decimal
    total_paid: Decimal
    net_cash: Decimal


@dataclass(frozen=True)
class TransactionTotals:
    total_invoice_out: Decimal
    total_payment_in: Decimal
    total_invoice_in: Decimal
    total_payment_out: Decimal
    total_income: Decimal
    total_expense: Decimal
    net_profit: Decimal
    net_cash_flow: Decimal
    net_balance: Decimal
    count: int


@traced_engine("balances.company", "1.0", fingerprint_fields=("txs",))
def calculate_company_ledger(txs: Iterable[LedgerRow]) -> CompanyLedger:
    """
    Running account of one counterparty.

    receivable = invoice_out - payment_in, payable = invoice_in - payment_out,
    with payments counted in full whether or not they are allocated.
    """
    t = accumulate(txs)
    receivable = t[TransactionType.INVOICE_OUT] - t[TransactionType.PAYMENT_IN]
    payable = t[TransactionType.INVOICE_IN] - t[TransactionType.PAYMENT_OUT]
    return CompanyLedger(
        total_invoice_out=t[TransactionType.INVOICE_OUT],
        total_payment_in=t[TransactionType.PAYMENT_IN],
        total_invoice_in=t[TransactionType.INVOICE_IN],
        total_payment_out=t[TransactionType.PAYMENT_OUT],
        receivable=receivable,
        payable=payable,
        balance=receivable - payable,
    )


@traced_engine(
    "balances.project",
    "1.0",
    fingerprint_fields=("txs", "ownership", "estimated_budget"),
)
def calculate_project_ledger(
    txs: Iterable[LedgerRow],
    ownership: str = "own",
    estimated_budget: Decimal | None = None,
) -> ProjectLedger:
    """
    Project view.

    Income is sales invoices plus the unallocated part of collections;
    expense is purchase invoices plus the unallocated part of payments.
    Only allocated payments reduce client_receivable and project_debt.
    """
    t = accumulate(txs)
    invoice_out = t[TransactionType.INVOICE_OUT]
    invoice_in = t[TransactionType.INVOICE_IN]
    independent_in = t.independent[TransactionType.PAYMENT_IN]
    independent_out = t.independent[TransactionType.PAYMENT_OUT]

    total_income = invoice_out + independent_in
    total_expense = invoice_in + independent_out

    if estimated_budget:
        estimated_profit = estimated_budget - total_expense
        budget_used_pct = round_money(total_expense / estimated_budget * HUNDRED)
    else:
        estimated_profit = None
        budget_used_pct = ZERO

    return ProjectLedger(
        ownership=ownership,
        total_invoice_out=invoice_out,
        total_invoice_in=invoice_in,
        total_payment_in=t[TransactionType.PAYMENT_IN],
        total_payment_out=t[TransactionType.PAYMENT_OUT],
        independent_payment_in=independent_in,
        independent_payment_out=independent_out,
        total_income=total_income,
        total_expense=total_expense,
        profit=total_income - total_expense,
        estimated_profit=estimated_profit,
        budget_used_pct=budget_used_pct,
        project_debt=max(ZERO, invoice_in - t.allocated[TransactionType.PAYMENT_OUT]),
        client_receivable=max(ZERO, invoice_out - t.allocated[TransactionType.PAYMENT_IN]),
    )


@traced_engine("balances.dashboard", "1.0", fingerprint_fields=("txs",))
def calculate_dashboard_totals(txs: Iterable[LedgerRow]) -> DashboardTotals:
    """Firm-wide figures: profit from invoices only, cash from payments only."""
    t = accumulate(txs)
    income = t[TransactionType.INVOICE_OUT]
    expense = t[TransactionType.INVOICE_IN]
    collected = t[TransactionType.PAYMENT_IN]
    paid = t[TransactionType.PAYMENT_OUT]
    return DashboardTotals(
        total_income=income,
        total_expense=expense,
        net_profit=income - expense,
        total_collected=collected,
        total_paid=paid,
        net_cash=collected - paid,
    )


@traced_engine("balances.transaction_totals", "1.0", fingerprint_fields=("txs",))
def calculate_transaction_totals(txs: Iterable[LedgerRow]) -> TransactionTotals:
    t = accumulate(txs)
    invoice_out = t[TransactionType.INVOICE_OUT]
    payment_in = t[TransactionType.PAYMENT_IN]
    invoice_in = t[TransactionType.INVOICE_IN]
    payment_out = t[TransactionType.PAYMENT_OUT]
    return TransactionTotals(
        total_invoice_out=invoice_out,
        total_payment_in=payment_in,
        total_invoice_in=invoice_in,
        total_payment_out=payment_out,
        total_income=t.by_flow[Flow.INCOME],
        total_expense=t.by_flow[Flow.EXPENSE],
        net_profit=invoice_out - invoice_in,
        net_cash_flow=payment_in - payment_out,
        net_balance=t.signed,
        count=t.count,
    )
