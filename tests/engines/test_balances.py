"""
Tests for the balance calculators.

The company view counts every payment in full; the project view only lets
allocated payments settle invoices and treats the rest as independent
income or expense.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_engines.balances import (
    accumulate,
    calculate_company_ledger,
    calculate_dashboard_totals,
    calculate_project_ledger,
    calculate_transaction_totals,
)
from ledger_kernel.domain.transaction_types import Flow, TransactionType


@dataclass(frozen=True)
class Row:
    type: str
    amount_in_base: Decimal
    allocated_amount: Decimal = Decimal("0.00")


def D(value: str) -> Decimal:
    return Decimal(value)


class TestAccumulate:
    def test_sums_by_type_flow_and_sign(self):
        totals = accumulate(
            [
                Row("invoice_out", D("100.00")),
                Row("payment_in", D("40.00"), D("30.00")),
                Row("invoice_in", D("70.00")),
                Row("payment_out", D("20.00")),
            ]
        )

        assert totals[TransactionType.INVOICE_OUT] == D("100.00")
        assert totals.allocated[TransactionType.PAYMENT_IN] == D("30.00")
        assert totals.independent[TransactionType.PAYMENT_IN] == D("10.00")
        assert totals.by_flow[Flow.INCOME] == D("140.00")
        assert totals.by_flow[Flow.EXPENSE] == D("90.00")
        assert totals.signed == D("50.00")
        assert totals.count == 4

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            accumulate([Row("refund", D("1.00"))])


class TestCompanyLedger:
    def test_partial_payment_leaves_receivable(self):
        ledger = calculate_company_ledger(
            [Row("invoice_out", D("10000.00")), Row("payment_in", D("6000.00"), D("6000.00"))]
        )

        assert ledger.receivable == D("4000.00")
        assert ledger.payable == D("0.00")
        assert ledger.balance == D("4000.00")

    def test_unallocated_payment_still_reduces_account(self):
        ledger = calculate_company_ledger(
            [Row("invoice_out", D("10000.00")), Row("payment_in", D("6000.00"))]
        )

        assert ledger.receivable == D("4000.00")

    def test_supplier_side(self):
        ledger = calculate_company_ledger(
            [Row("invoice_in", D("2500.00")), Row("payment_out", D("3000.00"))]
        )

        assert ledger.payable == D("-500.00")
        assert ledger.balance == D("500.00")

    def test_empty(self):
        ledger = calculate_company_ledger([])
        assert ledger.balance == D("0.00")

    @settings(max_examples=50)
    @given(
        st.lists(
            st.tuples(
                st.sampled_from([t.value for t in TransactionType]),
                st.decimals(min_value=D("0.01"), max_value=D("1000000"), places=2),
            ),
            max_size=20,
        )
    )
    def test_balance_is_receivable_minus_payable(self, entries):
        ledger = calculate_company_ledger([Row(t, amount) for t, amount in entries])
        assert ledger.balance == ledger.receivable - ledger.payable


class TestProjectLedger:
    def test_allocated_collection_reduces_client_receivable(self):
        ledger = calculate_project_ledger(
            [Row("invoice_out", D("10000.00")), Row("payment_in", D("6000.00"), D("6000.00"))],
            ownership="client",
        )

        assert ledger.client_receivable == D("4000.00")
        assert ledger.independent_payment_in == D("0.00")
        assert ledger.total_income == D("10000.00")

    def test_unallocated_collection_is_independent_income(self):
        ledger = calculate_project_ledger(
            [Row("invoice_out", D("10000.00")), Row("payment_in", D("6000.00"))],
            ownership="client",
        )

        assert ledger.client_receivable == D("10000.00")
        assert ledger.independent_payment_in == D("6000.00")
        assert ledger.total_income == D("16000.00")

    def test_partially_allocated_payment_splits(self):
        ledger = calculate_project_ledger(
            [
                Row("invoice_in", D("8000.00")),
                Row("payment_out", D("5000.00"), D("3000.00")),
            ]
        )

        assert ledger.project_debt == D("5000.00")
        assert ledger.independent_payment_out == D("2000.00")
        assert ledger.total_expense == D("10000.00")
        assert ledger.profit == D("-10000.00")

    def test_debt_never_negative(self):
        ledger = calculate_project_ledger(
            [Row("invoice_in", D("100.00")), Row("payment_out", D("500.00"), D("500.00"))]
        )

        assert ledger.project_debt == D("0.00")

    def test_budget_figures(self):
        ledger = calculate_project_ledger(
            [Row("invoice_in", D("2500.00"))], estimated_budget=D("10000.00")
        )

        assert ledger.estimated_profit == D("7500.00")
        assert ledger.budget_used_pct == D("25.00")

    @pytest.mark.parametrize("budget", [None, D("0.00")])
    def test_no_budget(self, budget):
        ledger = calculate_project_ledger([Row("invoice_in", D("2500.00"))], estimated_budget=budget)

        assert ledger.estimated_profit is None
        assert ledger.budget_used_pct == D("0.00")


class TestDashboardTotals:
    def test_profit_from_invoices_cash_from_payments(self):
        totals = calculate_dashboard_totals(
            [
                Row("invoice_out", D("900.00")),
                Row("invoice_in", D("400.00")),
                Row("payment_in", D("500.00")),
                Row("payment_out", D("650.00")),
            ]
        )

        assert totals.net_profit == D("500.00")
        assert totals.net_cash == D("-150.00")


class TestTransactionTotals:
    def test_totals_row(self):
        totals = calculate_transaction_totals(
            [
                Row("invoice_out", D("900.00")),
                Row("payment_in", D("500.00")),
                Row("invoice_in", D("400.00")),
            ]
        )

        assert totals.total_income == D("1400.00")
        assert totals.total_expense == D("400.00")
        assert totals.net_profit == D("500.00")
        assert totals.net_cash_flow == D("500.00")
        assert totals.net_balance == D("1000.00")
        assert totals.count == 3
