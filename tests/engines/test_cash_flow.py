"""Tests for the monthly totals and cash flow report."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_engines.cash_flow import cash_flow_report, monthly_totals


@dataclass(frozen=True)
class Row:
    type: str
    date: date
    amount_in_base: Decimal


ROWS = [
    Row("invoice_out", date(2024, 1, 5), Decimal("1000.00")),
    Row("payment_in", date(2024, 1, 20), Decimal("400.00")),
    Row("invoice_in", date(2024, 3, 2), Decimal("250.00")),
    Row("payment_out", date(2024, 3, 9), Decimal("600.00")),
    Row("payment_in", date(2023, 12, 31), Decimal("999.00")),
]


class TestMonthlyTotals:
    def test_always_twelve_months(self):
        months = monthly_totals([], 2024)
        assert [m.month for m in months] == list(range(1, 13))
        assert all(m.income == Decimal("0.00") for m in months)

    def test_sums_land_in_their_month(self):
        months = monthly_totals(ROWS, 2024)

        assert months[0].income == Decimal("1000.00")
        assert months[0].collected == Decimal("400.00")
        assert months[2].expense == Decimal("250.00")
        assert months[2].paid == Decimal("600.00")

    def test_other_years_ignored(self):
        months = monthly_totals(ROWS, 2023)
        assert months[11].collected == Decimal("999.00")
        assert sum(m.income for m in months) == Decimal("0")


class TestCashFlowReport:
    def test_cumulative_is_running_net(self):
        report = cash_flow_report(ROWS, 2024)

        assert report[0].net_cash == Decimal("400.00")
        assert report[1].cumulative == Decimal("400.00")
        assert report[2].net_cash == Decimal("-600.00")
        assert report[2].cumulative == Decimal("-200.00")
        assert report[11].cumulative == Decimal("-200.00")
