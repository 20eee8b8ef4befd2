"""Tests for receivable and payable aging."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    age_open_balances,
    age_payables,
    age_receivables,
    calculate_age,
    classify,
)
from ledger_kernel.domain.transaction_types import TransactionType

AS_OF = date(2024, 6, 30)


@dataclass(frozen=True)
class Row:
    company_id: int | None
    type: str
    date: date
    amount_in_base: Decimal
    company_name: str | None = None


class TestAgeBucket:
    def test_negative_min_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            AgeBucket("bad", -1, 10)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError, match="less than"):
            AgeBucket("bad", 30, 10)

    def test_unbounded_bucket(self):
        assert AgeBucket("90+", 91, None).contains(5000)


class TestClassify:
    @pytest.mark.parametrize(
        "age, expected",
        [(0, "0-30"), (30, "0-30"), (31, "31-60"), (60, "31-60"), (61, "61-90"), (91, "90+")],
    )
    def test_bucket_edges(self, age, expected):
        assert classify(age).name == expected

    def test_future_dated_document_is_current(self):
        assert classify(calculate_age(date(2024, 7, 15), AS_OF)) is STANDARD_BUCKETS[0]

    def test_gap_in_custom_buckets(self):
        buckets = (AgeBucket("0-10", 0, 10), AgeBucket("20+", 20, None))
        with pytest.raises(ValueError, match="does not fit"):
            classify(15, buckets)


class TestAgeOpenBalances:
    def test_receivables_net_of_collections_per_bucket(self):
        rows = [
            Row(1, "invoice_out", date(2024, 6, 20), Decimal("1000.00"), "Acme"),
            Row(1, "invoice_out", date(2024, 3, 1), Decimal("500.00"), "Acme"),
            Row(1, "payment_in", date(2024, 6, 25), Decimal("300.00"), "Acme"),
            Row(1, "invoice_in", date(2024, 6, 1), Decimal("999.00"), "Acme"),
        ]

        report = age_receivables(rows, AS_OF)

        [line] = report.lines
        assert line.company_name == "Acme"
        assert line.amounts["0-30"] == Decimal("700.00")
        assert line.amounts["90+"] == Decimal("500.00")
        assert line.total == Decimal("1200.00")
        assert report.total_by_bucket()["0-30"] == Decimal("700.00")

    def test_settled_and_overpaid_counterparties_omitted(self):
        rows = [
            Row(1, "invoice_out", date(2024, 6, 1), Decimal("100.00")),
            Row(1, "payment_in", date(2024, 6, 2), Decimal("100.00")),
            Row(2, "invoice_out", date(2024, 6, 1), Decimal("100.00")),
            Row(2, "payment_in", date(2024, 6, 2), Decimal("150.00")),
        ]

        assert age_receivables(rows, AS_OF).lines == ()

    def test_largest_balance_first(self):
        rows = [
            Row(1, "invoice_in", date(2024, 6, 1), Decimal("100.00")),
            Row(2, "invoice_in", date(2024, 6, 1), Decimal("900.00")),
            Row(3, "invoice_in", date(2024, 6, 1), Decimal("100.00")),
        ]

        report = age_payables(rows, AS_OF)

        assert [line.company_id for line in report.lines] == [2, 1, 3]
        assert report.invoice_type == "invoice_in"
        assert report.total == Decimal("1100.00")

    def test_rows_without_company_ignored(self):
        rows = [Row(None, "invoice_out", date(2024, 6, 1), Decimal("100.00"))]
        assert age_open_balances(rows, AS_OF, TransactionType.INVOICE_OUT).lines == ()

    def test_payment_type_rejected_as_invoice_type(self):
        with pytest.raises(ValueError, match="not an invoice type"):
            age_open_balances([], AS_OF, TransactionType.PAYMENT_IN)
