"""
Tests for the Allocation Engine.

Covers:
- FIFO distribution, oldest invoice first
- Partial and exhausted payments
- Batch validation: limits, direction, merging, bad amounts
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.allocation import (
    AllocationCandidate,
    AllocationEngine,
    InvoiceSide,
    PaymentSide,
)
from ledger_kernel.domain.transaction_types import TransactionType, traits_of
from ledger_kernel.exceptions import (
    AllocationTypeMismatchError,
    ConstraintViolation,
    InvalidAmountError,
    OverAllocationError,
)


@dataclass(frozen=True)
class Open:
    id: int
    date: date
    remaining: Decimal


def D(value: str) -> Decimal:
    return Decimal(value)


class TestFifoAllocation:
    def setup_method(self):
        self.engine = AllocationEngine()

    def test_single_invoice_partially_paid(self):
        result = self.engine.auto_allocate_fifo([Open(1, date(2024, 1, 1), D("10000.00"))], D("6000.00"))

        assert result.candidates == (AllocationCandidate(1, D("6000.00")),)
        assert result.total_allocated == D("6000.00")
        assert result.unallocated == D("0.00")
        assert result.is_fully_allocated

    def test_oldest_first_regardless_of_input_order(self):
        invoices = [
            Open(3, date(2024, 3, 1), D("500.00")),
            Open(1, date(2024, 1, 1), D("300.00")),
            Open(2, date(2024, 2, 1), D("400.00")),
        ]

        result = self.engine.auto_allocate_fifo(invoices, D("800.00"))

        assert [c.invoice_id for c in result.candidates] == [1, 2, 3]
        assert [c.amount for c in result.candidates] == [D("300.00"), D("400.00"), D("100.00")]

    def test_same_date_ordered_by_id(self):
        invoices = [Open(9, date(2024, 1, 1), D("100.00")), Open(4, date(2024, 1, 1), D("100.00"))]

        result = self.engine.auto_allocate_fifo(invoices, D("150.00"))

        assert [c.invoice_id for c in result.candidates] == [4, 9]

    def test_payment_larger_than_all_open_invoices(self):
        invoices = [Open(1, date(2024, 1, 1), D("4000.00"))]

        result = self.engine.auto_allocate_fifo(invoices, D("5000.00"))

        assert result.candidates == (AllocationCandidate(1, D("4000.00")),)
        assert result.unallocated == D("1000.00")
        assert not result.is_fully_allocated

    def test_settled_invoices_skipped(self):
        invoices = [Open(1, date(2024, 1, 1), D("0.00")), Open(2, date(2024, 2, 1), D("50.00"))]

        result = self.engine.auto_allocate_fifo(invoices, D("20.00"))

        assert result.candidates == (AllocationCandidate(2, D("20.00")),)

    def test_no_open_invoices(self):
        result = self.engine.auto_allocate_fifo([], D("75.00"))

        assert result.candidates == ()
        assert result.unallocated == D("75.00")

    def test_stops_once_payment_exhausted(self):
        invoices = [Open(i, date(2024, 1, i), D("10.00")) for i in range(1, 6)]

        result = self.engine.auto_allocate_fifo(invoices, D("20.00"))

        assert len(result.candidates) == 2

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_payment_rejected(self, amount):
        with pytest.raises(InvalidAmountError):
            self.engine.auto_allocate_fifo([Open(1, date(2024, 1, 1), D("10.00"))], D(amount))

    def test_repeatable(self):
        invoices = [Open(2, date(2024, 2, 1), D("40.00")), Open(1, date(2024, 1, 1), D("25.50"))]

        first = self.engine.auto_allocate_fifo(invoices, D("50.00"))
        second = self.engine.auto_allocate_fifo(invoices, D("50.00"))

        assert first == second

    def test_emits_engine_trace(self, captured_logs):
        self.engine.auto_allocate_fifo([Open(1, date(2024, 1, 1), D("10.00"))], D("5.00"))

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert traces and traces[0]["engine_name"] == "allocation.fifo"


class TestValidateAllocationBatch:
    def setup_method(self):
        self.engine = AllocationEngine()
        self.payment = PaymentSide(id=10, type="payment_in", amount_in_base=D("5000.00"))
        self.invoices = {
            1: InvoiceSide(id=1, type="invoice_out", amount_in_base=D("3000.00")),
            2: InvoiceSide(
                id=2, type="invoice_out", amount_in_base=D("4000.00"), allocated_by_others=D("2500.00")
            ),
            3: InvoiceSide(id=3, type="invoice_in", amount_in_base=D("1000.00")),
        }

    def test_valid_batch_returned(self):
        result = self.engine.validate_allocation_batch(
            self.payment,
            [AllocationCandidate(1, D("3000.00")), AllocationCandidate(2, D("1500.00"))],
            self.invoices,
        )

        assert result == (AllocationCandidate(1, D("3000.00")), AllocationCandidate(2, D("1500.00")))

    def test_empty_batch_is_valid(self):
        assert self.engine.validate_allocation_batch(self.payment, [], self.invoices) == ()

    def test_duplicates_merged_in_first_seen_order(self):
        result = self.engine.validate_allocation_batch(
            self.payment,
            [
                AllocationCandidate(2, D("500.00")),
                AllocationCandidate(1, D("100.00")),
                AllocationCandidate(2, D("700.00")),
            ],
            self.invoices,
        )

        assert result == (AllocationCandidate(2, D("1200.00")), AllocationCandidate(1, D("100.00")))

    def test_cumulative_amount_over_invoice_remaining(self):
        with pytest.raises(OverAllocationError) as exc_info:
            self.engine.validate_allocation_batch(
                self.payment,
                [AllocationCandidate(2, D("1000.00")), AllocationCandidate(2, D("600.00"))],
                self.invoices,
            )

        assert exc_info.value.invariant == "invoice_remaining"
        assert exc_info.value.limit == D("1500.00")
        assert "invoice remaining balance" in str(exc_info.value)
        assert isinstance(exc_info.value, ConstraintViolation)

    def test_sum_over_payment_amount(self):
        payment = PaymentSide(id=10, type="payment_in", amount_in_base=D("3500.00"))

        with pytest.raises(OverAllocationError) as exc_info:
            self.engine.validate_allocation_batch(
                payment,
                [AllocationCandidate(1, D("3000.00")), AllocationCandidate(2, D("1000.00"))],
                self.invoices,
            )

        assert exc_info.value.invariant == "payment_amount"

    def test_wrong_direction_rejected(self):
        with pytest.raises(AllocationTypeMismatchError, match="cannot settle invoice_in"):
            self.engine.validate_allocation_batch(
                self.payment, [AllocationCandidate(3, D("10.00"))], self.invoices
            )

    def test_invoice_side_must_be_invoice(self):
        invoices = {4: InvoiceSide(id=4, type="payment_out", amount_in_base=D("10.00"))}

        with pytest.raises(AllocationTypeMismatchError, match="invoice side"):
            self.engine.validate_allocation_batch(
                self.payment, [AllocationCandidate(4, D("10.00"))], invoices
            )

    def test_payment_side_must_be_payment(self):
        invoice_as_payment = PaymentSide(id=1, type="invoice_out", amount_in_base=D("10.00"))

        with pytest.raises(AllocationTypeMismatchError, match="payment side"):
            self.engine.validate_allocation_batch(invoice_as_payment, [], self.invoices)

    @pytest.mark.parametrize("amount", ["0.00", "-1.00", "0.004"])
    def test_non_positive_candidate_rejected(self, amount):
        with pytest.raises(InvalidAmountError):
            self.engine.validate_allocation_batch(
                self.payment, [AllocationCandidate(1, D(amount))], self.invoices
            )

    def test_amounts_accepted_as_strings(self):
        result = self.engine.validate_allocation_batch(
            self.payment, [AllocationCandidate(1, "12.345")], self.invoices
        )

        assert result == (AllocationCandidate(1, D("12.35")),)


class TestSettlementDirection:
    SETTLES = {("payment_in", "invoice_out"), ("payment_out", "invoice_in")}

    @pytest.mark.parametrize("payment_type", [t.value for t in TransactionType])
    @pytest.mark.parametrize("invoice_type", [t.value for t in TransactionType])
    def test_only_matching_side_can_settle(self, payment_type, invoice_type):
        expected = (payment_type, invoice_type) in self.SETTLES
        assert traits_of(payment_type).can_settle(invoice_type) is expected
        assert traits_of(payment_type).can_settle(TransactionType(invoice_type)) is expected

    def test_payment_out_settles_purchase_invoice(self):
        payment = PaymentSide(id=9, type="payment_out", amount_in_base=D("50.00"))
        invoices = {3: InvoiceSide(id=3, type="invoice_in", amount_in_base=D("80.00"))}

        result = AllocationEngine().validate_allocation_batch(
            payment, [AllocationCandidate(3, D("50.00"))], invoices
        )

        assert result == (AllocationCandidate(3, D("50.00")),)
