"""
Module: ledger_engines.allocation
Responsibility:
    Match a payment against open invoices.  Computes FIFO candidate
    allocations and validates a proposed allocation set for one payment
    before it is persisted.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports kernel domain types, money helpers and exceptions only.

Invariants enforced:
    - Every candidate amount is > 0 and rounded to 2 decimal places.
    - FIFO never passes over an older invoice with remaining > 0 in favour
      of a younger one; ties on date fall back to id (insertion order).
    - Conservation: total_allocated + unallocated == payment amount.
    - A validated set never takes any invoice past its base amount (net of
      other payments' allocations) nor the payment past its own base amount.

Failure modes:
    - InvalidAmountError on a non-positive candidate or payment amount.
    - AllocationTypeMismatchError when the payment side is not a payment or
      the invoice type is not the one this payment type settles.
    - OverAllocationError naming the limit that was exceeded.

Usage:
    from ledger_engines.allocation import AllocationEngine

    engine = AllocationEngine()
    result = engine.auto_allocate_fifo(open_invoices, Decimal("5000.00"))
    for candidate in result.candidates:
        ...
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.transaction_types import traits_of
from ledger_kernel.exceptions import (
    AllocationTypeMismatchError,
    InvalidAmountError,
    OverAllocationError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class OpenItem(Protocol):
    """Anything offered to FIFO: an id, a date and what is still open."""

    id: int
    date: date
    remaining: Decimal


@dataclass(frozen=True)
class AllocationCandidate:
    """A proposed allocation of ``amount`` (base currency) to one invoice."""

    invoice_id: int
    amount: Decimal


@dataclass(frozen=True)
class FifoResult:
    """
    Outcome of a FIFO run.

    Guarantees:
        - ``total_allocated + unallocated == requested``.
        - ``candidates`` are in allocation order (oldest invoice first).
    """

    requested: Decimal
    candidates: tuple[AllocationCandidate, ...]
    total_allocated: Decimal
    unallocated: Decimal

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated == ZERO


@dataclass(frozen=True)
class PaymentSide:
    id: int
    type: str
    amount_in_base: Decimal


@dataclass(frozen=True)
class InvoiceSide:
    """
    An invoice as seen by validation.

    ``allocated_by_others`` is what payments other than the one being
    edited have already allocated to it.
    """

    id: int
    type: str
    amount_in_base: Decimal
    allocated_by_others: Decimal = ZERO

    @property
    def available(self) -> Decimal:
        return self.amount_in_base - self.allocated_by_others


class AllocationEngine:
    """
    Payment-to-invoice matching.

    Contract:
        Pure functions -- no I/O, no database access.  Identical inputs
        produce identical outputs.
    Non-goals:
        - Does not persist anything; AllocationService submits the result.
        - Does not choose which invoices are eligible; callers pass the
          open invoices of the right counterparty and type.
    """

    @traced_engine(
        "allocation.fifo", "1.0", fingerprint_fields=("open_invoices", "payment_amount")
    )
    def auto_allocate_fifo(
        self,
        open_invoices: Sequence[OpenItem],
        payment_amount: Decimal,
    ) -> FifoResult:
        """
        Distribute ``payment_amount`` over invoices oldest first.

        Each invoice receives ``round2(min(left, invoice.remaining))``;
        invoices with nothing remaining are skipped and the walk stops as
        soon as the payment is exhausted.
        """
        requested = round_money(payment_amount)
        if requested <= ZERO:
            raise InvalidAmountError(payment_amount, field="payment_amount")

        ordered = sorted(open_invoices, key=lambda inv: (inv.date, inv.id))
        left = requested
        candidates: list[AllocationCandidate] = []

        for invoice in ordered:
            if left <= ZERO:
                break
            remaining = round_money(invoice.remaining)
            if remaining <= ZERO:
                continue
            amount = round_money(min(left, remaining))
            candidates.append(AllocationCandidate(invoice_id=invoice.id, amount=amount))
            left -= amount

        total = requested - left
        logger.info(
            "fifo_allocation_computed",
            extra={
                "requested": str(requested),
                "total_allocated": str(total),
                "unallocated": str(left),
                "candidate_count": len(candidates),
                "open_invoice_count": len(ordered),
            },
        )
        return FifoResult(
            requested=requested,
            candidates=tuple(candidates),
            total_allocated=total,
            unallocated=left,
        )

    @traced_engine(
        "allocation.validate", "1.0", fingerprint_fields=("payment", "candidates")
    )
    def validate_allocation_batch(
        self,
        payment: PaymentSide,
        candidates: Sequence[AllocationCandidate],
        invoices: Mapping[int, InvoiceSide],
    ) -> tuple[AllocationCandidate, ...]:
        """
        Check a whole replacement set for one payment.

        Candidates naming the same invoice are merged, so the result holds
        one entry per invoice in first-seen order, ready to insert under the
        (payment, invoice) uniqueness rule.

        Raises:
            InvalidAmountError: a candidate amount is not > 0.
            AllocationTypeMismatchError: wrong side types or direction.
            OverAllocationError: an invoice or the payment would be exceeded.
        """
        payment_traits = traits_of(payment.type)
        if not payment_traits.is_payment:
            raise AllocationTypeMismatchError("payment side is not a payment")

        merged: dict[int, Decimal] = {}
        for candidate in candidates:
            amount = round_money(to_decimal(candidate.amount))
            if amount <= ZERO:
                raise InvalidAmountError(candidate.amount)
            invoice = invoices[candidate.invoice_id]
            invoice_traits = traits_of(invoice.type)
            if not invoice_traits.is_invoice:
                raise AllocationTypeMismatchError("invoice side is not an invoice")
            if not payment_traits.can_settle(invoice.type):
                raise AllocationTypeMismatchError(
                    f"{payment.type} cannot settle {invoice.type}"
                )
            merged[candidate.invoice_id] = merged.get(candidate.invoice_id, ZERO) + amount

        for invoice_id, total in merged.items():
            available = invoices[invoice_id].available
            if total > available:
                logger.warning(
                    "allocation_rejected",
                    extra={
                        "invariant": "invoice_remaining",
                        "limit": str(available),
                        "requested": str(total),
                    },
                )
                raise OverAllocationError("invoice_remaining", available, total)

        batch_total = sum(merged.values(), ZERO)
        if batch_total > payment.amount_in_base:
            logger.warning(
                "allocation_rejected",
                extra={
                    "invariant": "payment_amount",
                    "limit": str(payment.amount_in_base),
                    "requested": str(batch_total),
                },
            )
            raise OverAllocationError("payment_amount", payment.amount_in_base, batch_total)

        return tuple(
            AllocationCandidate(invoice_id=invoice_id, amount=amount)
            for invoice_id, amount in merged.items()
        )
