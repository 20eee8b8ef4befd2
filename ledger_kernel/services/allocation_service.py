"""
AllocationService -- the persistent half of payment matching.

Responsibility:
    Offers open invoices for a company or project, runs FIFO through the
    pure AllocationEngine, and replaces a payment's allocation set as one
    unit.

Architecture position:
    Kernel > Services.  Imports the pure engine from ledger_engines.

Invariants enforced:
    - payment_allocations rows are written only by
      ``set_allocations_for_payment``, always as a full replacement of one
      payment's set inside a SAVEPOINT.
    - After any successful call, every invoice and every payment has
      allocations summing to at most its amount_in_base.
    - A rejected set leaves the payment's previous allocations in place.

Failure modes:
    - NotFoundError for an unknown payment or invoice.
    - AllocationTypeMismatchError for wrong types or direction.
    - InvalidAmountError for a non-positive candidate amount.
    - OverAllocationError naming the limit that would be exceeded.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal

from sqlalchemy import delete, select

from ledger_engines.allocation import (
    AllocationCandidate,
    AllocationEngine,
    FifoResult,
    InvoiceSide,
    OpenItem,
    PaymentSide,
)
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import AllocationInfo, OpenInvoice
from ledger_kernel.domain.transaction_types import INVOICE_TYPES, traits_of
from ledger_kernel.exceptions import (
    AllocationTypeMismatchError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.transaction import Transaction, TransactionScope
from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.allocation")

ENTITY_KINDS = ("company", "project")

_INVOICE_VALUES = tuple(t.value for t in INVOICE_TYPES)


def _as_candidate(item: AllocationCandidate | Mapping) -> AllocationCandidate:
    if isinstance(item, AllocationCandidate):
        return item
    try:
        return AllocationCandidate(invoice_id=item["invoice_id"], amount=item["amount"])
    except KeyError as exc:
        raise ValidationError(f"allocation is missing {exc.args[0]}", field=exc.args[0]) from None


class AllocationService(BaseService[PaymentAllocation]):
    """
    Payment-to-invoice allocations.

    Contract:
        Works inside the caller's transaction.  Flushes, never commits.
    """

    model = PaymentAllocation
    entity_name = "allocation"

    def __init__(self, session, clock=None, engine: AllocationEngine | None = None):
        super().__init__(session, clock)
        self.engine = engine or AllocationEngine()
        self.selector = AllocationSelector(session)

    def _transaction(self, transaction_id: int, entity_type: str) -> Transaction:
        tx = self.session.get(Transaction, transaction_id)
        if tx is None:
            raise NotFoundError(entity_type, transaction_id)
        return tx

    def get_open_invoices(
        self,
        entity_id: int,
        entity_kind: str,
        invoice_type: str,
        exclude_payment_id: int | None = None,
    ) -> list[OpenInvoice]:
        """
        Invoices of ``invoice_type`` for a company or project that still
        have something left to settle, oldest first (date, then id).

        With ``exclude_payment_id`` the remaining balances ignore that
        payment's own allocations, as if it were released.
        """
        if entity_kind not in ENTITY_KINDS:
            raise ValidationError(
                f"entity_kind must be one of {', '.join(ENTITY_KINDS)}", field="entity_kind"
            )
        if invoice_type not in _INVOICE_VALUES:
            raise ValidationError(
                f"invoice_type must be one of {', '.join(_INVOICE_VALUES)}", field="invoice_type"
            )
        column = Transaction.company_id if entity_kind == "company" else Transaction.project_id
        invoices = list(
            self.session.execute(
                select(Transaction)
                .where(column == entity_id, Transaction.type == invoice_type)
                .order_by(Transaction.date, Transaction.id)
            ).scalars()
        )
        allocated = self.selector.allocated_by_invoice(
            [inv.id for inv in invoices], exclude_payment_id=exclude_payment_id
        )

        result = []
        for inv in invoices:
            used = allocated.get(inv.id, ZERO)
            remaining = inv.amount_in_base - used
            if remaining <= ZERO:
                continue
            result.append(
                OpenInvoice(
                    id=inv.id,
                    type=inv.type,
                    date=inv.date,
                    description=inv.description,
                    document_no=inv.document_no,
                    amount_in_base=inv.amount_in_base,
                    allocated=used,
                    remaining=remaining,
                )
            )
        return result

    def auto_allocate_fifo(
        self,
        open_invoices: Sequence[OpenItem],
        payment_amount: Decimal,
    ) -> FifoResult:
        """Candidate allocations, oldest invoice first.  Persists nothing."""
        return self.engine.auto_allocate_fifo(open_invoices, payment_amount)

    def set_allocations_for_payment(
        self,
        payment_id: int,
        allocations: Sequence[AllocationCandidate | Mapping],
    ) -> list[AllocationInfo]:
        """
        Replace the whole allocation set of one payment.

        An empty sequence clears the payment's allocations.  Candidates for
        the same invoice are merged into one row.

        Raises:
            NotFoundError: Unknown payment or invoice.
            AllocationTypeMismatchError: Wrong types or direction.
            InvalidAmountError: A candidate amount is not > 0.
            OverAllocationError: An invoice or the payment would be exceeded.
        """
        payment = self._transaction(payment_id, "payment")
        if not payment.is_payment:
            raise AllocationTypeMismatchError("payment side is not a payment")

        candidates = [_as_candidate(item) for item in allocations]
        invoice_ids = sorted({c.invoice_id for c in candidates})
        rows: dict[int, Transaction] = {}
        if invoice_ids:
            stmt = select(Transaction).where(Transaction.id.in_(invoice_ids))
            rows = {tx.id: tx for tx in self.session.execute(stmt).scalars()}
        for invoice_id in invoice_ids:
            if invoice_id not in rows:
                raise NotFoundError("invoice", invoice_id)

        others = self.selector.allocated_by_invoice(invoice_ids, exclude_payment_id=payment_id)
        invoices = {
            inv.id: InvoiceSide(
                id=inv.id,
                type=inv.type,
                amount_in_base=inv.amount_in_base,
                allocated_by_others=others.get(inv.id, ZERO),
            )
            for inv in rows.values()
        }
        validated = self.engine.validate_allocation_batch(
            PaymentSide(id=payment.id, type=payment.type, amount_in_base=payment.amount_in_base),
            candidates,
            invoices,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.execute(
                delete(PaymentAllocation)
                .where(PaymentAllocation.payment_id == payment_id)
                .execution_options(synchronize_session="fetch")
            )
            now = self.clock.now()
            for candidate in validated:
                self.session.add(
                    PaymentAllocation(
                        payment_id=payment_id,
                        invoice_id=candidate.invoice_id,
                        amount=candidate.amount,
                        created_at=now,
                    )
                )
            self._flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        self._mark_dirty()
        logger.info(
            "allocation_set_replaced",
            extra={
                "payment_id": payment_id,
                "allocation_count": len(validated),
                "total": str(sum((c.amount for c in validated), ZERO)),
            },
        )
        return self.get_allocations_for_payment(payment_id)

    def get_allocations_for_payment(self, payment_id: int) -> list[AllocationInfo]:
        """Allocations of one payment with the invoice side denormalized."""
        return self.selector.for_payment(payment_id)

    def get_allocations_for_invoice(self, invoice_id: int) -> list[AllocationInfo]:
        """Payments settling one invoice with the payment side denormalized."""
        return self.selector.for_invoice(invoice_id)

    def auto_allocate_payment(self, payment_id: int) -> FifoResult:
        """
        FIFO-allocate a payment against its own counterparty and submit it.

        A project-scope payment is matched against open invoices of its
        project, any other payment against those of its company.  The
        payment's existing allocations are released first, so repeated
        calls give the same result.
        """
        payment = self._transaction(payment_id, "payment")
        traits = traits_of(payment.type)
        if not traits.is_payment:
            raise AllocationTypeMismatchError("payment side is not a payment")

        if payment.scope == TransactionScope.PROJECT:
            entity_id, entity_kind = payment.project_id, "project"
        else:
            entity_id, entity_kind = payment.company_id, "company"
        if entity_id is None:
            raise ValidationError(
                "payment has no company to allocate against", field="company_id"
            )

        open_invoices = self.get_open_invoices(
            entity_id, entity_kind, traits.settles.value, exclude_payment_id=payment_id
        )
        result = self.auto_allocate_fifo(open_invoices, payment.amount_in_base)
        self.set_allocations_for_payment(payment_id, result.candidates)
        logger.info(
            "payment_auto_allocated",
            extra={
                "payment_id": payment_id,
                "entity_kind": entity_kind,
                "total_allocated": str(result.total_allocated),
                "unallocated": str(result.unallocated),
            },
        )
        return result

    def allocated_by_payment(self, ids=None) -> dict[int, Decimal]:
        return self.selector.allocated_by_payment(ids)

    def allocated_by_invoice(self, ids=None) -> dict[int, Decimal]:
        return self.selector.allocated_by_invoice(ids)

