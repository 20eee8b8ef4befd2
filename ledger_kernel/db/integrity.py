"""
Read-only diagnostic scans over a ledger database.

Two entry points, both returning an IntegrityReport and never changing a
row:

    check_foreign_keys(connection)
        SQLite's own ``PRAGMA foreign_key_check``: dangling references.

    check_integrity(connection)
        ``PRAGMA integrity_check`` plus the ledger rules that no single
        CHECK constraint can see:

        invoice_over_allocated    sum of an invoice's allocations > its base
        payment_over_allocated    sum of a payment's allocations > its base
        allocation_direction      allocation links the wrong types
        amount_in_base_mismatch   stored base != round2(amount * rate)
        scope_reference           scope and company/project refs disagree

Violations are reported, not corrected.  They carry row ids because they
are meant for an operator, not for end users.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.engine import Connection

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.transaction_types import traits_of
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.integrity")


@dataclass(frozen=True)
class IntegrityViolation:
    check: str
    table: str
    row_id: int | None
    detail: str


@dataclass(frozen=True)
class IntegrityReport:
    violations: tuple[IntegrityViolation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.violations

    def by_check(self, check: str) -> tuple[IntegrityViolation, ...]:
        return tuple(v for v in self.violations if v.check == check)


def check_foreign_keys(connection: Connection) -> IntegrityReport:
    """Dangling foreign keys as reported by SQLite."""
    violations = []
    for table, rowid, parent, _fkid in connection.exec_driver_sql("PRAGMA foreign_key_check"):
        violations.append(
            IntegrityViolation(
                check="foreign_key",
                table=table,
                row_id=rowid,
                detail=f"references a missing {parent} row",
            )
        )
    report = IntegrityReport(tuple(violations))
    logger.info("foreign_key_check_completed", extra={"violation_count": len(violations)})
    return report


def _storage_check(connection: Connection) -> list[IntegrityViolation]:
    results = [row[0] for row in connection.exec_driver_sql("PRAGMA integrity_check")]
    if results == ["ok"]:
        return []
    return [
        IntegrityViolation(check="storage", table="", row_id=None, detail=message)
        for message in results
    ]


def _ledger_checks(connection: Connection) -> list[IntegrityViolation]:
    # Imported here so the db layer only needs the models when scanning.
    from ledger_kernel.models.allocation import PaymentAllocation
    from ledger_kernel.models.transaction import Transaction

    violations: list[IntegrityViolation] = []
    txs = {
        row.id: row
        for row in connection.execute(
            select(
                Transaction.id,
                Transaction.scope,
                Transaction.type,
                Transaction.company_id,
                Transaction.project_id,
                Transaction.amount,
                Transaction.exchange_rate,
                Transaction.amount_in_base,
            ).order_by(Transaction.id)
        )
    }

    for tx in txs.values():
        expected = round_money(tx.amount * tx.exchange_rate)
        if expected != tx.amount_in_base:
            violations.append(
                IntegrityViolation(
                    "amount_in_base_mismatch",
                    "transactions",
                    tx.id,
                    f"stored {tx.amount_in_base}, computed {expected}",
                )
            )
        scope_ok = (
            (tx.scope == "project" and tx.project_id is not None)
            or (tx.scope == "cari" and tx.company_id is not None and tx.project_id is None)
            or (tx.scope == "company" and tx.project_id is None)
        )
        if not scope_ok:
            violations.append(
                IntegrityViolation(
                    "scope_reference", "transactions", tx.id, f"scope {tx.scope} with wrong refs"
                )
            )

    by_invoice: dict[int, Decimal] = {}
    by_payment: dict[int, Decimal] = {}
    for alloc in connection.execute(
        select(
            PaymentAllocation.id,
            PaymentAllocation.payment_id,
            PaymentAllocation.invoice_id,
            PaymentAllocation.amount,
        ).order_by(PaymentAllocation.id)
    ):
        payment, invoice = txs.get(alloc.payment_id), txs.get(alloc.invoice_id)
        if payment is None or invoice is None:
            continue  # reported by the foreign key scan
        if not traits_of(payment.type).can_settle(invoice.type):
            violations.append(
                IntegrityViolation(
                    "allocation_direction",
                    "payment_allocations",
                    alloc.id,
                    f"{payment.type} allocated to {invoice.type}",
                )
            )
        by_invoice[alloc.invoice_id] = by_invoice.get(alloc.invoice_id, ZERO) + alloc.amount
        by_payment[alloc.payment_id] = by_payment.get(alloc.payment_id, ZERO) + alloc.amount

    for check, sums in (
        ("invoice_over_allocated", by_invoice),
        ("payment_over_allocated", by_payment),
    ):
        for tx_id, total in sorted(sums.items()):
            limit = txs[tx_id].amount_in_base
            if total > limit:
                violations.append(
                    IntegrityViolation(
                        check, "transactions", tx_id, f"allocated {total} of {limit}"
                    )
                )
    return violations


def check_integrity(connection: Connection) -> IntegrityReport:
    """Storage-level check plus the cross-row ledger rules."""
    violations = _storage_check(connection) + _ledger_checks(connection)
    if violations:
        logger.warning(
            "integrity_check_failed",
            extra={
                "violation_count": len(violations),
                "checks": sorted({v.check for v in violations}),
            },
        )
    else:
        logger.info("integrity_check_passed")
    return IntegrityReport(tuple(violations))
