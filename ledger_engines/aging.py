"""
Module: ledger_engines.aging
Responsibility:
    Classify counterparty balances into aging buckets by document date.
    Receivables age sales invoices net of collections; payables age
    purchase invoices net of payments.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Purity: the as-of date is a parameter; no clock access.
    - Decimal-only arithmetic.
    - For every counterparty, the bucket amounts sum to ``total``.
    - Only counterparties with a positive total are reported, largest first.

Failure modes:
    - ValueError when an age does not fall into any configured bucket
      (only possible with a malformed custom bucket sequence).

Usage:
    from ledger_engines.aging import age_receivables

    report = age_receivables(rows, as_of=date(2024, 6, 30))
    for line in report.lines:
        line.amounts["31-60"]
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.transaction_types import TransactionType, settled_by
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of ages in days.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days


STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-30", 0, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


class AgingRow(Protocol):
    company_id: int | None
    company_name: str | None
    type: str
    date: date
    amount_in_base: Decimal


@dataclass(frozen=True)
class CounterpartyAging:
    company_id: int
    company_name: str | None
    amounts: dict[str, Decimal]
    total: Decimal


@dataclass(frozen=True)
class AgingReport:
    as_of: date
    invoice_type: str
    buckets: tuple[AgeBucket, ...]
    lines: tuple[CounterpartyAging, ...] = field(default_factory=tuple)

    def total_by_bucket(self) -> dict[str, Decimal]:
        result = {b.name: ZERO for b in self.buckets}
        for line in self.lines:
            for name, amount in line.amounts.items():
                result[name] += amount
        return result

    @property
    def total(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO)


def calculate_age(document_date: date, as_of: date) -> int:
    """Age in days; negative for documents dated after ``as_of``."""
    return (as_of - document_date).days


def classify(age_days: int, buckets: Sequence[AgeBucket] = STANDARD_BUCKETS) -> AgeBucket:
    """
    Pick the bucket containing ``age_days``.

    Future-dated documents (negative age) fall into the youngest bucket.
    """
    if age_days < 0:
        return buckets[0]
    for bucket in buckets:
        if bucket.contains(age_days):
            return bucket
    logger.warning(
        "age_classification_no_bucket",
        extra={"age_days": age_days, "bucket_count": len(buckets)},
    )
    raise ValueError(f"Age {age_days} does not fit any bucket")


@traced_engine(
    "aging.open_balances", "1.0", fingerprint_fields=("rows", "as_of", "invoice_type")
)
def age_open_balances(
    rows: Iterable[AgingRow],
    as_of: date,
    invoice_type: TransactionType = TransactionType.INVOICE_OUT,
    buckets: Sequence[AgeBucket] = STANDARD_BUCKETS,
) -> AgingReport:
    """
    Bucket ``invoice_type`` amounts net of the payments that settle them.

    Each row lands in the bucket of its own date: invoices add, settling
    payments subtract.  Rows without a company and rows of other types are
    ignored.
    """
    invoice_type = TransactionType(invoice_type)
    payment_type = settled_by(invoice_type)
    per_company: dict[int, dict[str, Decimal]] = {}
    names: dict[int, str | None] = {}

    for row in rows:
        if row.company_id is None:
            continue
        if row.type == invoice_type.value:
            sign = 1
        elif row.type == payment_type.value:
            sign = -1
        else:
            continue
        bucket = classify(calculate_age(row.date, as_of), buckets)
        amounts = per_company.setdefault(row.company_id, {b.name: ZERO for b in buckets})
        amounts[bucket.name] += sign * row.amount_in_base
        names.setdefault(row.company_id, row.company_name)

    lines = [
        CounterpartyAging(
            company_id=company_id,
            company_name=names[company_id],
            amounts=amounts,
            total=sum(amounts.values(), ZERO),
        )
        for company_id, amounts in per_company.items()
    ]
    lines = [line for line in lines if line.total > ZERO]
    lines.sort(key=lambda line: (-line.total, line.company_id))

    return AgingReport(
        as_of=as_of,
        invoice_type=invoice_type.value,
        buckets=tuple(buckets),
        lines=tuple(lines),
    )


def age_receivables(rows: Iterable[AgingRow], as_of: date) -> AgingReport:
    """Sales invoices less collections, per customer."""
    return age_open_balances(rows, as_of, TransactionType.INVOICE_OUT)


def age_payables(rows: Iterable[AgingRow], as_of: date) -> AgingReport:
    """Purchase invoices less payments made, per supplier."""
    return age_open_balances(rows, as_of, TransactionType.INVOICE_IN)
