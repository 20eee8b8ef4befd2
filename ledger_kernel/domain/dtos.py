"""
Data Transfer Objects for the ledger kernel.

Responsibility:
    Immutable value objects returned by services and selectors.  Callers
    never receive ORM instances, so nothing outside a transaction scope can
    lazily touch the database or mutate a row by accident.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from ledger_kernel.domain.transaction_types import TypeTraits, traits_of

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CompanyInfo:
    id: int
    kind: str
    role: str
    name: str
    national_id: str | None
    profession: str | None
    tax_office: str | None
    tax_number: str | None
    trade_registry_no: str | None
    contact_person: str | None
    phone: str | None
    email: str | None
    address: str | None
    bank_name: str | None
    iban: str | None
    notes: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ProjectInfo:
    id: int
    code: str
    name: str
    ownership: str
    client_company_id: int | None
    status: str
    project_kind: str | None
    location: str | None
    total_area: Decimal | None
    unit_count: int | None
    estimated_budget: Decimal | None
    planned_start: date | None
    planned_end: date | None
    actual_start: date | None
    actual_end: date | None
    description: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    client_name: str | None = None


@dataclass(frozen=True)
class CategoryInfo:
    id: int
    name: str
    type: str
    color: str
    is_default: bool


@dataclass(frozen=True)
class TransactionInfo:
    """
    One transaction as seen by balances and the presentation layer.

    ``allocated_amount`` is the base-currency sum of allocations on the
    side this transaction sits: for a payment, what it has been matched
    against invoices; for an invoice, what payments have settled of it.
    """

    id: int
    scope: str
    company_id: int | None
    project_id: int | None
    type: str
    category_id: int | None
    date: date
    description: str
    amount: Decimal
    currency: str
    exchange_rate: Decimal
    amount_in_base: Decimal
    document_no: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    allocated_amount: Decimal = ZERO
    company_name: str | None = None
    project_name: str | None = None
    category_name: str | None = None
    category_color: str | None = None

    @property
    def traits(self) -> TypeTraits:
        return traits_of(self.type)

    @property
    def unallocated_amount(self) -> Decimal:
        return max(ZERO, self.amount_in_base - self.allocated_amount)


@dataclass(frozen=True)
class TransactionFilters:
    """List filters; every field is optional and the filters combine with AND."""

    scope: str | None = None
    type: str | None = None
    company_id: int | None = None
    project_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    search: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class OpenInvoice:
    """Invoice with a positive remaining balance, as offered for allocation."""

    id: int
    type: str
    date: date
    description: str
    document_no: str | None
    amount_in_base: Decimal
    allocated: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class AllocationInfo:
    """Allocation row with both sides denormalized for display."""

    id: int
    payment_id: int
    invoice_id: int
    amount: Decimal
    created_at: datetime
    invoice_date: date
    invoice_description: str
    invoice_document_no: str | None
    invoice_amount_in_base: Decimal
    payment_date: date
    payment_description: str
    payment_document_no: str | None
    payment_amount_in_base: Decimal


@dataclass(frozen=True)
class TrashEntryInfo:
    id: int
    entry_type: str
    entity_id: int
    label: str
    deleted_at: datetime
    row_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RelatedCounts:
    """What a company delete would take with it."""

    client_projects: int
    transactions: int
    allocations: int
