"""ORM models for the ledger kernel."""

from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.category import Category
from ledger_kernel.models.company import Company, CompanyKind, CompanyRole
from ledger_kernel.models.project import (
    Project,
    ProjectKind,
    ProjectOwnership,
    ProjectStatus,
)
from ledger_kernel.models.schema_version import SchemaVersion
from ledger_kernel.models.transaction import Transaction, TransactionScope
from ledger_kernel.models.trash import TrashEntry

__all__ = [
    "Category",
    "Company",
    "CompanyKind",
    "CompanyRole",
    "PaymentAllocation",
    "Project",
    "ProjectKind",
    "ProjectOwnership",
    "ProjectStatus",
    "SchemaVersion",
    "Transaction",
    "TransactionScope",
    "TrashEntry",
]
