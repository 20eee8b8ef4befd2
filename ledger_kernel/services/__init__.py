"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.allocation_service import AllocationService
from ledger_kernel.services.category_service import CategoryService
from ledger_kernel.services.company_service import CompanyService
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.project_service import ProjectService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.trash_service import TrashService

__all__ = [
    "AllocationService",
    "CategoryService",
    "CompanyService",
    "LedgerStore",
    "ProjectService",
    "TransactionService",
    "TrashService",
]
