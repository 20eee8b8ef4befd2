"""
LedgerStore -- one session's view of every ledger service.

Responsibility:
    Bundles the services and read selectors that share one Session, Clock
    and settings, so the transaction boundary can hand a single object to
    the callable it runs.

Architecture position:
    Kernel > Services.  Built by LedgerDatabase for each transaction or
    read scope; never outlives that scope.

Invariants enforced:
    - All members share the same Session, so a multi-step operation
      ("create a payment, then allocate it") lands or reverts as a whole.
    - Every mutation marks the session dirty; ``is_dirty`` reports it.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config.settings import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.allocation_service import AllocationService
from ledger_kernel.services.base import DIRTY_KEY
from ledger_kernel.services.category_service import CategoryService
from ledger_kernel.services.company_service import CompanyService
from ledger_kernel.services.project_service import ProjectService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.trash_service import TrashService


class LedgerStore:
    """
    Facade over the ledger services for one session.

    Usage:
        store = LedgerStore(session, clock, settings)
        company = store.companies.create("Acme", "organization", "customer")
        store.transactions.create(scope="cari", type="invoice_out", ...)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()

        self.companies = CompanyService(session, self.clock)
        self.projects = ProjectService(
            session, self.clock, code_prefix=self.settings.project_code_prefix
        )
        self.categories = CategoryService(session, self.clock)
        self.transactions = TransactionService(session, self.clock, self.settings)
        self.allocations = AllocationService(session, self.clock)
        self.trash = TrashService(session, self.clock)

        self.transaction_reads = TransactionSelector(session)
        self.allocation_reads = AllocationSelector(session)
        self.balances = BalanceSelector(session)

    @property
    def is_dirty(self) -> bool:
        return bool(self.session.info.get(DIRTY_KEY))
