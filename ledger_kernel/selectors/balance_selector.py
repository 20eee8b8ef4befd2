"""
Module: ledger_kernel.selectors.balance_selector
Responsibility: Load the transactions behind each ledger view and run the
    pure calculators from ledger_engines over them.
Architecture position: Kernel > Selectors.  Imports ledger_engines.

Invariants enforced:
    - No figure is stored.  Every balance is recomputed from transactions
      and allocation sums on each call.
    - Company figures include every transaction that names the company,
      whatever its scope.  Project figures include every transaction that
      names the project.

Failure modes:
    - NotFoundError for an unknown company or project.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from ledger_engines.aging import AgingReport, age_payables, age_receivables
from ledger_engines.balances import (
    CompanyLedger,
    DashboardTotals,
    ProjectLedger,
    TransactionTotals,
    calculate_company_ledger,
    calculate_dashboard_totals,
    calculate_project_ledger,
    calculate_transaction_totals,
)
from ledger_engines.cash_flow import (
    CashFlowMonth,
    MonthlyTotals,
    cash_flow_report,
    monthly_totals,
)
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import TransactionFilters
from ledger_kernel.domain.transaction_types import Flow, traits_of
from ledger_kernel.exceptions import NotFoundError
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import Project, ProjectStatus
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector

UNCATEGORIZED = "Uncategorized"


def _group_by_company(rows) -> dict[int, list]:
    groups: dict[int, list] = {}
    for tx in rows:
        if tx.company_id is not None:
            groups.setdefault(tx.company_id, []).append(tx)
    return groups


@dataclass(frozen=True)
class DashboardSummary:
    """Firm-wide totals plus the counts and open balances shown beside them."""

    totals: DashboardTotals
    active_projects: int
    active_companies: int
    total_receivables: Decimal
    total_payables: Decimal


@dataclass(frozen=True)
class CounterpartyBalance:
    company_id: int
    name: str
    role: str
    ledger: CompanyLedger


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: int | None
    category: str
    color: str | None
    total: Decimal
    count: int


class BalanceSelector(BaseSelector):
    """Read-only ledger views over TransactionInfo rows."""

    def __init__(self, session):
        super().__init__(session)
        self.transactions = TransactionSelector(session)

    def company_ledger(self, company_id: int) -> CompanyLedger:
        """
        Running (cari) account of one company.

        Raises:
            NotFoundError: If the company doesn't exist.
        """
        if self.session.get(Company, company_id) is None:
            raise NotFoundError("company", company_id)
        return calculate_company_ledger(self.transactions.for_company(company_id))

    def project_ledger(self, project_id: int) -> ProjectLedger:
        """
        Profitability and open exposure of one project.

        Raises:
            NotFoundError: If the project doesn't exist.
        """
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return calculate_project_ledger(
            self.transactions.for_project(project_id),
            ownership=project.ownership,
            estimated_budget=project.estimated_budget,
        )

    def transaction_totals(self, filters: TransactionFilters | None = None) -> TransactionTotals:
        """Totals row for a filtered transaction list (the limit is ignored)."""
        f = filters or TransactionFilters()
        unlimited = TransactionFilters(
            scope=f.scope,
            type=f.type,
            company_id=f.company_id,
            project_id=f.project_id,
            start_date=f.start_date,
            end_date=f.end_date,
            search=f.search,
        )
        return calculate_transaction_totals(self.transactions.list(unlimited))

    def companies_with_balance(self) -> list[CounterpartyBalance]:
        """Running account of every active company that has transactions, by name."""
        by_company = _group_by_company(self.transactions.list())
        if not by_company:
            return []
        companies = self.session.execute(
            select(Company)
            .where(Company.id.in_(list(by_company)), Company.is_active.is_(True))
            .order_by(Company.name, Company.id)
        ).scalars()
        return [
            CounterpartyBalance(
                company_id=c.id,
                name=c.name,
                role=c.role,
                ledger=calculate_company_ledger(by_company[c.id]),
            )
            for c in companies
        ]

    def top_debtors(self, limit: int = 5) -> list[CounterpartyBalance]:
        """Companies owing the most (receivable > 0), largest first."""
        rows = [b for b in self.companies_with_balance() if b.ledger.receivable > ZERO]
        rows.sort(key=lambda b: (-b.ledger.receivable, b.company_id))
        return rows[:limit]

    def top_creditors(self, limit: int = 5) -> list[CounterpartyBalance]:
        """Companies owed the most (payable > 0), largest first."""
        rows = [b for b in self.companies_with_balance() if b.ledger.payable > ZERO]
        rows.sort(key=lambda b: (-b.ledger.payable, b.company_id))
        return rows[:limit]

    def dashboard(self) -> DashboardSummary:
        rows = self.transactions.list()
        receivables = payables = ZERO
        for company_rows in _group_by_company(rows).values():
            ledger = calculate_company_ledger(company_rows)
            receivables += max(ZERO, ledger.receivable)
            payables += max(ZERO, ledger.payable)

        active_projects = len(
            self.session.execute(
                select(Project.id).where(
                    Project.is_active.is_(True),
                    Project.status == ProjectStatus.ACTIVE.value,
                )
            ).all()
        )
        active_companies = len(
            self.session.execute(select(Company.id).where(Company.is_active.is_(True))).all()
        )
        return DashboardSummary(
            totals=calculate_dashboard_totals(rows),
            active_projects=active_projects,
            active_companies=active_companies,
            total_receivables=receivables,
            total_payables=payables,
        )

    def receivables_aging(self, as_of: date) -> AgingReport:
        return age_receivables(self.transactions.list(), as_of)

    def payables_aging(self, as_of: date) -> AgingReport:
        return age_payables(self.transactions.list(), as_of)

    def monthly_totals(self, year: int) -> tuple[MonthlyTotals, ...]:
        return monthly_totals(self.transactions.list(), year)

    def cash_flow(self, year: int) -> tuple[CashFlowMonth, ...]:
        return cash_flow_report(self.transactions.list(), year)

    def project_expense_breakdown(self, project_id: int) -> list[CategoryBreakdown]:
        """
        Expense-side totals of one project grouped by category, largest
        first.  Uncategorized rows are grouped under one entry.
        """
        if self.session.get(Project, project_id) is None:
            raise NotFoundError("project", project_id)
        groups: dict[int | None, list] = {}
        for tx in self.transactions.for_project(project_id):
            if traits_of(tx.type).flow is Flow.EXPENSE:
                groups.setdefault(tx.category_id, []).append(tx)
        result = [
            CategoryBreakdown(
                category_id=category_id,
                category=txs[0].category_name or UNCATEGORIZED,
                color=txs[0].category_color,
                total=sum((t.amount_in_base for t in txs), ZERO),
                count=len(txs),
            )
            for category_id, txs in groups.items()
        ]
        result.sort(key=lambda b: (-b.total, b.category))
        return result
