"""
Tests for BalanceSelector: the ledger views computed from stored rows.

No figure is stored, so every test writes transactions and allocations
and reads the view back.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.allocation import AllocationCandidate
from ledger_kernel.domain.dtos import TransactionFilters
from ledger_kernel.exceptions import NotFoundError


def D(value: str) -> Decimal:
    return Decimal(value)


class TestCompanyLedger:
    def test_every_payment_counts_in_full(self, store, customer, add_tx):
        add_tx("invoice_out", "10000.00", company_id=customer.id)
        add_tx("payment_in", "6000.00", company_id=customer.id)

        ledger = store.balances.company_ledger(customer.id)

        assert ledger.receivable == D("4000.00")
        assert ledger.balance == D("4000.00")

    def test_includes_project_rows_naming_the_company(self, store, supplier, make_project, add_tx):
        project = make_project()
        add_tx(
            "invoice_in", "700.00", scope="project", project_id=project.id, company_id=supplier.id
        )
        add_tx("invoice_in", "300.00", company_id=supplier.id)

        assert store.balances.company_ledger(supplier.id).payable == D("1000.00")

    def test_foreign_currency_counted_in_base(self, store, customer):
        store.transactions.create(
            "cari", "invoice_out", date(2024, 1, 1), "Export", D("100.00"),
            currency="EUR", exchange_rate="35", company_id=customer.id,
        )
        assert store.balances.company_ledger(customer.id).receivable == D("3500.00")

    def test_unknown_company(self, store):
        with pytest.raises(NotFoundError):
            store.balances.company_ledger(404)


class TestProjectLedger:
    def _client_project(self, store, customer, make_project, add_tx):
        project = make_project("Villa", ownership="client", client_company_id=customer.id)
        inv = add_tx(
            "invoice_out", "10000.00", scope="project", project_id=project.id,
            company_id=customer.id,
        )
        pay = add_tx(
            "payment_in", "6000.00", scope="project", project_id=project.id, company_id=customer.id
        )
        return project, inv, pay

    def test_allocated_collection(self, store, customer, make_project, add_tx):
        project, inv, pay = self._client_project(store, customer, make_project, add_tx)
        store.allocations.set_allocations_for_payment(
            pay.id, [AllocationCandidate(inv.id, D("6000.00"))]
        )

        ledger = store.balances.project_ledger(project.id)

        assert ledger.ownership == "client"
        assert ledger.client_receivable == D("4000.00")
        assert ledger.total_income == D("10000.00")

    def test_unallocated_collection(self, store, customer, make_project, add_tx):
        project, _, _ = self._client_project(store, customer, make_project, add_tx)

        ledger = store.balances.project_ledger(project.id)

        assert ledger.client_receivable == D("10000.00")
        assert ledger.independent_payment_in == D("6000.00")
        assert ledger.total_income == D("16000.00")

    def test_cross_project_allocation(self, store, supplier, make_project, add_tx):
        a = make_project("A")
        b = make_project("B")
        inv = add_tx(
            "invoice_in", "500.00", scope="project", project_id=a.id, company_id=supplier.id
        )
        pay = add_tx(
            "payment_out", "500.00", scope="project", project_id=b.id, company_id=supplier.id
        )
        store.allocations.set_allocations_for_payment(
            pay.id, [AllocationCandidate(inv.id, D("500.00"))]
        )

        # Project A sees no settling payment of its own; B's payment is matched.
        assert store.balances.project_ledger(a.id).project_debt == D("500.00")
        assert store.balances.project_ledger(b.id).independent_payment_out == D("0.00")
        assert store.balances.company_ledger(supplier.id).payable == D("0.00")

    def test_budget(self, store, make_project, add_tx):
        project = make_project("Tower", estimated_budget=D("20000.00"))
        add_tx("invoice_in", "5000.00", scope="project", project_id=project.id)

        ledger = store.balances.project_ledger(project.id)

        assert ledger.estimated_profit == D("15000.00")
        assert ledger.budget_used_pct == D("25.00")

    def test_expense_breakdown(self, store, make_project, add_tx):
        project = make_project()
        steel = store.categories.create("Site Steel", "invoice_in")
        add_tx("invoice_in", "100.00", scope="project", project_id=project.id, category_id=steel.id)
        add_tx("invoice_in", "250.00", scope="project", project_id=project.id, category_id=steel.id)
        add_tx("invoice_in", "50.00", scope="project", project_id=project.id)
        add_tx("payment_out", "75.00", scope="project", project_id=project.id)
        add_tx("invoice_out", "999.00", scope="project", project_id=project.id)

        breakdown = store.balances.project_expense_breakdown(project.id)

        assert [(b.category, b.total, b.count) for b in breakdown] == [
            ("Site Steel", D("350.00"), 2),
            ("Uncategorized", D("125.00"), 2),
        ]


class TestFirmWideViews:
    def _seed(self, store, customer, supplier, add_tx):
        add_tx("invoice_out", "5000.00", company_id=customer.id, on=date(2024, 1, 15))
        add_tx("payment_in", "2000.00", company_id=customer.id, on=date(2024, 2, 10))
        add_tx("invoice_in", "3000.00", company_id=supplier.id, on=date(2024, 1, 20))
        add_tx("payment_out", "3500.00", company_id=supplier.id, on=date(2024, 3, 5))
        add_tx("invoice_in", "400.00", scope="company", on=date(2024, 3, 6))

    def test_dashboard(self, store, customer, supplier, add_tx, make_project):
        self._seed(store, customer, supplier, add_tx)
        make_project("Live", status="active")

        summary = store.balances.dashboard()

        assert summary.totals.net_profit == D("1600.00")
        assert summary.totals.net_cash == D("-1500.00")
        assert summary.total_receivables == D("3000.00")
        assert summary.total_payables == D("0.00")
        assert summary.active_projects == 1
        assert summary.active_companies == 2

    def test_top_debtors_and_creditors(self, store, customer, supplier, make_company, add_tx):
        self._seed(store, customer, supplier, add_tx)
        other = make_company("Kuzey Tesisat", role="subcontractor")
        add_tx("invoice_in", "800.00", company_id=other.id)

        assert [b.name for b in store.balances.top_debtors()] == ["Acme Yapi"]
        assert [b.name for b in store.balances.top_creditors()] == ["Kuzey Tesisat"]

    def test_inactive_companies_left_out(self, store, customer, add_tx):
        add_tx("invoice_out", "5000.00", company_id=customer.id)
        store.companies.update(customer.id, is_active=False)

        assert store.balances.companies_with_balance() == []

    def test_transaction_totals_ignore_limit(self, store, customer, supplier, add_tx):
        self._seed(store, customer, supplier, add_tx)

        totals = store.balances.transaction_totals(
            TransactionFilters(company_id=customer.id, limit=1)
        )

        assert totals.count == 2
        assert totals.net_balance == D("7000.00")

    def test_aging_and_cash_flow(self, store, customer, supplier, add_tx):
        self._seed(store, customer, supplier, add_tx)

        aging = store.balances.receivables_aging(date(2024, 3, 31))
        [line] = aging.lines
        assert line.company_name == "Acme Yapi"
        assert line.amounts["61-90"] == D("5000.00")
        assert line.amounts["31-60"] == D("-2000.00")

        months = store.balances.cash_flow(2024)
        assert months[2].cumulative == D("-1500.00")
        assert store.balances.monthly_totals(2024)[0].expense == D("3000.00")
