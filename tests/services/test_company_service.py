"""
Tests for CompanyService.

Covers:
- create / update validation
- list filters and ordering
- cascading delete into a single trash entry
"""

from datetime import date

import pytest

from ledger_kernel.exceptions import NotFoundError, ValidationError


class TestCreateCompany:
    def test_create_returns_dto(self, store, clock, captured_logs):
        company = store.companies.create(
            " Acme Yapi ", "organization", "customer", tax_number="1234567890", phone="0212"
        )

        assert company.id is not None
        assert company.name == "Acme Yapi"
        assert company.tax_number == "1234567890"
        assert company.is_active is True
        assert company.created_at == clock.now()
        assert any(r["message"] == "company_created" for r in captured_logs())

    def test_invalid_role(self, store):
        with pytest.raises(ValidationError, match="role must be one of"):
            store.companies.create("X", "organization", "landlord")

    def test_invalid_kind(self, store):
        with pytest.raises(ValidationError) as exc_info:
            store.companies.create("X", "robot", "customer")
        assert exc_info.value.field == "kind"

    def test_blank_name(self, store):
        with pytest.raises(ValidationError, match="name is required"):
            store.companies.create("   ", "person", "customer")

    def test_unknown_field(self, store):
        with pytest.raises(ValidationError, match="Unknown or read-only field: created_at"):
            store.companies.create("X", "person", "customer", created_at=None)

    def test_create_marks_session_dirty(self, db, store):
        store.companies.create("X", "person", "investor")
        db.commit()
        assert db.is_dirty()


class TestUpdateCompany:
    def test_partial_update(self, store, make_company, clock):
        company = make_company(phone="111")
        clock.advance(60)

        updated = store.companies.update(company.id, role="supplier", email="info@acme.test")

        assert updated.role == "supplier"
        assert updated.email == "info@acme.test"
        assert updated.phone == "111"
        assert updated.updated_at > company.updated_at

    def test_missing_company(self, store):
        with pytest.raises(NotFoundError, match="company not found: 999"):
            store.companies.update(999, phone="1")

    def test_id_is_read_only(self, store, make_company):
        company = make_company()
        with pytest.raises(ValidationError):
            store.companies.update(company.id, id=42)


class TestListCompanies:
    def test_filters_and_order(self, store, make_company):
        make_company("Zeta Beton", role="supplier")
        make_company("Alfa Insaat", role="customer", contact_person="Ayse Kaya")
        make_company("Beta Mimarlik", role="customer", is_active=False)

        assert [c.name for c in store.companies.list()] == ["Alfa Insaat", "Zeta Beton"]
        assert [c.name for c in store.companies.list(role="customer", active_only=False)] == [
            "Alfa Insaat",
            "Beta Mimarlik",
        ]
        assert [c.name for c in store.companies.list(search="kaya")] == ["Alfa Insaat"]
        assert store.companies.count_active() == 2


class TestDeleteCompany:
    def test_related_counts(self, store, customer, make_project, add_tx):
        project = make_project("Villa", ownership="client", client_company_id=customer.id)
        inv = add_tx("invoice_out", "1000.00", company_id=customer.id)
        pay = add_tx("payment_in", "400.00", company_id=customer.id)
        add_tx("invoice_in", "50.00", scope="project", project_id=project.id)
        store.allocations.set_allocations_for_payment(
            pay.id, [{"invoice_id": inv.id, "amount": "400.00"}]
        )

        counts = store.companies.related_counts(customer.id)

        assert counts.client_projects == 1
        assert counts.transactions == 3
        assert counts.allocations == 1

    def test_delete_moves_everything_to_one_trash_entry(
        self, store, customer, supplier, make_project, add_tx
    ):
        project = make_project("Villa", ownership="client", client_company_id=customer.id)
        add_tx("invoice_out", "1000.00", company_id=customer.id)
        add_tx("invoice_in", "50.00", scope="project", project_id=project.id)
        kept = add_tx("invoice_in", "75.00", company_id=supplier.id, on=date(2024, 2, 1))

        entry = store.companies.delete(customer.id)

        assert entry.entry_type == "company"
        assert entry.label == "Acme Yapi"
        assert entry.row_counts == {"companies": 1, "projects": 1, "transactions": 2}
        assert len(store.trash.list()) == 1
        with pytest.raises(NotFoundError):
            store.companies.get(customer.id)
        with pytest.raises(NotFoundError):
            store.projects.get(project.id)
        assert store.transactions.get(kept.id).amount_in_base == kept.amount_in_base
