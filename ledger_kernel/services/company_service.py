"""
CompanyService -- counterparties and their cascading delete.

Responsibility:
    Create, partially update, list and delete companies.  Deleting a
    company takes its client projects, every transaction that references
    the company or one of those projects, and every allocation touching
    those transactions into a single trash entry.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - kind and role are closed sets (ValidationError before the flush).
    - A delete is all-or-nothing and produces exactly one trash entry.
"""

from __future__ import annotations

from sqlalchemy import func, or_, select

from ledger_kernel.domain.dtos import CompanyInfo, RelatedCounts, TrashEntryInfo
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.company import Company, CompanyKind, CompanyRole
from ledger_kernel.models.project import Project
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.trash_service import TrashService

logger = get_logger("services.company")

_TEXT_FIELDS = frozenset(
    {
        "national_id",
        "profession",
        "tax_office",
        "tax_number",
        "trade_registry_no",
        "contact_person",
        "phone",
        "email",
        "address",
        "bank_name",
        "iban",
        "notes",
    }
)
UPDATABLE_FIELDS = _TEXT_FIELDS | {"kind", "role", "name", "is_active"}


class CompanyService(BaseService[Company]):
    """All public methods return CompanyInfo DTOs, not ORM instances."""

    model = Company
    entity_name = "company"

    def _to_dto(self, company: Company) -> CompanyInfo:
        return CompanyInfo(
            id=company.id,
            kind=company.kind,
            role=company.role,
            name=company.name,
            national_id=company.national_id,
            profession=company.profession,
            tax_office=company.tax_office,
            tax_number=company.tax_number,
            trade_registry_no=company.trade_registry_no,
            contact_person=company.contact_person,
            phone=company.phone,
            email=company.email,
            address=company.address,
            bank_name=company.bank_name,
            iban=company.iban,
            notes=company.notes,
            is_active=company.is_active,
            created_at=company.created_at,
            updated_at=company.updated_at,
        )

    def get(self, company_id: int) -> CompanyInfo:
        """
        Get a company by id.

        Raises:
            NotFoundError: If the company doesn't exist.
        """
        return self._to_dto(self._get(company_id))

    def list(
        self,
        role: str | None = None,
        active_only: bool = True,
        search: str | None = None,
    ) -> list[CompanyInfo]:
        """Companies ordered by name, then id."""
        stmt = select(Company)
        if role is not None:
            stmt = stmt.where(Company.role == self._enum_value(CompanyRole, role, "role"))
        if active_only:
            stmt = stmt.where(Company.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Company.name.ilike(pattern),
                    Company.contact_person.ilike(pattern),
                    Company.tax_number.ilike(pattern),
                )
            )
        stmt = stmt.order_by(Company.name, Company.id)
        return [self._to_dto(c) for c in self.session.execute(stmt).scalars()]

    def create(self, name: str, kind: str, role: str, **fields) -> CompanyInfo:
        """
        Create a company.

        Args:
            name: Display name.
            kind: ``person`` or ``organization``.
            role: ``customer``, ``supplier``, ``subcontractor`` or ``investor``.
            **fields: Optional identity/contact fields and ``is_active``.
        """
        self._reject_unknown_fields(fields, _TEXT_FIELDS | {"is_active"})
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        now = self.clock.now()
        company = Company(
            name=name.strip(),
            kind=self._enum_value(CompanyKind, kind, "kind"),
            role=self._enum_value(CompanyRole, role, "role"),
            is_active=fields.pop("is_active", True),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.session.add(company)
        self._flush()
        self._mark_dirty()
        logger.info("company_created", extra={"company_id": company.id, "role": company.role})
        return self._to_dto(company)

    def update(self, company_id: int, **fields) -> CompanyInfo:
        """Partial update: only the given fields change."""
        self._reject_unknown_fields(fields, UPDATABLE_FIELDS)
        company = self._get(company_id)
        if "kind" in fields:
            fields["kind"] = self._enum_value(CompanyKind, fields["kind"], "kind")
        if "role" in fields:
            fields["role"] = self._enum_value(CompanyRole, fields["role"], "role")
        if "name" in fields:
            if not fields["name"] or not fields["name"].strip():
                raise ValidationError("name is required", field="name")
            fields["name"] = fields["name"].strip()
        for key, value in fields.items():
            setattr(company, key, value)
        company.updated_at = self.clock.now()
        self._flush()
        self._mark_dirty()
        logger.info(
            "company_updated",
            extra={"company_id": company_id, "fields": sorted(fields)},
        )
        return self._to_dto(company)

    def _cascade(self, company_id: int) -> tuple[list[Project], list[Transaction], list[PaymentAllocation]]:
        projects = list(
            self.session.execute(
                select(Project).where(Project.client_company_id == company_id)
            ).scalars()
        )
        project_ids = [p.id for p in projects]
        tx_filter = Transaction.company_id == company_id
        if project_ids:
            tx_filter = or_(tx_filter, Transaction.project_id.in_(project_ids))
        transactions = list(self.session.execute(select(Transaction).where(tx_filter)).scalars())
        tx_ids = [t.id for t in transactions]
        allocations: list[PaymentAllocation] = []
        if tx_ids:
            allocations = list(
                self.session.execute(
                    select(PaymentAllocation).where(
                        or_(
                            PaymentAllocation.payment_id.in_(tx_ids),
                            PaymentAllocation.invoice_id.in_(tx_ids),
                        )
                    )
                ).scalars()
            )
        return projects, transactions, allocations

    def related_counts(self, company_id: int) -> RelatedCounts:
        """What a delete of this company would remove along with it."""
        self._get(company_id)
        projects, transactions, allocations = self._cascade(company_id)
        return RelatedCounts(
            client_projects=len(projects),
            transactions=len(transactions),
            allocations=len(allocations),
        )

    def delete(self, company_id: int) -> TrashEntryInfo:
        """Move the company and everything that cascades from it to trash."""
        company = self._get(company_id)
        projects, transactions, allocations = self._cascade(company_id)
        return TrashService(self.session, self.clock).move_to_trash(
            "company",
            company,
            company.name,
            {
                Company: [company],
                Project: projects,
                Transaction: transactions,
                PaymentAllocation: allocations,
            },
        )

    def count_active(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(Company).where(Company.is_active.is_(True))
        ).scalar_one()
