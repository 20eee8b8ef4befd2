"""
ProjectService -- construction projects and their cascading delete.

Responsibility:
    Create (with generated code), partially update, list and delete
    projects.  Deleting a project moves it, its transactions and their
    allocations into one trash entry.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - code is unique; a duplicate raises DuplicateProjectCodeError before
      the flush rather than surfacing as a raw constraint failure.
    - A client project names an existing, active client company; an own
      project names none.
    - Generated codes follow ``<prefix>-<year>-NNN`` with NNN one past the
      highest code already issued for that year.
"""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import func, or_, select

from ledger_kernel.domain.dtos import ProjectInfo, TrashEntryInfo
from ledger_kernel.exceptions import (
    DuplicateProjectCodeError,
    InactiveReferenceError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import (
    Project,
    ProjectKind,
    ProjectOwnership,
    ProjectStatus,
)
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.trash_service import TrashService

logger = get_logger("services.project")

_OPTIONAL_FIELDS = frozenset(
    {
        "project_kind",
        "location",
        "total_area",
        "unit_count",
        "estimated_budget",
        "planned_start",
        "planned_end",
        "actual_start",
        "actual_end",
        "description",
        "is_active",
        "status",
    }
)
UPDATABLE_FIELDS = _OPTIONAL_FIELDS | {"code", "name", "ownership", "client_company_id"}

CODE_SEQUENCE_WIDTH = 3


class ProjectService(BaseService[Project]):
    """All public methods return ProjectInfo DTOs."""

    model = Project
    entity_name = "project"

    def __init__(self, session, clock=None, code_prefix: str = "PRJ"):
        super().__init__(session, clock)
        self.code_prefix = code_prefix

    def _to_dto(self, project: Project, client_name: str | None = None) -> ProjectInfo:
        if client_name is None and project.client_company_id is not None:
            client = self.session.get(Company, project.client_company_id)
            client_name = client.name if client is not None else None
        return ProjectInfo(
            id=project.id,
            code=project.code,
            name=project.name,
            ownership=project.ownership,
            client_company_id=project.client_company_id,
            status=project.status,
            project_kind=project.project_kind,
            location=project.location,
            total_area=project.total_area,
            unit_count=project.unit_count,
            estimated_budget=project.estimated_budget,
            planned_start=project.planned_start,
            planned_end=project.planned_end,
            actual_start=project.actual_start,
            actual_end=project.actual_end,
            description=project.description,
            is_active=project.is_active,
            created_at=project.created_at,
            updated_at=project.updated_at,
            client_name=client_name,
        )

    def get(self, project_id: int) -> ProjectInfo:
        """
        Get a project by id, with its client's name for client projects.

        Raises:
            NotFoundError: If the project doesn't exist.
        """
        return self._to_dto(self._get(project_id))

    def list(
        self,
        status: str | None = None,
        ownership: str | None = None,
        active_only: bool = True,
    ) -> list[ProjectInfo]:
        """Projects newest first (created_at desc, id desc)."""
        stmt = select(Project, Company.name).outerjoin(
            Company, Company.id == Project.client_company_id
        )
        if status is not None:
            stmt = stmt.where(Project.status == self._enum_value(ProjectStatus, status, "status"))
        if ownership is not None:
            stmt = stmt.where(
                Project.ownership == self._enum_value(ProjectOwnership, ownership, "ownership")
            )
        if active_only:
            stmt = stmt.where(Project.is_active.is_(True))
        stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
        return [self._to_dto(p, client_name) for p, client_name in self.session.execute(stmt)]

    def generate_code(self) -> str:
        """Next free ``<prefix>-<year>-NNN`` code for the clock's current year."""
        stem = f"{self.code_prefix}-{self.clock.today().year}-"
        codes = self.session.execute(
            select(Project.code).where(Project.code.like(f"{stem}%"))
        ).scalars()
        pattern = re.compile(rf"^{re.escape(stem)}(\d+)$")
        highest = 0
        for code in codes:
            match = pattern.match(code)
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{stem}{highest + 1:0{CODE_SEQUENCE_WIDTH}d}"

    def _check_code_free(self, code: str, exclude_id: int | None = None) -> None:
        stmt = select(func.count()).select_from(Project).where(Project.code == code)
        if exclude_id is not None:
            stmt = stmt.where(Project.id != exclude_id)
        if self.session.execute(stmt).scalar_one():
            raise DuplicateProjectCodeError(code)

    def _check_client(self, ownership: str, client_company_id: int | None) -> None:
        if ownership == ProjectOwnership.CLIENT.value:
            if client_company_id is None:
                raise ValidationError(
                    "a client project requires a client company", field="client_company_id"
                )
            client = self.session.get(Company, client_company_id)
            if client is None:
                raise NotFoundError("company", client_company_id)
            if not client.is_active:
                raise InactiveReferenceError("company")
        elif client_company_id is not None:
            raise ValidationError(
                "an own project cannot have a client company", field="client_company_id"
            )

    def _normalize(self, fields: dict[str, Any]) -> None:
        if fields.get("status") is not None:
            fields["status"] = self._enum_value(ProjectStatus, fields["status"], "status")
        if fields.get("project_kind") is not None:
            fields["project_kind"] = self._enum_value(
                ProjectKind, fields["project_kind"], "project_kind"
            )

    def create(
        self,
        name: str,
        ownership: str,
        client_company_id: int | None = None,
        code: str | None = None,
        **fields,
    ) -> ProjectInfo:
        """
        Create a project.

        Args:
            name: Display name.
            ownership: ``own`` or ``client``.
            client_company_id: Required for client projects, forbidden otherwise.
            code: Unique project code; generated when omitted.
            **fields: Optional descriptive fields, ``status`` and ``is_active``.

        Raises:
            ValidationError: Bad ownership/client combination or enum value.
            NotFoundError: The client company does not exist.
            InactiveReferenceError: The client company is inactive.
            DuplicateProjectCodeError: The code is already taken.
        """
        self._reject_unknown_fields(fields, _OPTIONAL_FIELDS)
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        ownership = self._enum_value(ProjectOwnership, ownership, "ownership")
        self._check_client(ownership, client_company_id)
        self._normalize(fields)

        code = code.strip() if code else self.generate_code()
        self._check_code_free(code)

        now = self.clock.now()
        project = Project(
            code=code,
            name=name.strip(),
            ownership=ownership,
            client_company_id=client_company_id,
            status=fields.pop("status", None) or ProjectStatus.PLANNED.value,
            is_active=fields.pop("is_active", True),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.session.add(project)
        self._flush()
        self._mark_dirty()
        logger.info(
            "project_created",
            extra={"project_id": project.id, "code": code, "ownership": ownership},
        )
        return self._to_dto(project)

    def update(self, project_id: int, **fields) -> ProjectInfo:
        """
        Partial update.  Ownership and client are validated as a pair, using
        the stored value for whichever of the two is not being changed.
        """
        self._reject_unknown_fields(fields, UPDATABLE_FIELDS)
        project = self._get(project_id)

        if "name" in fields:
            if not fields["name"] or not fields["name"].strip():
                raise ValidationError("name is required", field="name")
            fields["name"] = fields["name"].strip()
        if "ownership" in fields:
            fields["ownership"] = self._enum_value(
                ProjectOwnership, fields["ownership"], "ownership"
            )
        if "ownership" in fields or "client_company_id" in fields:
            ownership = fields.get("ownership", project.ownership)
            client_id = fields.get("client_company_id", project.client_company_id)
            if ownership == ProjectOwnership.OWN.value and "client_company_id" not in fields:
                # Switching to own drops the client.
                client_id = None
                fields["client_company_id"] = None
            self._check_client(ownership, client_id)
        if "code" in fields:
            if not fields["code"] or not fields["code"].strip():
                raise ValidationError("code is required", field="code")
            fields["code"] = fields["code"].strip()
            self._check_code_free(fields["code"], exclude_id=project_id)
        self._normalize(fields)

        for key, value in fields.items():
            setattr(project, key, value)
        project.updated_at = self.clock.now()
        self._flush()
        self._mark_dirty()
        logger.info(
            "project_updated",
            extra={"project_id": project_id, "fields": sorted(fields)},
        )
        return self._to_dto(project)

    def delete(self, project_id: int) -> TrashEntryInfo:
        """Move the project, its transactions and their allocations to trash."""
        project = self._get(project_id)
        transactions = list(
            self.session.execute(
                select(Transaction).where(Transaction.project_id == project_id)
            ).scalars()
        )
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
        return TrashService(self.session, self.clock).move_to_trash(
            "project",
            project,
            f"{project.code} {project.name}",
            {
                Project: [project],
                Transaction: transactions,
                PaymentAllocation: allocations,
            },
        )

    def count_active(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(Project).where(
                Project.is_active.is_(True),
                Project.status == ProjectStatus.ACTIVE.value,
            )
        ).scalar_one()
