"""
TrashService -- soft-delete staging with restore and purge.

Responsibility:
    Moves a cascade of rows (a company with its client projects and their
    transactions, a project with its transactions, or a single transaction)
    out of the live tables into ONE trash entry, and puts such a bundle
    back on restore.

Architecture position:
    Kernel > Services.  Called by CompanyService, ProjectService and
    TransactionService for deletes; called directly for restore/purge.

Invariants enforced:
    - One delete request produces exactly one TrashEntry, whatever cascaded.
    - Restore reinserts every row under its original id.  Ids are never
      reused (AUTOINCREMENT tables), so a conflict means the bundle was
      already restored by other means.
    - Restore never breaks the allocation limits: an allocation whose
      counterpart is gone, or that no longer fits the invoice or payment,
      is left out and logged.

Failure modes:
    - NotFoundError for an unknown trash entry.
    - RestoreConflictError when a parent row is gone or a row is present.
    - DuplicateProjectCodeError when a restored project's code was reused.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update

from ledger_kernel.db.rows import dict_to_values, orm_to_dict
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import TrashEntryInfo
from ledger_kernel.exceptions import DuplicateProjectCodeError, RestoreConflictError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.category import Category
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import Project
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.models.trash import TrashEntry
from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.trash")

# Parents before children.
BUNDLE_MODELS = (Company, Project, Transaction, PaymentAllocation)


class TrashService(BaseService[TrashEntry]):
    """Soft delete, restore, purge."""

    model = TrashEntry
    entity_name = "trash entry"

    def _to_dto(self, entry: TrashEntry) -> TrashEntryInfo:
        rows = json.loads(entry.data)["rows"]
        return TrashEntryInfo(
            id=entry.id,
            entry_type=entry.entry_type,
            entity_id=entry.entity_id,
            label=entry.label,
            deleted_at=entry.deleted_at,
            row_counts={table: len(items) for table, items in sorted(rows.items())},
        )

    def get(self, entry_id: int) -> TrashEntryInfo:
        return self._to_dto(self._get(entry_id))

    def list(self, entry_type: str | None = None) -> list[TrashEntryInfo]:
        """Newest first."""
        stmt = select(TrashEntry).order_by(TrashEntry.deleted_at.desc(), TrashEntry.id.desc())
        if entry_type is not None:
            stmt = stmt.where(TrashEntry.entry_type == entry_type)
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars()]

    def move_to_trash(
        self,
        entry_type: str,
        root: Any,
        label: str,
        rows: dict[type, Sequence[Any]],
    ) -> TrashEntryInfo:
        """
        Delete ``rows`` (which include ``root``) and stash them in one entry.

        ``rows`` maps a model class to the loaded instances to remove.
        """
        bundle_rows = {
            model.__tablename__: [
                orm_to_dict(obj) for obj in sorted(rows.get(model, ()), key=lambda o: o.id)
            ]
            for model in BUNDLE_MODELS
            if rows.get(model)
        }
        bundle = {
            "root": {"table": root.__tablename__, "id": root.id},
            "rows": bundle_rows,
        }

        tx_ids = [tx.id for tx in rows.get(Transaction, ())]
        if tx_ids:
            # Legacy links from surviving transactions would dangle.
            self.session.execute(
                update(Transaction)
                .where(
                    Transaction.legacy_invoice_id.in_(tx_ids),
                    Transaction.id.not_in(tx_ids),
                )
                .values(legacy_invoice_id=None)
                .execution_options(synchronize_session="fetch")
            )

        for model in reversed(BUNDLE_MODELS):
            for obj in rows.get(model, ()):
                self.session.delete(obj)
            self._flush()

        entry = TrashEntry(
            entry_type=entry_type,
            entity_id=root.id,
            label=label,
            data=json.dumps(bundle, sort_keys=True, ensure_ascii=False),
            deleted_at=self.clock.now(),
        )
        self.session.add(entry)
        self._flush()
        self._mark_dirty()

        logger.info(
            "entity_moved_to_trash",
            extra={
                "entry_type": entry_type,
                "trash_id": entry.id,
                "row_counts": {t: len(r) for t, r in bundle_rows.items()},
            },
        )
        return self._to_dto(entry)

    def _exists(self, model: type, entity_id: int | None, bundled: dict[str, set[int]]) -> bool:
        if entity_id is None:
            return True
        if entity_id in bundled.get(model.__tablename__, set()):
            return True
        return self.session.get(model, entity_id) is not None

    def restore(self, entry_id: int) -> TrashEntryInfo:
        """Reinsert a bundle under its original ids and drop the entry."""
        entry = self._get(entry_id)
        info = self._to_dto(entry)
        rows: dict[str, list[dict]] = json.loads(entry.data)["rows"]
        bundled = {table: {r["id"] for r in items} for table, items in rows.items()}

        for model in BUNDLE_MODELS:
            for data in rows.get(model.__tablename__, ()):
                if self.session.get(model, data["id"]) is not None:
                    raise RestoreConflictError(f"a deleted {model.__tablename__} row is already present")

        for data in rows.get(Project.__tablename__, ()):
            if not self._exists(Company, data["client_company_id"], bundled):
                raise RestoreConflictError("the project's client company no longer exists")
            taken = self.session.execute(
                select(func.count()).select_from(Project).where(Project.code == data["code"])
            ).scalar_one()
            if taken:
                raise DuplicateProjectCodeError(data["code"])

        for data in rows.get(Transaction.__tablename__, ()):
            if not self._exists(Company, data["company_id"], bundled):
                raise RestoreConflictError("the transaction's company no longer exists")
            if not self._exists(Project, data["project_id"], bundled):
                raise RestoreConflictError("the transaction's project no longer exists")
            if not self._exists(Category, data["category_id"], {}):
                data["category_id"] = None
            if not self._exists(Transaction, data["legacy_invoice_id"], bundled):
                data["legacy_invoice_id"] = None

        allocations = self._restorable_allocations(
            rows.get(PaymentAllocation.__tablename__, []),
            rows.get(Transaction.__tablename__, []),
            bundled,
        )

        for model in BUNDLE_MODELS:
            items = allocations if model is PaymentAllocation else rows.get(model.__tablename__, ())
            for data in items:
                self.session.add(model(**dict_to_values(model.__table__, data)))
            self._flush()

        self.session.delete(entry)
        self._flush()
        self._mark_dirty()
        logger.info(
            "trash_entry_restored",
            extra={"entry_type": info.entry_type, "trash_id": entry_id},
        )
        return info

    def _restorable_allocations(
        self,
        allocations: list[dict],
        transactions: list[dict],
        bundled: dict[str, set[int]],
    ) -> list[dict]:
        if not allocations:
            return []
        bundled_base = {t["id"]: Decimal(t["amount_in_base"]) for t in transactions}
        selector = AllocationSelector(self.session)
        invoice_used = selector.allocated_by_invoice([a["invoice_id"] for a in allocations])
        payment_used = selector.allocated_by_payment([a["payment_id"] for a in allocations])

        kept: list[dict] = []
        for data in allocations:
            payment_id, invoice_id = data["payment_id"], data["invoice_id"]
            amount = Decimal(data["amount"])
            if not (
                self._exists(Transaction, payment_id, bundled)
                and self._exists(Transaction, invoice_id, bundled)
            ):
                logger.info("restore_allocation_skipped", extra={"reason": "counterpart_missing"})
                continue
            invoice_base = bundled_base.get(invoice_id) or self.session.get(Transaction, invoice_id).amount_in_base
            payment_base = bundled_base.get(payment_id) or self.session.get(Transaction, payment_id).amount_in_base
            new_invoice = invoice_used.get(invoice_id, ZERO) + amount
            new_payment = payment_used.get(payment_id, ZERO) + amount
            if new_invoice > invoice_base or new_payment > payment_base:
                logger.warning("restore_allocation_skipped", extra={"reason": "exceeds_limit"})
                continue
            invoice_used[invoice_id] = new_invoice
            payment_used[payment_id] = new_payment
            kept.append(data)
        return kept

    def purge(self, entry_id: int) -> None:
        """Drop one entry for good."""
        entry = self._get(entry_id)
        self.session.delete(entry)
        self._flush()
        self._mark_dirty()
        logger.info("trash_entry_purged", extra={"trash_id": entry_id})

    def empty(self) -> int:
        """Drop every entry; returns how many were removed."""
        count = self.session.execute(select(func.count()).select_from(TrashEntry)).scalar_one()
        if count:
            self.session.execute(delete(TrashEntry).execution_options(synchronize_session="fetch"))
            self._mark_dirty()
        logger.info("trash_emptied", extra={"purged": count})
        return count
