"""
CategoryService -- transaction categories.

Default categories (seeded by migration) are read-only here; the ORM
guards in db/guards.py back this up for any path around the service.
Deleting a user category leaves its transactions uncategorized.
"""

from __future__ import annotations

from sqlalchemy import select, update

from ledger_kernel.domain.dtos import CategoryInfo
from ledger_kernel.domain.transaction_types import CategoryType
from ledger_kernel.exceptions import DefaultCategoryImmutableError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.category import DEFAULT_COLOR, Category
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.base import BaseService

logger = get_logger("services.category")

UPDATABLE_FIELDS = frozenset({"name", "type", "color"})


class CategoryService(BaseService[Category]):
    model = Category
    entity_name = "category"

    def _to_dto(self, category: Category) -> CategoryInfo:
        return CategoryInfo(
            id=category.id,
            name=category.name,
            type=category.type,
            color=category.color,
            is_default=category.is_default,
        )

    def get(self, category_id: int) -> CategoryInfo:
        return self._to_dto(self._get(category_id))

    def list(self, type: str | None = None) -> list[CategoryInfo]:
        """Defaults first, then by name."""
        stmt = select(Category)
        if type is not None:
            stmt = stmt.where(Category.type == self._enum_value(CategoryType, type, "type"))
        stmt = stmt.order_by(Category.is_default.desc(), Category.name, Category.id)
        return [self._to_dto(c) for c in self.session.execute(stmt).scalars()]

    def create(self, name: str, type: str, color: str | None = None) -> CategoryInfo:
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        category = Category(
            name=name.strip(),
            type=self._enum_value(CategoryType, type, "type"),
            color=color or DEFAULT_COLOR,
            is_default=False,
            created_at=self.clock.now(),
        )
        self.session.add(category)
        self._flush()
        self._mark_dirty()
        logger.info(
            "category_created",
            extra={"category_id": category.id, "category_type": category.type},
        )
        return self._to_dto(category)

    def update(self, category_id: int, **fields) -> CategoryInfo:
        """
        Partial update of name, type or color.

        Raises:
            DefaultCategoryImmutableError: The category is a default one.
        """
        self._reject_unknown_fields(fields, UPDATABLE_FIELDS)
        category = self._get(category_id)
        if category.is_default:
            raise DefaultCategoryImmutableError("modified")
        if "type" in fields:
            fields["type"] = self._enum_value(CategoryType, fields["type"], "type")
        if "name" in fields:
            if not fields["name"] or not fields["name"].strip():
                raise ValidationError("name is required", field="name")
            fields["name"] = fields["name"].strip()
        if "color" in fields and not fields["color"]:
            fields["color"] = DEFAULT_COLOR
        for key, value in fields.items():
            setattr(category, key, value)
        self._flush()
        self._mark_dirty()
        logger.info(
            "category_updated",
            extra={"category_id": category_id, "fields": sorted(fields)},
        )
        return self._to_dto(category)

    def delete(self, category_id: int) -> None:
        """Delete a user category; its transactions become uncategorized."""
        category = self._get(category_id)
        if category.is_default:
            raise DefaultCategoryImmutableError("deleted")
        self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category_id)
            .values(category_id=None)
            .execution_options(synchronize_session="fetch")
        )
        self.session.delete(category)
        self._flush()
        self._mark_dirty()
        logger.info("category_deleted", extra={"category_id": category_id})
