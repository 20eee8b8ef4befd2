"""
ORM-level guards for default categories.

Default categories are seeded by migration and referenced by name in
reports, so they must never change or disappear.  CategoryService refuses
such requests up front with a readable error; the listeners below catch
any path that bypasses the service (a direct ``session.delete`` or an
attribute set on a loaded row).

    session.flush()
         |
         v
    [before_update] --> _check_default_category_update() --> DefaultCategoryImmutableError
         |
    [before_delete] --> _check_default_category_delete() --> DefaultCategoryImmutableError
         |
         v
    SQL sent to database (only if checks pass)

Snapshot loads use Core statements and are not affected.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import DefaultCategoryImmutableError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.guards")


def _was_default(target) -> bool:
    history = get_history(target, "is_default")
    if history.deleted:
        return bool(history.deleted[0])
    return bool(target.is_default)


def _check_default_category_update(mapper, connection, target):
    if not _was_default(target):
        return
    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            logger.error(
                "default_category_mutation_blocked",
                extra={"category_id": target.id, "field": attr.key},
            )
            raise DefaultCategoryImmutableError("modified")


def _check_default_category_delete(mapper, connection, target):
    if _was_default(target):
        logger.error(
            "default_category_mutation_blocked",
            extra={"category_id": target.id, "field": None},
        )
        raise DefaultCategoryImmutableError("deleted")


_LISTENERS = (
    ("before_update", _check_default_category_update),
    ("before_delete", _check_default_category_delete),
)


def register_guard_listeners() -> None:
    """Register the default-category listeners.  Safe to call repeatedly."""
    from ledger_kernel.models.category import Category

    for event_name, listener in _LISTENERS:
        if not event.contains(Category, event_name, listener):
            event.listen(Category, event_name, listener)


def unregister_guard_listeners() -> None:
    """Remove the listeners.  Only for tests that need to plant bad data."""
    from ledger_kernel.models.category import Category

    for event_name, listener in _LISTENERS:
        if event.contains(Category, event_name, listener):
            event.remove(Category, event_name, listener)
