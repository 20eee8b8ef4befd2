"""
Module: ledger_kernel.db.migrations
Responsibility: Ordered, logged data migrations.  Each migration runs at
    most once per ledger; the ``schema_versions`` table records which ones
    have been applied, and snapshots carry that log with them.
Architecture position: Kernel > DB.  Imports models and config.

Invariants enforced:
    - Migrations run in ascending version order, each inside the caller's
      transaction together with its log row.
    - A version already in the log is never run again, including after a
      snapshot load.
    - The backfill never creates an allocation that breaks the invoice or
      payment limits, nor one that links the wrong types.

Failure modes:
    - Any exception aborts the caller's transaction; nothing is logged as
      applied.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from ledger_config.settings import CategoryCatalogue, load_category_catalogue
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.transaction_types import traits_of
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.category import Category
from ledger_kernel.models.schema_version import SchemaVersion
from ledger_kernel.models.transaction import Transaction

logger = get_logger("db.migrations")


@dataclass(frozen=True)
class MigrationContext:
    session: Session
    clock: Clock
    catalogue: CategoryCatalogue


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[MigrationContext], None]


def add_legacy_invoice_link(ctx: MigrationContext) -> None:
    """Older ledgers lack the single-invoice link column."""
    connection = ctx.session.connection()
    columns = {c["name"] for c in inspect(connection).get_columns("transactions")}
    if "legacy_invoice_id" not in columns:
        connection.exec_driver_sql(
            "ALTER TABLE transactions ADD COLUMN legacy_invoice_id INTEGER "
            "REFERENCES transactions(id) ON DELETE SET NULL"
        )


def backfill_payment_allocations(ctx: MigrationContext) -> None:
    """
    Turn legacy single-invoice links into allocation rows.

    Payments that already have allocations are left alone.  Each link
    becomes one allocation of min(payment base, invoice remaining); links
    in the wrong direction or to a settled invoice are skipped.
    """
    session = ctx.session
    allocated_payments = set(
        session.execute(select(PaymentAllocation.payment_id).distinct()).scalars()
    )
    invoice_used: dict[int, object] = {}
    for row in session.execute(select(PaymentAllocation.invoice_id, PaymentAllocation.amount)):
        invoice_used[row.invoice_id] = invoice_used.get(row.invoice_id, ZERO) + row.amount

    payments = session.execute(
        select(Transaction)
        .where(Transaction.legacy_invoice_id.is_not(None))
        .order_by(Transaction.date, Transaction.id)
    ).scalars()

    created = skipped = 0
    now = ctx.clock.now()
    for payment in payments:
        if payment.id in allocated_payments:
            continue
        invoice = session.get(Transaction, payment.legacy_invoice_id)
        if invoice is None or not traits_of(payment.type).can_settle(invoice.type):
            skipped += 1
            continue
        remaining = invoice.amount_in_base - invoice_used.get(invoice.id, ZERO)
        amount = min(payment.amount_in_base, remaining)
        if amount <= ZERO:
            skipped += 1
            continue
        session.add(
            PaymentAllocation(
                payment_id=payment.id, invoice_id=invoice.id, amount=amount, created_at=now
            )
        )
        invoice_used[invoice.id] = invoice_used.get(invoice.id, ZERO) + amount
        created += 1
    session.flush()
    logger.info(
        "legacy_links_backfilled",
        extra={"allocations_created": created, "links_skipped": skipped},
    )


def seed_default_categories(ctx: MigrationContext) -> None:
    """Insert the default catalogue into an empty categories table."""
    session = ctx.session
    if session.execute(select(Category.id).limit(1)).first() is not None:
        return
    now = ctx.clock.now()
    for entry in ctx.catalogue.categories:
        session.add(
            Category(
                name=entry.name,
                type=entry.type,
                color=entry.color,
                is_default=True,
                created_at=now,
            )
        )
    session.flush()
    logger.info(
        "default_categories_seeded", extra={"count": len(ctx.catalogue.categories)}
    )


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "add_legacy_invoice_link", add_legacy_invoice_link),
    Migration(2, "backfill_payment_allocations", backfill_payment_allocations),
    Migration(3, "seed_default_categories", seed_default_categories),
)

LATEST_VERSION = MIGRATIONS[-1].version


def applied_versions(session: Session) -> set[int]:
    return set(session.execute(select(SchemaVersion.version)).scalars())


def run_pending(
    session: Session,
    clock: Clock,
    catalogue: CategoryCatalogue | None = None,
) -> list[Migration]:
    """
    Apply every migration missing from the log, in version order.

    Returns the migrations that ran (empty when the ledger is current).
    """
    done = applied_versions(session)
    ctx = MigrationContext(session, clock, catalogue or load_category_catalogue())
    ran: list[Migration] = []
    for migration in MIGRATIONS:
        if migration.version in done:
            continue
        migration.apply(ctx)
        session.add(
            SchemaVersion(
                version=migration.version,
                name=migration.name,
                applied_at=clock.now(),
            )
        )
        session.flush()
        ran.append(migration)
        logger.info(
            "migration_applied",
            extra={"version": migration.version, "migration": migration.name},
        )
    return ran
