"""
Module: ledger_kernel.db.snapshot
Responsibility: Serialize the whole ledger to one deterministic byte string
    and load such a string back, replacing every row.
Architecture position: Kernel > DB.  Works on a Core Connection; the ORM
    guards are deliberately not involved.

Format (UTF-8 JSON, keys sorted)::

    {"format": "construction-ledger-snapshot",
     "format_version": 1,
     "schema_version": 3,
     "migrations": [{"version": 1, "name": "...", "applied_at": "..."}, ...],
     "sequences": {"companies": 12, ...},
     "tables": {"companies": [...], "projects": [...], ...}}

Invariants enforced:
    - The same ledger state always exports to the same bytes: rows ordered
      by id, values rendered by column type, keys sorted.
    - A load restores ids and the AUTOINCREMENT counters, so an id retired
      before the export is still never handed out after the load.
    - Migrations recorded in the snapshot are restored as applied and are
      not replayed.

Failure modes:
    - SnapshotFormatError for undecodable bytes, a foreign format, an
      unknown table or column, a value of the wrong type, a snapshot written
      by a newer schema, or rows that fail the integrity scans.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection

from ledger_kernel.db import integrity
from ledger_kernel.db.migrations import LATEST_VERSION
from ledger_kernel.db.rows import dict_to_values, mapping_to_dict
from ledger_kernel.exceptions import SnapshotFormatError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.category import Category
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import Project
from ledger_kernel.models.schema_version import SchemaVersion
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.models.trash import TrashEntry

logger = get_logger("db.snapshot")

SNAPSHOT_FORMAT = "construction-ledger-snapshot"
FORMAT_VERSION = 1

# Parents before children.
SNAPSHOT_TABLES = tuple(
    model.__table__
    for model in (Company, Project, Category, Transaction, PaymentAllocation, TrashEntry)
)
_TABLES_BY_NAME = {table.name: table for table in SNAPSHOT_TABLES}
_MIGRATIONS_TABLE = SchemaVersion.__table__


def _dump_table(connection: Connection, table) -> list[dict[str, Any]]:
    rows = connection.execute(select(table).order_by(table.c.id))
    return [mapping_to_dict(table, row) for row in rows]


def _has_sequence_table(connection: Connection) -> bool:
    return (
        connection.exec_driver_sql(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
        ).first()
        is not None
    )


def _sequences(connection: Connection) -> dict[str, int]:
    if not _has_sequence_table(connection):
        return {}
    return {
        name: seq
        for name, seq in connection.exec_driver_sql(
            "SELECT name, seq FROM sqlite_sequence ORDER BY name"
        )
    }


def export_snapshot(connection: Connection, indent: int | None = None) -> bytes:
    """Serialize every ledger table; see the module docstring for the layout."""
    migrations = [
        {k: v for k, v in row.items() if k != "id"}
        for row in _dump_table(connection, _MIGRATIONS_TABLE)
    ]
    document = {
        "format": SNAPSHOT_FORMAT,
        "format_version": FORMAT_VERSION,
        "schema_version": max((m["version"] for m in migrations), default=0),
        "migrations": migrations,
        "sequences": _sequences(connection),
        "tables": {table.name: _dump_table(connection, table) for table in SNAPSHOT_TABLES},
    }
    data = json.dumps(document, sort_keys=True, ensure_ascii=False, indent=indent).encode("utf-8")
    logger.info(
        "snapshot_exported",
        extra={
            "schema_version": document["schema_version"],
            "row_counts": {name: len(rows) for name, rows in document["tables"].items()},
            "size_bytes": len(data),
        },
    )
    return data


@dataclass(frozen=True)
class SnapshotContent:
    """A parsed snapshot with every row decoded to column values."""

    schema_version: int
    migrations: list[dict[str, Any]]
    sequences: dict[str, int]
    rows: dict[str, list[dict[str, Any]]]


def parse_snapshot(data: bytes) -> dict[str, Any]:
    """
    Decode and validate the snapshot envelope without touching the database.

    Raises:
        SnapshotFormatError: If the bytes are not a loadable snapshot.
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SnapshotFormatError(f"not valid UTF-8 JSON ({exc})") from exc
    if not isinstance(document, dict) or document.get("format") != SNAPSHOT_FORMAT:
        raise SnapshotFormatError("not a construction ledger snapshot")

    version = document.get("format_version")
    if not isinstance(version, int) or version > FORMAT_VERSION:
        raise SnapshotFormatError(f"unsupported format version {version!r}")
    schema_version = document.get("schema_version", 0)
    if not isinstance(schema_version, int) or schema_version > LATEST_VERSION:
        raise SnapshotFormatError(
            f"schema version {schema_version!r} is newer than this ledger ({LATEST_VERSION})"
        )

    tables = document.get("tables")
    if not isinstance(tables, dict):
        raise SnapshotFormatError("missing tables section")
    unknown = sorted(set(tables) - set(_TABLES_BY_NAME))
    if unknown:
        raise SnapshotFormatError(f"unknown table {unknown[0]!r}")
    return document


def _decode_rows(table, rows: Any) -> list[dict[str, Any]]:
    if not isinstance(rows, list):
        raise SnapshotFormatError(f"{table.name} is not a list of rows")
    columns = set(table.columns.keys())
    decoded = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise SnapshotFormatError(f"{table.name}[{index}] is not an object")
        extra = sorted(set(row) - columns)
        if extra:
            raise SnapshotFormatError(f"{table.name}[{index}] has unknown column {extra[0]!r}")
        try:
            decoded.append(dict_to_values(table, row))
        except (ArithmeticError, ValueError, TypeError, KeyError) as exc:
            raise SnapshotFormatError(f"{table.name}[{index}]: {exc}") from exc
    return decoded


def read_snapshot(data: bytes) -> SnapshotContent:
    """
    Parse snapshot bytes and decode every row, still without touching the
    database.  Anything wrong with the content surfaces here as a
    SnapshotFormatError.
    """
    document = parse_snapshot(data)
    tables = document["tables"]

    sequences = document.get("sequences") or {}
    if not isinstance(sequences, dict) or not all(
        isinstance(seq, int) and not isinstance(seq, bool) for seq in sequences.values()
    ):
        raise SnapshotFormatError("sequences must map table names to integers")

    return SnapshotContent(
        schema_version=document.get("schema_version", 0),
        migrations=_decode_rows(_MIGRATIONS_TABLE, document.get("migrations") or []),
        sequences=sequences,
        rows={
            table.name: _decode_rows(table, tables.get(table.name, []))
            for table in SNAPSHOT_TABLES
        },
    )


def load_snapshot(connection: Connection, content: SnapshotContent) -> None:
    """
    Replace every ledger row with the snapshot's content.

    Runs on the caller's connection and inside the caller's transaction;
    pending migrations and ``verify_loaded`` are the caller's business.
    """
    # Self-references (legacy links) may point forward in id order.
    connection.exec_driver_sql("PRAGMA defer_foreign_keys = ON")

    connection.execute(delete(_MIGRATIONS_TABLE))
    for table in reversed(SNAPSHOT_TABLES):
        connection.execute(delete(table))

    for table in SNAPSHOT_TABLES:
        rows = content.rows[table.name]
        if rows:
            connection.execute(insert(table), rows)

    if content.migrations:
        connection.execute(insert(_MIGRATIONS_TABLE), content.migrations)

    if _has_sequence_table(connection):
        connection.exec_driver_sql("DELETE FROM sqlite_sequence")
        for name, seq in sorted(content.sequences.items()):
            connection.exec_driver_sql(
                "INSERT INTO sqlite_sequence (name, seq) VALUES (?, ?)", (name, seq)
            )

    logger.info(
        "snapshot_loaded",
        extra={
            "schema_version": content.schema_version,
            "row_counts": {name: len(rows) for name, rows in content.rows.items()},
        },
    )


def verify_loaded(connection: Connection) -> None:
    """
    Scan the freshly loaded rows before they are committed.

    Raises:
        SnapshotFormatError: The rows hold a dangling reference or break a
            ledger rule (over-allocation, wrong direction, base mismatch).
    """
    violations = (
        integrity.check_foreign_keys(connection).violations
        + integrity.check_integrity(connection).violations
    )
    if violations:
        first = violations[0]
        raise SnapshotFormatError(
            f"{len(violations)} integrity violation(s), first {first.check} "
            f"on {first.table} {first.row_id}",
            violations=violations,
        )
