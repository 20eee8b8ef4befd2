"""
Row <-> JSON conversion shared by trash bundles and snapshots.

Values are rendered by column type so that the same row always produces
the same JSON: Decimals as plain strings with their fixed scale, dates and
datetimes in ISO 8601, everything else as the native JSON type.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Table

from ledger_kernel.db.types import ScaledDecimal, UTCDateTime


def encode_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def decode_value(column_type: Any, value: Any) -> Any:
    """
    Typed value for ``column_type`` from its JSON form.

    Raises TypeError for a value of the wrong JSON type, ValueError for an
    unparseable date or a non-finite number, and decimal.InvalidOperation
    for a malformed decimal string.
    """
    if value is None:
        return None
    if isinstance(column_type, ScaledDecimal):
        if not isinstance(value, str):
            raise TypeError(f"expected a decimal string, got {value!r}")
        number = Decimal(value)
        if not number.is_finite():
            raise ValueError(f"not a finite amount: {value!r}")
        return number
    if isinstance(column_type, UTCDateTime):
        return datetime.fromisoformat(value)
    if isinstance(column_type, Date):
        return date.fromisoformat(value)
    if isinstance(column_type, Boolean):
        if not isinstance(value, bool):
            raise TypeError(f"expected true or false, got {value!r}")
    elif isinstance(column_type, Integer):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"expected an integer, got {value!r}")
    elif isinstance(column_type, String) and not isinstance(value, str):
        raise TypeError(f"expected a string, got {value!r}")
    return value


def orm_to_dict(obj: Any) -> dict[str, Any]:
    """JSON-safe dict of every mapped column of an ORM instance."""
    table: Table = obj.__table__
    return {c.key: encode_value(getattr(obj, c.key)) for c in table.columns}


def mapping_to_dict(table: Table, row: Any) -> dict[str, Any]:
    """JSON-safe dict of a Core result row."""
    return {c.key: encode_value(row._mapping[c]) for c in table.columns}


def dict_to_values(table: Table, data: dict[str, Any]) -> dict[str, Any]:
    """Inverse of the encoders: typed values keyed by column name."""
    return {
        c.key: decode_value(c.type, data.get(c.key))
        for c in table.columns
        if c.key in data
    }
