"""
Module: ledger_kernel.db.types
Responsibility: Column types and rounding helpers for monetary values.
    Centralizes precision so that every model, service and engine uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and the engines.  MUST NOT import from any of those
    layers.

Invariants enforced:
    - No floats.  Money is stored as an exact scaled integer (minor units)
      and surfaced as ``Decimal`` quantized to ``MONEY_DECIMAL_PLACES``.
    - Exchange rates are stored and surfaced with ``RATE_DECIMAL_PLACES``.
    - round_money() is the only sanctioned rounding function.
    - Timestamps are stored as naive UTC and surfaced as aware UTC, so the
      same instant always serializes to the same text.

Failure modes:
    - TypeError when a float is bound to a money column.
    - decimal.InvalidOperation on a non-numeric string.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import BigInteger, DateTime
from sqlalchemy.types import TypeDecorator

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Coerce int/str/Decimal to Decimal; floats are refused."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass Decimal or str")
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal (or int/str coercible to one).
    Postconditions: Returns value quantized with ROUND_HALF_UP by default.
    """
    return to_decimal(value).quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def round_rate(value: Decimal) -> Decimal:
    return round_money(value, RATE_DECIMAL_PLACES)


class ScaledDecimal(TypeDecorator):
    """
    Decimal stored as an integer count of ``10**-places`` units.

    Contract:
        Binding rounds half-up to ``places`` and stores the integer;
        loading returns a Decimal with exactly ``places`` digits.  Because
        the SQL value is an integer, ``SUM()`` over the column is exact.

    Guarantees:
        - cache_ok=True enables SQLAlchemy statement caching.
        - Aggregates typed from the column (``func.sum``, ``func.coalesce``)
          come back as Decimal through the same result processor.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int = MONEY_DECIMAL_PLACES):
        super().__init__()
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(round_money(value, self.places).scaleb(self.places))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.places)

    def process_literal_param(self, value, dialect):
        return str(self.process_bind_param(value, dialect))


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetime stored as naive UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return value.replace(tzinfo=timezone.utc)

