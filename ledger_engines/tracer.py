"""
ledger_engines.tracer -- LEDGER_ENGINE_TRACE records for the pure engines.

Each call to a decorated engine logs one record carrying the engine name
and version, how long it took, and a fingerprint of the inputs that
determine its result.  Two calls with equal fingerprints must return equal
results; a trace pair that breaks this points at a hidden input.

The fingerprint is the first 16 hex characters of the SHA-256 of a
canonical JSON rendering: dict keys sorted, dataclasses and objects with
``__dict__`` rendered attribute by attribute, Decimals and dates as text.
The decorator never touches the inputs beyond reading them.

Records go to ``ledger_kernel.engines.tracer`` so the kernel's logging
setup applies; the engines themselves stay free of I/O.

Usage:
    @traced_engine("balances.company", "1.0", fingerprint_fields=("txs",))
    def calculate_company_ledger(txs):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from datetime import date
from enum import Enum
from typing import Any

from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def _plain(value: Any) -> Any:
    """JSON-compatible stand-in for ``value`` with a stable layout."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return _plain(value.value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if hasattr(value, "__dict__"):
        return {k: _plain(v) for k, v in vars(value).items() if not k.startswith("_")}
    # Decimal, float and anything opaque
    return str(value)


def input_fingerprint(arguments: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    """Fingerprint of ``fields`` picked from ``arguments``; absent ones count as null."""
    canonical = json.dumps(
        {name: _plain(arguments.get(name)) for name in fields},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorate a pure engine function or method.

    Arguments are bound to the signature, defaults included, so ``f(a, b)``
    and ``f(a, payment_amount=b)`` trace the same fingerprint.  An engine
    that raises logs nothing; the caller reports the failure.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                bound.apply_defaults()
                fingerprint = input_fingerprint(bound.arguments, fingerprint_fields)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            logger.info(
                "LEDGER_ENGINE_TRACE",
                extra={
                    "trace_type": "LEDGER_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
