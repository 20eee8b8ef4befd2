"""
Ledger Settings (``ledger_config.settings``).

Responsibility
--------------
Loads the ledger's runtime settings from YAML into a frozen dataclass and
applies ``LEDGER_*`` environment overrides.  Also loads the default
category catalogue consumed by the ``seed_default_categories`` migration.

Invariants enforced
-------------------
* The base currency is never repeated among the alternate currencies.
* Currency codes are 3-letter upper-case strings.
* Every parsed object is a frozen dataclass.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid currency set -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULTS_DIR = Path(__file__).resolve().parent / "defaults"
DEFAULT_SETTINGS_PATH = DEFAULTS_DIR / "ledger.yaml"
DEFAULT_CATEGORIES_PATH = DEFAULTS_DIR / "categories.yaml"

ENV_DATABASE_URL = "LEDGER_DATABASE_URL"
ENV_BASE_CURRENCY = "LEDGER_BASE_CURRENCY"
ENV_LOG_LEVEL = "LEDGER_LOG_LEVEL"


@dataclass(frozen=True)
class LedgerSettings:
    """
    Runtime settings for one ledger database.

    Contract:
        ``currencies`` is the closed set a transaction may be recorded in;
        index 0 is the base (reporting) currency.
    """

    database_url: str = "sqlite://"
    base_currency: str = "TRY"
    alternate_currencies: tuple[str, ...] = ("USD", "EUR")
    log_level: str = "INFO"
    project_code_prefix: str = "PRJ"
    default_category_color: str = "#6366f1"
    snapshot_indent: int | None = None

    def __post_init__(self) -> None:
        for code in (self.base_currency, *self.alternate_currencies):
            if len(code) != 3 or not code.isalpha() or not code.isupper():
                raise ValueError(f"Invalid currency code: {code!r}")
        if self.base_currency in self.alternate_currencies:
            raise ValueError(
                f"Base currency {self.base_currency} listed as alternate currency"
            )
        if len(set(self.alternate_currencies)) != len(self.alternate_currencies):
            raise ValueError("Duplicate alternate currency")

    @property
    def currencies(self) -> tuple[str, ...]:
        return (self.base_currency, *self.alternate_currencies)

    def is_base(self, currency: str) -> bool:
        return currency == self.base_currency


@dataclass(frozen=True)
class DefaultCategory:
    """One entry of the default category catalogue."""

    name: str
    type: str
    color: str


@dataclass(frozen=True)
class CategoryCatalogue:
    """Default categories grouped by category type, in file order."""

    categories: tuple[DefaultCategory, ...] = field(default_factory=tuple)

    def of_type(self, category_type: str) -> tuple[DefaultCategory, ...]:
        return tuple(c for c in self.categories if c.type == category_type)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """Build settings from a parsed YAML mapping; unknown keys are rejected."""
    known = set(LedgerSettings.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(sorted(unknown))}")

    values = dict(data)
    if "alternate_currencies" in values:
        values["alternate_currencies"] = tuple(values["alternate_currencies"] or ())
    return LedgerSettings(**values)


def apply_env_overrides(
    settings: LedgerSettings,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """Overlay ``LEDGER_*`` environment variables onto settings."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if env.get(ENV_DATABASE_URL):
        overrides["database_url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_BASE_CURRENCY):
        base = env[ENV_BASE_CURRENCY].upper()
        overrides["base_currency"] = base
        # A currency promoted to base leaves the alternate list.
        overrides["alternate_currencies"] = tuple(
            c for c in settings.alternate_currencies if c != base
        )
    if env.get(ENV_LOG_LEVEL):
        overrides["log_level"] = env[ENV_LOG_LEVEL].upper()
    return replace(settings, **overrides) if overrides else settings


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Load settings: packaged defaults, then the optional site file, then env.

    A site file only needs the keys it changes.
    """
    data = load_yaml_file(DEFAULT_SETTINGS_PATH)
    if path is not None:
        data.update(load_yaml_file(Path(path)))
    return apply_env_overrides(parse_settings(data), environ)


def load_category_catalogue(path: Path | str | None = None) -> CategoryCatalogue:
    """Load the default category catalogue (``type -> [{name, color}]``)."""
    data = load_yaml_file(Path(path) if path is not None else DEFAULT_CATEGORIES_PATH)
    categories: list[DefaultCategory] = []
    for category_type in ("invoice_out", "invoice_in", "payment"):
        for entry in data.get(category_type) or ():
            categories.append(
                DefaultCategory(
                    name=entry["name"],
                    type=category_type,
                    color=entry.get("color", LedgerSettings.default_category_color),
                )
            )
    return CategoryCatalogue(categories=tuple(categories))
