"""
Tests for ledger settings and the default category catalogue.

Covers:
- Packaged defaults load and validate
- Site files override only the keys they name
- LEDGER_* environment overrides
- Currency validation failures
- Category catalogue parsing
"""

from __future__ import annotations

import dataclasses

import pytest
import yaml

from ledger_config.settings import (
    ENV_BASE_CURRENCY,
    ENV_DATABASE_URL,
    ENV_LOG_LEVEL,
    LedgerSettings,
    apply_env_overrides,
    load_category_catalogue,
    load_settings,
    parse_settings,
)


class TestLedgerSettings:
    def test_currencies_start_with_base(self):
        settings = LedgerSettings(base_currency="TRY", alternate_currencies=("USD", "EUR"))
        assert settings.currencies == ("TRY", "USD", "EUR")
        assert settings.is_base("TRY")
        assert not settings.is_base("USD")

    def test_frozen(self):
        settings = LedgerSettings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.base_currency = "USD"

    @pytest.mark.parametrize("code", ["try", "TR", "EURO", "U$D"])
    def test_rejects_malformed_currency(self, code):
        with pytest.raises(ValueError, match="Invalid currency code"):
            LedgerSettings(base_currency=code)

    def test_rejects_base_among_alternates(self):
        with pytest.raises(ValueError, match="alternate"):
            LedgerSettings(base_currency="USD", alternate_currencies=("USD", "EUR"))

    def test_rejects_duplicate_alternates(self):
        with pytest.raises(ValueError, match="Duplicate"):
            LedgerSettings(alternate_currencies=("USD", "USD"))


class TestLoadSettings:
    def test_packaged_defaults(self):
        settings = load_settings(environ={})
        assert settings.base_currency == "TRY"
        assert settings.alternate_currencies == ("USD", "EUR")
        assert settings.project_code_prefix == "PRJ"
        assert settings.database_url.startswith("sqlite")

    def test_site_file_overrides_named_keys(self, tmp_path):
        site = tmp_path / "site.yaml"
        site.write_text(yaml.safe_dump({"project_code_prefix": "INS", "snapshot_indent": 2}))

        settings = load_settings(site, environ={})

        assert settings.project_code_prefix == "INS"
        assert settings.snapshot_indent == 2
        assert settings.base_currency == "TRY"

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown settings keys: colour"):
            parse_settings({"colour": "red"})

    def test_missing_site_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestEnvOverrides:
    def test_database_url_and_log_level(self):
        settings = apply_env_overrides(
            LedgerSettings(),
            {ENV_DATABASE_URL: "sqlite:////var/lib/ledger.db", ENV_LOG_LEVEL: "debug"},
        )
        assert settings.database_url == "sqlite:////var/lib/ledger.db"
        assert settings.log_level == "DEBUG"

    def test_promoted_base_leaves_alternates(self):
        settings = apply_env_overrides(
            LedgerSettings(base_currency="TRY", alternate_currencies=("USD", "EUR")),
            {ENV_BASE_CURRENCY: "usd"},
        )
        assert settings.base_currency == "USD"
        assert settings.alternate_currencies == ("EUR",)

    def test_no_overrides_returns_same_object(self):
        settings = LedgerSettings()
        assert apply_env_overrides(settings, {}) is settings


class TestCategoryCatalogue:
    def test_default_catalogue(self):
        catalogue = load_category_catalogue()
        assert len(catalogue.of_type("invoice_out")) == 7
        assert len(catalogue.of_type("invoice_in")) == 24
        assert len(catalogue.of_type("payment")) == 6
        assert catalogue.of_type("payment")[0].name == "Cash"

    def test_missing_color_falls_back(self, tmp_path):
        path = tmp_path / "categories.yaml"
        path.write_text(yaml.safe_dump({"invoice_out": [{"name": "Sales"}]}))

        catalogue = load_category_catalogue(path)

        assert len(catalogue.categories) == 1
        assert catalogue.categories[0].color == LedgerSettings.default_category_color
