"""Tests for the ledger_admin operator script, run in-process against file ledgers."""

import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "ledger_admin.py"


@pytest.fixture(scope="module")
def admin():
    spec = importlib.util.spec_from_file_location("ledger_admin", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


class TestLedgerAdmin:
    def test_init_then_check(self, admin, db_url, capsys):
        assert admin.main(["--db-url", db_url, "init"]) == 0
        assert admin.main(["--db-url", db_url, "check"]) == 0
        assert "ledger OK" in capsys.readouterr().out

    def test_export_import_round_trip(self, admin, db_url, tmp_path):
        backup = tmp_path / "backup.json"
        other_url = f"sqlite:///{tmp_path / 'restored.db'}"

        assert admin.main(["--db-url", db_url, "export", str(backup)]) == 0
        assert admin.main(["--db-url", other_url, "import", str(backup)]) == 0

        copy = tmp_path / "copy.json"
        assert admin.main(["--db-url", other_url, "export", str(copy)]) == 0
        assert copy.read_bytes() == backup.read_bytes()

    def test_bad_snapshot_exits_one(self, admin, db_url, tmp_path, capsys):
        garbage = tmp_path / "garbage.json"
        garbage.write_text('{"format": "spreadsheet"}')

        assert admin.main(["--db-url", db_url, "import", str(garbage)]) == 1
        assert "SNAPSHOT_FORMAT_ERROR" in capsys.readouterr().err

    def test_unknown_command_rejected(self, admin):
        with pytest.raises(SystemExit):
            admin.main(["vacuum"])
