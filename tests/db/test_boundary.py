"""
Tests for the LedgerDatabase transaction boundary.

Covers:
- the begin/commit/rollback state machine and its misuse errors
- a failed unit of work leaves the database byte-for-byte unchanged
- the dirty flag
- reads and exports never overlap an open write
- a file-backed ledger survives close and reopen
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_config.settings import LedgerSettings
from ledger_kernel.db.engine import LedgerDatabase, TxState, create_sqlite_engine
from ledger_kernel.exceptions import OverAllocationError, TransactionStateError


def _create_customer(store):
    return store.companies.create("Acme Yapi", "organization", "customer")


class TestStateMachine:
    def test_fresh_database_is_idle_and_clean(self, db):
        assert db.state is TxState.IDLE
        assert db.last_outcome is None
        assert not db.is_dirty()

    def test_begin_commit(self, db):
        store = db.begin()
        assert db.state is TxState.BEGUN
        _create_customer(store)
        db.commit()

        assert db.state is TxState.IDLE
        assert db.last_outcome is TxState.COMMITTED
        with db.read() as reader:
            assert [c.name for c in reader.companies.list()] == ["Acme Yapi"]

    def test_begin_rollback(self, db):
        _create_customer(db.begin())
        db.rollback()

        assert db.state is TxState.IDLE
        assert db.last_outcome is TxState.ROLLED_BACK
        with db.read() as reader:
            assert reader.companies.list() == []

    @pytest.mark.parametrize("operation", ["commit", "rollback"])
    def test_commit_or_rollback_without_begin(self, db, operation):
        with pytest.raises(TransactionStateError) as exc_info:
            getattr(db, operation)()
        assert exc_info.value.operation == operation
        assert exc_info.value.state == "IDLE"

    def test_commit_after_commit(self, db):
        db.begin()
        db.commit()
        with pytest.raises(TransactionStateError, match="IDLE"):
            db.commit()

    def test_nested_begin_rolls_back_open_transaction(self, db, captured_logs):
        _create_customer(db.begin())

        with pytest.raises(TransactionStateError, match="Cannot begin"):
            db.begin()

        assert db.last_outcome is TxState.ROLLED_BACK
        with db.read() as reader:
            assert reader.companies.list() == []
        assert any(r["message"] == "nested_begin_rejected" for r in captured_logs())

    def test_begin_again_after_finish(self, db):
        db.begin()
        db.rollback()
        db.begin()
        assert db.state is TxState.BEGUN
        db.commit()

    def test_close_rolls_back_open_transaction(self, settings, clock):
        database = LedgerDatabase(settings, clock)
        database.initialize()
        database.begin()

        database.close()

        assert database.state is TxState.IDLE
        assert database.last_outcome is TxState.ROLLED_BACK


class TestWithTransaction:
    def test_returns_result_and_commits(self, db):
        company = db.with_transaction(_create_customer)

        assert company.name == "Acme Yapi"
        assert db.last_outcome is TxState.COMMITTED
        assert db.is_dirty()

    def test_records_share_one_correlation_id(self, db, captured_logs):
        db.with_transaction(_create_customer)
        db.with_transaction(_create_customer)

        ids = [
            r["correlation_id"]
            for r in captured_logs()
            if r["message"] in ("company_created", "transaction_committed")
        ]
        assert len(ids) == 4
        assert ids[0] == ids[1] != ids[2] == ids[3]

    def test_failure_leaves_database_byte_identical(self, db):
        db.with_transaction(_create_customer)
        before = db.export_snapshot()

        def unit_of_work(store):
            customer = store.companies.list()[0]
            inv = store.transactions.create(
                "cari", "invoice_out", date(2024, 1, 1), "Sale", Decimal("4000.00"),
                company_id=customer.id,
            )
            pay = store.transactions.create(
                "cari", "payment_in", date(2024, 1, 2), "Collection", Decimal("5000.00"),
                company_id=customer.id,
            )
            store.allocations.set_allocations_for_payment(
                pay.id, [{"invoice_id": inv.id, "amount": "5000.00"}]
            )

        with pytest.raises(OverAllocationError):
            db.with_transaction(unit_of_work)

        assert db.last_outcome is TxState.ROLLED_BACK
        assert db.export_snapshot() == before

    def test_context_manager_form(self, db):
        with db.transaction() as store:
            _create_customer(store)
        assert db.last_outcome is TxState.COMMITTED

        with pytest.raises(RuntimeError):
            with db.transaction() as store:
                store.companies.create("Doomed", "person", "investor")
                raise RuntimeError("abort")

        with db.read() as reader:
            assert [c.name for c in reader.companies.list()] == ["Acme Yapi"]

    def test_rolled_back_ids_leave_no_gap(self, db):
        first = db.with_transaction(_create_customer)
        with pytest.raises(RuntimeError):
            with db.transaction() as store:
                store.companies.create("Temp", "person", "investor")
                raise RuntimeError("abort")

        second = db.with_transaction(
            lambda store: store.companies.create("Next", "person", "investor")
        )

        assert second.id == first.id + 1


class TestDirtyFlag:
    def test_read_only_commit_stays_clean(self, db):
        db.with_transaction(lambda store: store.companies.list())
        assert not db.is_dirty()

    def test_rollback_stays_clean(self, db):
        _create_customer(db.begin())
        db.rollback()
        assert not db.is_dirty()

    def test_clear_dirty(self, db):
        db.with_transaction(_create_customer)
        db.clear_dirty()
        assert not db.is_dirty()

    def test_export_leaves_flag(self, db):
        db.with_transaction(_create_customer)
        db.export_snapshot()
        assert db.is_dirty()


class TestReadsAndWrites:
    def test_read_refused_while_write_open(self, db):
        db.begin()
        with pytest.raises(TransactionStateError):
            with db.read():
                pass
        with pytest.raises(TransactionStateError):
            db.export_snapshot()
        with pytest.raises(TransactionStateError):
            db.check_integrity()
        db.rollback()

    def test_begin_refused_while_reading(self, db):
        with db.read():
            with pytest.raises(TransactionStateError, match="READING"):
                db.begin()
        assert db.state is TxState.IDLE

    def test_writes_through_read_store_are_discarded(self, db):
        with db.read() as store:
            _create_customer(store)
        with db.read() as store:
            assert store.companies.list() == []
        assert not db.is_dirty()


class TestEngineSetup:
    def test_non_sqlite_url_rejected(self):
        with pytest.raises(ValueError, match="Only SQLite"):
            create_sqlite_engine("postgresql://localhost/ledger")

    def test_foreign_keys_enforced(self, db):
        with db.engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1

    def test_file_ledger_survives_reopen(self, tmp_path, clock):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        first = LedgerDatabase(LedgerSettings(database_url=url), clock)
        first.initialize()
        first.with_transaction(_create_customer)
        first.close()

        second = LedgerDatabase(url, clock)
        second.initialize()
        try:
            with second.read() as store:
                assert [c.name for c in store.companies.list()] == ["Acme Yapi"]
                assert len(store.categories.list()) == 37
        finally:
            second.close()
