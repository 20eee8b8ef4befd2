"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine setup for a SQLite ledger file and the
    transaction boundary every mutation goes through.  This is the single
    point of database connection configuration.
Architecture position: Kernel > DB.  Builds LedgerStore instances for the
    services layer; nothing below the boundary commits.

Invariants enforced:
    - SQLite is the only backend.  Every connection runs with
      ``PRAGMA foreign_keys=ON`` and with pysqlite's implicit transaction
      handling switched off, so BEGIN/SAVEPOINT/ROLLBACK are issued by
      SQLAlchemy exactly as written.
    - One write transaction at a time.  State machine::

          IDLE --begin--> BEGUN --commit--> COMMITTED --> IDLE
                                \\-rollback-> ROLLED_BACK --> IDLE

      COMMITTED and ROLLED_BACK last only while the finished session is
      closed; ``last_outcome`` keeps the result afterwards.

      ``begin`` while BEGUN rolls the open transaction back and raises
      TransactionStateError; ``commit``/``rollback`` outside BEGUN raise it.
    - A failing ``with_transaction`` leaves the database byte-for-byte as
      it was before ``begin``.
    - The dirty flag is raised by a commit that carried a mutation and is
      lowered only by ``clear_dirty`` (or a snapshot load).
    - Exports, diagnostics and reads never observe an open write.

Failure modes:
    - TransactionStateError for nested or unbalanced begin/commit/rollback,
      and for exports or reads attempted while a write is open.
    - SnapshotFormatError from ``load_from_snapshot`` (ledger unchanged).
    - IntegrityError from ``assert_healthy``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from enum import Enum
from typing import TypeVar
from uuid import uuid4

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_config.settings import LedgerSettings
from ledger_kernel.db import integrity, snapshot
from ledger_kernel.db.base import Base
from ledger_kernel.db.guards import register_guard_listeners
from ledger_kernel.db.migrations import run_pending
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import IntegrityError, SnapshotFormatError, TransactionStateError
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.services.base import DIRTY_KEY
from ledger_kernel.services.ledger_store import LedgerStore

logger = get_logger("db.engine")

T = TypeVar("T")


class TxState(str, Enum):
    IDLE = "IDLE"
    BEGUN = "BEGUN"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


def _is_memory_url(url: str) -> bool:
    return make_url(url).database in (None, "", ":memory:")


def create_sqlite_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Engine with foreign keys on and SAVEPOINT-safe transaction control.

    In-memory databases share one connection (StaticPool); otherwise the
    data would vanish with the first connection returned to the pool.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        raise ValueError(f"Only SQLite ledgers are supported, got {url.get_backend_name()!r}")

    options: dict = {"echo": echo}
    if _is_memory_url(database_url):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    engine = create_engine(database_url, **options)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself; pysqlite would defer it.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


class LedgerDatabase:
    """
    The persistence boundary around one ledger database.

    Usage:
        db = LedgerDatabase(settings)
        db.initialize()
        company = db.with_transaction(
            lambda store: store.companies.create("Acme", "organization", "customer")
        )
        if db.is_dirty():
            backup.write(db.export_snapshot())
            db.clear_dirty()
    """

    def __init__(
        self,
        settings: LedgerSettings | str | None = None,
        clock: Clock | None = None,
        echo: bool = False,
    ):
        if isinstance(settings, str):
            settings = LedgerSettings(database_url=settings)
        self.settings = settings or LedgerSettings()
        self.clock = clock or SystemClock()

        configure_logging(level=self.settings.log_level)
        self.engine = create_sqlite_engine(self.settings.database_url, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

        self._lock = threading.Lock()
        self._state = TxState.IDLE
        self._last_outcome: TxState | None = None
        self._session: Session | None = None
        self._readers = 0
        self._dirty = False

        logger.info(
            "engine_initialized",
            extra={
                "dialect": "sqlite",
                "in_memory": _is_memory_url(self.settings.database_url),
                "base_currency": self.settings.base_currency,
            },
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create missing tables and apply pending migrations.  Idempotent."""
        Base.metadata.create_all(self.engine)
        register_guard_listeners()
        with self._session_factory() as session:
            try:
                ran = run_pending(session, self.clock)
                session.commit()
            except Exception:
                session.rollback()
                logger.error("ledger_initialization_failed", exc_info=True)
                raise
        logger.info(
            "ledger_initialized",
            extra={"migrations_applied": [m.name for m in ran]},
        )

    def close(self) -> None:
        if self._state is TxState.BEGUN:
            self.rollback()
        self.engine.dispose()
        logger.info("engine_closed")

    @property
    def state(self) -> TxState:
        return self._state

    @property
    def last_outcome(self) -> TxState | None:
        """COMMITTED or ROLLED_BACK for the most recent transaction; None before the first."""
        return self._last_outcome

    # ------------------------------------------------------------------
    # Write transactions
    # ------------------------------------------------------------------

    def _store(self, session: Session) -> LedgerStore:
        return LedgerStore(session, self.clock, self.settings)

    def begin(self) -> LedgerStore:
        """
        Open the write transaction and return the store bound to it.

        Raises:
            TransactionStateError: A transaction or read is already open.
                An open transaction is rolled back first.
        """
        with self._lock:
            state, reading = self._state, self._readers > 0
            if state is not TxState.BEGUN and not reading:
                self._session = self._session_factory()
                self._session.begin()
                self._state = TxState.BEGUN
        if state is TxState.BEGUN:
            logger.error("nested_begin_rejected")
            self.rollback()
            raise TransactionStateError("begin", state.value)
        if reading:
            raise TransactionStateError("begin", "READING")
        logger.debug("transaction_started")
        return self._store(self._session)

    def _finish(self, operation: str) -> Session:
        with self._lock:
            if self._state is not TxState.BEGUN:
                raise TransactionStateError(operation, self._state.value)
            session, self._session = self._session, None
            self._state = TxState.COMMITTED if operation == "commit" else TxState.ROLLED_BACK
            self._last_outcome = self._state
        return session

    def _settle(self) -> None:
        with self._lock:
            if self._state in (TxState.COMMITTED, TxState.ROLLED_BACK):
                self._state = TxState.IDLE

    def commit(self) -> None:
        """Make the open transaction durable; raise the dirty flag if it wrote."""
        if self._state is not TxState.BEGUN:
            raise TransactionStateError("commit", self._state.value)
        try:
            self._session.commit()
        except Exception:
            self.rollback(exc_info=True)
            raise
        session = self._finish("commit")
        try:
            mutated = bool(session.info.pop(DIRTY_KEY, False))
            session.close()
            if mutated:
                self._dirty = True
            logger.info("transaction_committed", extra={"mutated": mutated})
        finally:
            self._settle()

    def rollback(self, exc_info: bool = False) -> None:
        """Undo everything done since ``begin``."""
        session = self._finish("rollback")
        try:
            session.rollback()
        finally:
            session.close()
            self._settle()
        if exc_info:
            logger.warning("transaction_rolled_back", exc_info=True)
        else:
            logger.info("transaction_rolled_back")

    def with_transaction(self, fn: Callable[[LedgerStore], T]) -> T:
        """
        Run ``fn(store)`` in one transaction: commit on return, roll back and
        re-raise on any exception.  Every record logged inside carries one
        correlation_id.
        """
        with LogContext.bind(correlation_id=str(uuid4())):
            store = self.begin()
            try:
                result = fn(store)
            except Exception:
                if self._state is TxState.BEGUN:
                    self.rollback(exc_info=True)
                raise
            self.commit()
        return result

    @contextmanager
    def transaction(self) -> Generator[LedgerStore, None, None]:
        """
        Context-manager form of ``with_transaction``.

        Usage:
            with db.transaction() as store:
                store.transactions.create(...)
        """
        store = self.begin()
        try:
            yield store
        except Exception:
            if self._state is TxState.BEGUN:
                self.rollback(exc_info=True)
            raise
        self.commit()

    # ------------------------------------------------------------------
    # Consistent reads
    # ------------------------------------------------------------------

    def _enter_read(self, operation: str) -> None:
        with self._lock:
            if self._state is TxState.BEGUN:
                raise TransactionStateError(operation, self._state.value)
            self._readers += 1

    def _exit_read(self) -> None:
        with self._lock:
            self._readers -= 1

    @contextmanager
    def read(self) -> Generator[LedgerStore, None, None]:
        """
        A store over one read transaction.  Writes made through it are
        discarded on exit.

        Raises:
            TransactionStateError: A write transaction is open.
        """
        self._enter_read("read")
        try:
            with self._session_factory() as session:
                session.begin()
                try:
                    yield self._store(session)
                finally:
                    session.rollback()
        finally:
            self._exit_read()

    @contextmanager
    def _read_connection(self, operation: str) -> Generator[Connection, None, None]:
        self._enter_read(operation)
        try:
            with self.engine.connect() as conn, conn.begin():
                yield conn
        finally:
            self._exit_read()

    # ------------------------------------------------------------------
    # Dirty tracking
    # ------------------------------------------------------------------

    def is_dirty(self) -> bool:
        return self._dirty

    def clear_dirty(self) -> None:
        self._dirty = False

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_snapshot(self) -> bytes:
        """Whole ledger as deterministic bytes.  Leaves the dirty flag alone."""
        with self._read_connection("export_snapshot") as conn:
            return snapshot.export_snapshot(conn, indent=self.settings.snapshot_indent)

    def load_from_snapshot(self, data: bytes) -> None:
        """
        Replace the whole ledger with a snapshot and apply any migrations
        its log lacks.  All or nothing: the loaded rows are scanned with
        the integrity checks before commit.

        Raises:
            TransactionStateError: A transaction or read is open.
            SnapshotFormatError: The bytes are not a loadable snapshot, or
                the rows they hold break a ledger invariant.
        """
        content = snapshot.read_snapshot(data)
        with self._lock:
            if self._state is TxState.BEGUN:
                raise TransactionStateError("load_from_snapshot", self._state.value)
            if self._readers:
                raise TransactionStateError("load_from_snapshot", "READING")
            self._state = TxState.BEGUN
        try:
            with self._session_factory() as session:
                try:
                    with session.begin():
                        connection = session.connection()
                        snapshot.load_snapshot(connection, content)
                        ran = run_pending(session, self.clock)
                        session.flush()
                        snapshot.verify_loaded(connection)
                except Exception as exc:
                    logger.warning("snapshot_load_rolled_back", exc_info=True)
                    if isinstance(exc, SAIntegrityError):
                        raise SnapshotFormatError(
                            f"rows rejected by the database ({exc.orig})"
                        ) from exc
                    raise
        finally:
            with self._lock:
                self._state = TxState.IDLE
        self._dirty = bool(ran)
        logger.info(
            "snapshot_load_committed",
            extra={"migrations_applied": [m.name for m in ran]},
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_integrity(self) -> integrity.IntegrityReport:
        with self._read_connection("check_integrity") as conn:
            return integrity.check_integrity(conn)

    def check_foreign_keys(self) -> integrity.IntegrityReport:
        with self._read_connection("check_foreign_keys") as conn:
            return integrity.check_foreign_keys(conn)

    def assert_healthy(self) -> None:
        """
        Raises:
            IntegrityError: Either scan reported a violation.
        """
        violations = self.check_foreign_keys().violations + self.check_integrity().violations
        if violations:
            raise IntegrityError(violations)
