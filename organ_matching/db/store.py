"""
Record Store Abstraction

This module defines the RecordStore interface and provides two implementations:
- InMemoryRecordStore: For development and testing
- PostgresRecordStore: For production with full durability and concurrency safety

The RecordStore is responsible for:
- Durable keyed storage of records (key = record kind + ref)
- All-or-nothing application of a unit of work
- Conflict detection between concurrent writers (record versions)

The MatchingService retains responsibility for:
- Authorization and validation
- Scoring and selection
- Lifecycle state machine enforcement

TRANSACTION CONTRACT:
Every operation MUST run inside the begin() context manager:

    with store.begin() as uow:
        proposal = uow.get(MatchProposal, ref)
        ...
        uow.put(updated_proposal)
        uow.commit()

Nothing staged on the unit of work is visible to anyone else until
commit() succeeds. Leaving the block without commit() rolls back.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Generator, Optional, TypeVar
from uuid import UUID

from psycopg2.extras import Json

from ..schemas import (
    AuthorityRecord,
    DonorRecord,
    MatchProposal,
    ProgramState,
    RecipientRecord,
    StoredRecord,
)


R = TypeVar("R", bound=StoredRecord)

RecordKey = tuple[str, UUID]

RECORD_TYPES: dict[str, type[StoredRecord]] = {
    model.record_kind: model
    for model in (ProgramState, AuthorityRecord, RecipientRecord, DonorRecord, MatchProposal)
}


# ============================================================
# EXCEPTIONS
# ============================================================

class StoreError(Exception):
    """Base exception for record store errors."""
    pass


class ConcurrencyError(StoreError):
    """Raised when a record changed since it was read."""
    pass


class RecordExistsError(ConcurrencyError):
    """Raised when inserting a key that is already taken."""
    pass


class LockTimeoutError(StoreError):
    """Raised when lock acquisition times out (record busy)."""
    pass


def _key(record: StoredRecord) -> RecordKey:
    return (record.record_kind, record.ref)


def _to_body(record: StoredRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"version"})


def _from_body(model: type[R], body: dict[str, Any], version: int) -> R:
    return model.model_validate({**body, "version": version})


# ============================================================
# UNIT OF WORK
# ============================================================

@dataclass
class UnitOfWork:
    """
    Transaction context for one public operation.

    Holds the staged inserts and updates and, for database stores, the
    connection they will be committed on.

    THREAD SAFETY: All transaction state (conn, cursor, staged writes) is
    stored HERE, not on the store. The same store instance can be shared
    by multiple threads.

    Versions: a record returned by get() carries the version it was read
    at. put() expects that version to still be current at commit time.
    After a successful commit every staged record carries its new version.
    """
    _store: "RecordStore"
    read_only: bool = False
    _conn: Any = field(default=None)
    _cursor: Any = field(default=None)
    _inserts: dict[RecordKey, StoredRecord] = field(default_factory=dict)
    _updates: dict[RecordKey, StoredRecord] = field(default_factory=dict)
    _committed: bool = field(default=False, init=False)
    _rolled_back: bool = field(default=False, init=False)

    def _check_open(self) -> None:
        if self._committed:
            raise StoreError("Transaction already committed")
        if self._rolled_back:
            raise StoreError("Transaction already rolled back")

    def get(self, model: type[R], ref: UUID, lock: bool = True) -> Optional[R]:
        """
        Read a record, seeing this unit's own staged writes first.

        With ``lock=False`` a database store reads without taking the row
        lock. Use it for records this unit only inspects; records that are
        written are still version-checked at commit.

        Returns None if the record does not exist.
        """
        self._check_open()
        key = (model.record_kind, ref)
        staged = self._updates.get(key) or self._inserts.get(key)
        if staged is not None:
            return staged.model_copy(deep=True)
        return self._store._do_get(self, model, ref, lock)

    def add(self, record: StoredRecord) -> None:
        """Stage an insert. The key must not exist at commit time."""
        self._check_open()
        self._require_writable()
        key = _key(record)
        if key in self._inserts or key in self._updates:
            raise RecordExistsError(f"{record.record_kind} {record.ref} already staged")
        self._inserts[key] = record

    def put(self, record: StoredRecord) -> None:
        """Stage an update of a record previously read in this unit."""
        self._check_open()
        self._require_writable()
        key = _key(record)
        if key in self._inserts:
            # Inserted in this unit: the insert simply carries the new content
            self._inserts[key] = record
        else:
            self._updates[key] = record

    def commit(self) -> None:
        """
        Apply every staged write atomically.

        Raises:
            RecordExistsError: an insert collided with an existing key
            ConcurrencyError: an updated record changed since it was read
        """
        self._check_open()
        self._require_writable()
        self._store._do_commit(self)
        self._committed = True
        for record in self._inserts.values():
            record.version = 1
        for record in self._updates.values():
            record.version += 1

    def rollback(self) -> None:
        """Explicitly rollback this transaction."""
        if not self._committed and not self._rolled_back:
            self._store._do_rollback(self)
            self._rolled_back = True

    def _require_writable(self) -> None:
        if self.read_only:
            raise StoreError("Unit of work is read-only")


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class RecordStore(ABC):
    """
    Abstract base class for record storage.

    Implementations must ensure:
    1. A unit of work applies entirely or not at all
    2. An insert fails if its key exists (RecordExistsError)
    3. An update fails if the stored version moved on (ConcurrencyError)

    CRITICAL: Always use begin() for reads and writes:

        with store.begin() as uow:
            ...
            uow.commit()
    """

    @contextmanager
    @abstractmethod
    def begin(self, read_only: bool = False) -> Generator[UnitOfWork, None, None]:
        """
        Begin a unit of work.

        Auto-rollbacks if the block exits without commit().
        """
        pass

    @abstractmethod
    def _do_get(self, uow: UnitOfWork, model: type[R], ref: UUID, lock: bool = True) -> Optional[R]:
        """Internal: load one record. Use uow.get() instead."""
        pass

    @abstractmethod
    def _do_commit(self, uow: UnitOfWork) -> None:
        """Internal: apply staged writes. Use uow.commit() instead."""
        pass

    @abstractmethod
    def _do_rollback(self, uow: UnitOfWork) -> None:
        """Internal: discard staged writes. Use uow.rollback() instead."""
        pass

    @abstractmethod
    def count(self, kind: str) -> int:
        """Number of stored records of one kind."""
        pass

    def ping(self) -> None:
        """Raise if the store is unreachable."""
        self.count(ProgramState.record_kind)


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryRecordStore(RecordStore):
    """
    In-memory implementation of RecordStore.

    Suitable for:
    - Development
    - Testing
    - Single-instance deployments without persistence requirements

    NOT suitable for:
    - Production (no durability)
    - Multi-instance deployments (no shared state)

    Records are kept as JSON bodies, so callers never share
    mutable objects with the store.
    """

    def __init__(self):
        self._rows: dict[RecordKey, tuple[int, dict[str, Any]]] = {}
        self._lock = Lock()

    @contextmanager
    def begin(self, read_only: bool = False) -> Generator[UnitOfWork, None, None]:
        """Begin a unit of work (validated and applied under a lock at commit)."""
        uow = UnitOfWork(_store=self, read_only=read_only, _conn="in_memory")

        try:
            yield uow
        finally:
            if not uow._committed and not uow._rolled_back:
                uow.rollback()

    def _do_get(self, uow: UnitOfWork, model: type[R], ref: UUID, lock: bool = True) -> Optional[R]:
        with self._lock:
            row = self._rows.get((model.record_kind, ref))
        if row is None:
            return None
        version, body = row
        return _from_body(model, body, version)

    def _do_commit(self, uow: UnitOfWork) -> None:
        if uow._conn != "in_memory":
            raise StoreError("_do_commit called outside transaction")

        with self._lock:
            # Validate everything before touching anything
            for key in uow._inserts:
                if key in self._rows:
                    raise RecordExistsError(f"{key[0]} {key[1]} already exists")
            for key, record in uow._updates.items():
                row = self._rows.get(key)
                if row is None:
                    raise ConcurrencyError(f"{key[0]} {key[1]} no longer exists")
                if row[0] != record.version:
                    raise ConcurrencyError(
                        f"{key[0]} {key[1]} changed concurrently: read version "
                        f"{record.version}, stored version {row[0]}"
                    )

            for key, record in uow._inserts.items():
                self._rows[key] = (1, _to_body(record))
            for key, record in uow._updates.items():
                self._rows[key] = (record.version + 1, _to_body(record))

        uow._conn = None

    def _do_rollback(self, uow: UnitOfWork) -> None:
        uow._inserts.clear()
        uow._updates.clear()
        uow._conn = None

    def count(self, kind: str) -> int:
        with self._lock:
            return sum(1 for row_kind, _ in self._rows if row_kind == kind)

    def clear(self) -> None:
        """Clear all records (for testing only)."""
        with self._lock:
            self._rows.clear()


# ============================================================
# POSTGRESQL IMPLEMENTATION (SYNC)
# ============================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS organ_records (
    kind        TEXT        NOT NULL,
    ref         UUID        NOT NULL,
    version     INTEGER     NOT NULL,
    body        JSONB       NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (kind, ref)
)
"""


class PostgresRecordStore(RecordStore):
    """
    PostgreSQL implementation of RecordStore.

    Provides:
    - Full ACID guarantees
    - Row locking via SELECT ... FOR UPDATE for records read with lock=True
    - Version-checked updates (UPDATE ... WHERE version = %s)
    - Lock/statement timeouts to prevent hanging

    Requirements:
    - PostgreSQL 12+
    - Table created with ensure_schema() (or SCHEMA_SQL)
    - psycopg2 for connection

    Usage:
        store = PostgresRecordStore(connection_factory)

        with store.begin() as uow:
            ...
            uow.commit()
    """

    # Timeouts to prevent hanging under load
    LOCK_TIMEOUT_MS = 2000  # 2 seconds
    STATEMENT_TIMEOUT_MS = 10000  # 10 seconds

    # psycopg2 error codes for lock/statement timeout
    PGCODE_LOCK_NOT_AVAILABLE = '55P03'
    PGCODE_QUERY_CANCELED = '57014'

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        lock_timeout_ms: int = LOCK_TIMEOUT_MS,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        """
        Initialize PostgreSQL record store.

        Args:
            connection_factory: Callable that returns a psycopg2 connection.
            lock_timeout_ms: How long to wait for row lock (ms). Default 2000.
            statement_timeout_ms: Max statement execution time (ms). Default 10000.
        """
        self._connection_factory = connection_factory
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    def ensure_schema(self) -> None:
        """Create the records table if it does not exist."""
        conn = self._connection_factory()
        cursor = conn.cursor()
        try:
            cursor.execute(SCHEMA_SQL)
            conn.commit()
        finally:
            cursor.close()
            conn.close()

    @contextmanager
    def begin(self, read_only: bool = False) -> Generator[UnitOfWork, None, None]:
        """
        Begin a unit of work on a dedicated connection.

        The connection and transaction are scoped to this context manager,
        so reads, row locks and the final commit share one transaction.
        """
        conn = self._connection_factory()
        conn.autocommit = False
        cursor = conn.cursor()
        uow = None

        try:
            # SET LOCAL keeps timeouts transaction-scoped
            cursor.execute(f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'")
            cursor.execute(f"SET LOCAL statement_timeout = '{self._statement_timeout_ms}ms'")

            uow = UnitOfWork(_store=self, read_only=read_only, _conn=conn, _cursor=cursor)

            yield uow

        finally:
            if uow is None or not uow._committed:
                conn.rollback()
                if uow is not None:
                    uow._rolled_back = True
            try:
                cursor.close()
            finally:
                conn.close()

    def _timeout_kind(self, e: Exception) -> Optional[str]:
        """
        Determine the type of timeout from a PostgreSQL exception.

        Returns:
            "lock" - Lock-related failure (timeout waiting, or NOWAIT refusal)
            "statement" - Statement timeout (query took too long)
            "timeout" - Some timeout but unclear which
            None - Not a timeout error

        NOTE: PostgreSQL uses 57014 (query_canceled) for BOTH lock_timeout and
        statement_timeout. They are told apart by the error message.
        """
        pgcode = getattr(e, 'pgcode', None)
        err_msg = (getattr(e, 'pgerror', None) or str(e)).lower()

        if pgcode == self.PGCODE_LOCK_NOT_AVAILABLE:
            return "lock"

        if pgcode == self.PGCODE_QUERY_CANCELED:
            if 'lock timeout' in err_msg or 'lock_timeout' in err_msg:
                return "lock"
            if 'statement timeout' in err_msg or 'statement_timeout' in err_msg:
                return "statement"
            return "timeout"

        return None

    def _execute(self, cursor: Any, sql: str, params: tuple) -> None:
        try:
            cursor.execute(sql, params)
        except Exception as e:
            kind = self._timeout_kind(e)
            if kind == "lock":
                raise LockTimeoutError(
                    "Record busy - could not acquire lock. Try again."
                ) from e
            if kind is not None:
                raise StoreError("Query timed out - statement took too long.") from e
            raise

    def _do_get(self, uow: UnitOfWork, model: type[R], ref: UUID, lock: bool = True) -> Optional[R]:
        if uow._cursor is None:
            raise StoreError("_do_get called outside begin() context")

        lock_clause = " FOR UPDATE" if lock and not uow.read_only else ""
        self._execute(
            uow._cursor,
            "SELECT version, body FROM organ_records "
            "WHERE kind = %s AND ref = %s" + lock_clause,
            (model.record_kind, str(ref)),
        )
        row = uow._cursor.fetchone()
        if row is None:
            return None
        return _from_body(model, row[1], row[0])

    def _do_commit(self, uow: UnitOfWork) -> None:
        """Write staged records within the current transaction, then commit."""
        if uow._cursor is None or uow._conn is None:
            raise StoreError("_do_commit called outside begin() context")

        cursor = uow._cursor

        for (kind, ref), record in uow._inserts.items():
            self._execute(
                cursor,
                """
                INSERT INTO organ_records (kind, ref, version, body)
                VALUES (%s, %s, 1, %s)
                ON CONFLICT (kind, ref) DO NOTHING
                """,
                (kind, str(ref), Json(_to_body(record))),
            )
            if cursor.rowcount == 0:
                raise RecordExistsError(f"{kind} {ref} already exists")

        for (kind, ref), record in uow._updates.items():
            self._execute(
                cursor,
                """
                UPDATE organ_records
                SET version = version + 1, body = %s, updated_at = now()
                WHERE kind = %s AND ref = %s AND version = %s
                """,
                (Json(_to_body(record)), kind, str(ref), record.version),
            )
            if cursor.rowcount == 0:
                raise ConcurrencyError(
                    f"{kind} {ref} changed concurrently (expected version {record.version})"
                )

        uow._conn.commit()

    def _do_rollback(self, uow: UnitOfWork) -> None:
        """Rollback current transaction using connection method."""
        uow._inserts.clear()
        uow._updates.clear()
        if uow._conn is not None:
            uow._conn.rollback()

    def count(self, kind: str) -> int:
        conn = self._connection_factory()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT COUNT(*) FROM organ_records WHERE kind = %s", (kind,))
            return cursor.fetchone()[0]
        finally:
            cursor.close()
            conn.close()
