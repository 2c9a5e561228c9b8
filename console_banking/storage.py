"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing),
SQLite (default persistence) and PostgreSQL. All monetary values stored as
Decimal strings.

Every backend supports a re-entrant unit of work through atomic(): only the
outermost block commits, and any exception inside it rolls back every write
made since the block was entered.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import StoreUnavailable
from .logging_config import get_logger


logger = get_logger("console_banking.storage")

# Named counters used for log sequence and account numbers
SEQUENCES_TABLE = "sequences"


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        # Convert datetime objects to ISO strings
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        # Convert Decimal objects to strings
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._rollback_only = False

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """
        Load a record from storage

        for_update asks the backend to hold the record locked until the
        enclosing atomic() block ends.
        """
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters, in insertion order"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    # Backend hooks for the outermost transaction

    def _begin(self) -> None:
        pass

    def _commit(self) -> None:
        pass

    def _rollback(self) -> None:
        pass

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin_transaction(self) -> None:
        """Enter a (possibly nested) transaction; holds the storage lock until it ends"""
        self._lock.acquire()
        if self._depth == 0:
            try:
                self._begin()
            except BaseException:
                self._lock.release()
                raise
            self._rollback_only = False
        self._depth += 1

    def commit(self) -> None:
        """Leave a transaction level; the outermost level commits"""
        if self._depth == 0:
            raise RuntimeError("commit() called outside of a transaction")
        self._depth -= 1
        try:
            if self._depth == 0:
                if self._rollback_only:
                    self._rollback()
                    raise StoreUnavailable("Transaction rolled back after a nested failure")
                self._commit()
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Leave a transaction level; the outermost level discards all writes"""
        if self._depth == 0:
            raise RuntimeError("rollback() called outside of a transaction")
        self._depth -= 1
        try:
            if self._depth == 0:
                self._rollback()
            else:
                self._rollback_only = True
        finally:
            self._lock.release()

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def next_sequence(self, name: str, start: int = 0) -> int:
        """
        Allocate the next value of a named counter

        The counter row is read for update, so concurrent sessions on a
        shared database serialize on it until their units of work end.
        start seeds a counter that has no row yet.
        """
        with self.atomic():
            row = self.load(SEQUENCES_TABLE, name, for_update=True)
            value = (row['value'] if row else start) + 1
            self.save(SEQUENCES_TABLE, name, {"id": name, "value": value})
        return value


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._snapshot: Optional[str] = None
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable("In-memory storage is closed")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                # Deep copy to prevent external mutation
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(json.loads(json.dumps(record)))
            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            return len(self._data[table])

    def close(self) -> None:
        """Close storage; further access raises StoreUnavailable"""
        with self._lock:
            self._closed = True

    def _begin(self) -> None:
        self._check_open()
        self._snapshot = json.dumps(self._data)

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._data = json.loads(self._snapshot)
            self._snapshot = None


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        super().__init__()
        self.db_path = str(db_path)
        self._tables = set()
        try:
            # Autocommit mode; transactions are issued explicitly by _begin()
            self._connection = sqlite3.connect(
                self.db_path, timeout=timeout, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open SQLite database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock, self._guard("configure"):
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    @contextmanager
    def _guard(self, operation: str):
        """Translate driver errors into StoreUnavailable"""
        if self._connection is None:
            raise StoreUnavailable("SQLite storage is closed")
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"SQLite {operation} failed: {e}")
            raise StoreUnavailable(f"SQLite {operation} failed: {e}") from e

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        # Create index on timestamps for better query performance
        self._connection.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock, self._guard("save"):
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Use INSERT OR REPLACE to handle updates
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite (BEGIN IMMEDIATE already holds the write lock)"""
        with self._lock, self._guard("load"):
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock, self._guard("load_all"):
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock, self._guard("exists"):
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        with self._lock, self._guard("find"):
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(record)

            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock, self._guard("count"):
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def _begin(self) -> None:
        # IMMEDIATE takes the write lock up front so a balance read inside
        # the block cannot be invalidated by another connection
        with self._guard("begin"):
            self._connection.execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        try:
            with self._guard("commit"):
                self._connection.execute("COMMIT")
        except StoreUnavailable:
            self._rollback()
            raise

    def _rollback(self) -> None:
        # Tables created inside the discarded transaction are gone too
        self._tables.clear()
        if self._connection is not None and self._connection.in_transaction:
            with self._guard("rollback"):
                self._connection.execute("ROLLBACK")

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(StorageInterface):
    """PostgreSQL storage backend with ACID transaction support"""

    def __init__(self, connection_string: str):
        super().__init__()
        try:
            import psycopg2
            import psycopg2.extras
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError(
                "psycopg2 is required for PostgreSQL storage. "
                "Install with: pip install 'console-banking[postgres]'"
            )

        self.connection_string = connection_string
        self._connection = None
        self._tables = set()
        self._connect()

    def _connect(self) -> None:
        """Establish database connection"""
        try:
            self._connection = self.psycopg2.connect(
                self.connection_string,
                cursor_factory=self.extras.RealDictCursor
            )
        except self.psycopg2.Error as e:
            raise StoreUnavailable(f"Cannot connect to PostgreSQL: {e}") from e
        self._connection.autocommit = False  # We handle transactions manually

    @contextmanager
    def _cursor(self, operation: str):
        """Yield a cursor; commit standalone writes and translate driver errors"""
        if self._connection is None:
            raise StoreUnavailable("PostgreSQL storage is closed")
        cursor = self._connection.cursor()
        try:
            yield cursor
            if not self.in_transaction:
                self._connection.commit()
        except self.psycopg2.Error as e:
            if not self.in_transaction:
                self._connection.rollback()
            logger.error(f"PostgreSQL {operation} failed: {e}")
            raise StoreUnavailable(f"PostgreSQL {operation} failed: {e}") from e
        finally:
            cursor.close()

    def _ensure_table(self, cursor, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data JSONB NOT NULL,
                seq BIGSERIAL,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        cursor.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_data
            ON {table} USING gin(data)
        """)
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to PostgreSQL using UPSERT"""
        with self._lock, self._cursor("save") as cursor:
            self._ensure_table(cursor, table)
            now = datetime.now(timezone.utc)
            data_json = json.dumps(data, default=str)
            cursor.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    data = EXCLUDED.data,
                    updated_at = EXCLUDED.updated_at
            """, (record_id, data_json, now, now))

    def load(self, table: str, record_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """Load a record from PostgreSQL, row-locked when for_update is set"""
        lock_clause = " FOR UPDATE" if for_update and self.in_transaction else ""
        with self._lock, self._cursor("load") as cursor:
            self._ensure_table(cursor, table)
            cursor.execute(f"""
                SELECT data FROM {table} WHERE id = %s{lock_clause}
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return dict(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock, self._cursor("load_all") as cursor:
            self._ensure_table(cursor, table)
            cursor.execute(f"""
                SELECT data FROM {table} ORDER BY seq
            """)
            return [dict(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock, self._cursor("exists") as cursor:
            self._ensure_table(cursor, table)
            cursor.execute(f"""
                SELECT 1 FROM {table} WHERE id = %s LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSONB containment"""
        with self._lock, self._cursor("find") as cursor:
            self._ensure_table(cursor, table)
            if not filters:
                cursor.execute(f"""
                    SELECT data FROM {table} ORDER BY seq
                """)
            else:
                cursor.execute(f"""
                    SELECT data FROM {table}
                    WHERE data @> %s::jsonb
                    ORDER BY seq
                """, (json.dumps(filters, default=str),))
            return [dict(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock, self._cursor("count") as cursor:
            self._ensure_table(cursor, table)
            cursor.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def _commit(self) -> None:
        try:
            self._connection.commit()
        except self.psycopg2.Error as e:
            self._rollback()
            raise StoreUnavailable(f"PostgreSQL commit failed: {e}") from e

    def _rollback(self) -> None:
        self._tables.clear()
        if self._connection is not None:
            try:
                self._connection.rollback()
            except self.psycopg2.Error as e:
                raise StoreUnavailable(f"PostgreSQL rollback failed: {e}") from e

    def close(self) -> None:
        """Close PostgreSQL connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str, timeout: float = 5.0) -> StorageInterface:
    """
    Build a storage backend from a database URL

    Supported forms: "memory://", "sqlite://" (in-memory SQLite),
    "sqlite:///relative/or/absolute/path.db", "postgresql://..." and
    "postgres://...".
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()

    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:", timeout=timeout)

    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)

    raise ValueError(f"Unsupported database URL: {database_url}")
