"""SQLite-backed persistence helpers for the tailor shop."""

from __future__ import annotations

import logging
import pickle
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from .domain import (
    Customer,
    Employee,
    MaterialUsage,
    Measurement,
    Order,
    PurchaseOrder,
    Supplier,
    Task,
)
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class _ConnectionGuard:
    """Shares one lock and transaction depth between repositories of a connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection
        self.lock = threading.RLock()
        self.depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.lock:
            outermost = self.depth == 0
            if outermost:
                self.connection.execute("BEGIN IMMEDIATE")
            self.depth += 1
            try:
                yield
            except BaseException:
                self.depth -= 1
                if outermost:
                    self.connection.execute("ROLLBACK")
                    logger.debug("Rolled back SQLite transaction")
                raise
            else:
                self.depth -= 1
                if outermost:
                    self.connection.execute("COMMIT")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite."""

    def __init__(self, guard: _ConnectionGuard, table: str) -> None:
        self._guard = guard
        self._connection = guard.connection
        self._table = table
        with self._guard.lock:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        with self._guard.lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        with self._guard.lock:
            cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
            value = cursor.fetchone()
        return int(value[0]) if value else 0

    def transaction(self):
        return self._guard.transaction()

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        with self._guard.transaction():
            if item_id in self:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
                (item_id, pickle.dumps(item)),
            )

    def upsert(self, item_id: str, item: T) -> None:
        with self._guard.transaction():
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
                (item_id, pickle.dumps(item)),
            )

    def get(self, item_id: str) -> T:
        with self._guard.lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        with self._guard.transaction():
            cursor = self._connection.execute(
                f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        with self._guard.lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} ORDER BY id"
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class ShopDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        guard = _ConnectionGuard(connection)
        self._guard = guard
        self.customers = SQLiteRepository[Customer](guard, "customers")
        self.measurements = SQLiteRepository[Measurement](guard, "measurements")
        self.orders = SQLiteRepository[Order](guard, "orders")
        self.tasks = SQLiteRepository[Task](guard, "tasks")
        self.employees = SQLiteRepository[Employee](guard, "employees")
        self.suppliers = SQLiteRepository[Supplier](guard, "suppliers")
        self.purchase_orders = SQLiteRepository[PurchaseOrder](guard, "purchase_orders")
        self.material_usage = SQLiteRepository[MaterialUsage](guard, "material_usage")
        logger.info("Opened tailor shop database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def transaction(self):
        return self._guard.transaction()

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "ShopDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "ShopDatabase"]
