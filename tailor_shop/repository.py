"""Simple in-memory repositories used by the service layer."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, List, MutableMapping, TypeVar

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}
        self._lock = threading.RLock()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Serialise read-check-write sequences against this repository."""

        with self._lock:
            yield

    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._items[item_id] = item

    def upsert(self, item_id: str, item: T) -> None:
        with self._lock:
            self._items[item_id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        with self._lock:
            if item_id not in self._items:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            del self._items[item_id]

    def list(self) -> List[T]:
        return list(self._items.values())

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items.values() if predicate(item)]

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))


__all__ = [
    "InMemoryRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
