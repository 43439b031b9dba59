"""
In-memory aggregate store.

Holds one kind of aggregate (visitors or content items) keyed by id and
hands out one re-entrant lock per id. Mutations of an aggregate run inside
``store.lock(aggregate_id)``; different ids never share a lock, so tracking
calls for different visitors proceed in parallel.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Iterator, List, TypeVar

from ..exceptions import UnknownAggregateError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryStore(Generic[T]):
    """Dictionary-backed store with per-aggregate locking."""

    def __init__(self, aggregate_type: str):
        """
        Args:
            aggregate_type: Name used in errors and logs, e.g. "visitor".
        """
        self.aggregate_type = aggregate_type
        self._items: Dict[str, T] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, aggregate_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(aggregate_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[aggregate_id] = lock
            return lock

    @contextmanager
    def lock(self, aggregate_id: str) -> Iterator[None]:
        """Serialize access to one aggregate."""
        lock = self._lock_for(aggregate_id)
        with lock:
            yield

    def get(self, aggregate_id: str) -> T:
        """
        Return the aggregate for ``aggregate_id``.

        Raises:
            UnknownAggregateError: If the id has never been stored.
        """
        try:
            return self._items[aggregate_id]
        except KeyError:
            raise UnknownAggregateError(self.aggregate_type, aggregate_id) from None

    def get_or_create(self, aggregate_id: str, factory: Callable[[], T]) -> T:
        """Return the aggregate, creating it with ``factory`` on first use."""
        with self.lock(aggregate_id):
            item = self._items.get(aggregate_id)
            if item is None:
                item = factory()
                with self._registry_lock:
                    self._items[aggregate_id] = item
                logger.debug(f"Created {self.aggregate_type} aggregate {aggregate_id}")
            return item

    def put(self, aggregate_id: str, item: T) -> None:
        with self.lock(aggregate_id), self._registry_lock:
            self._items[aggregate_id] = item

    def ids(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._items)

    def values(self) -> List[T]:
        """Snapshot of all aggregates, ordered by id."""
        with self._registry_lock:
            return [self._items[key] for key in sorted(self._items)]

    def __contains__(self, aggregate_id: object) -> bool:
        return aggregate_id in self._items

    def __len__(self) -> int:
        return len(self._items)
