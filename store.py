"""Entity storage for users, books, borrowings and reviews.

Every backend speaks the same small vocabulary keyed by entity class:
``create``, ``get``, ``list``, ``update``, ``delete`` and ``atomic``.
Unknown ids never raise here: ``get``/``update`` return ``None`` and
``delete`` returns ``False``, and the caller decides what that means.

``atomic(key)`` groups several calls into one unit of work. Units sharing
a key run one at a time, and the writes of a unit become visible
together or not at all.
"""

from __future__ import annotations

import abc
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Hashable, Iterator, List, Optional

from entities import ENTITY_KINDS

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One re-entrant lock per key, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield


class EntityStore(abc.ABC):
    def __init__(self) -> None:
        self._keyed = KeyedLocks()

    @contextmanager
    def atomic(self, key: Hashable) -> Iterator[None]:
        with self._keyed.hold(key):
            with self._transaction(key):
                yield

    @abc.abstractmethod
    def _transaction(self, key: Hashable):
        ...

    @abc.abstractmethod
    def create(self, draft):
        ...

    @abc.abstractmethod
    def get(self, kind, ident: int):
        ...

    @abc.abstractmethod
    def list(self, kind, predicate: Optional[Callable] = None) -> List:
        ...

    @abc.abstractmethod
    def update(self, kind, ident: int, **changes):
        ...

    @abc.abstractmethod
    def delete(self, kind, ident: int) -> bool:
        ...

    def find(self, kind, predicate: Callable):
        """First entity matching predicate, lowest id first."""
        return next(iter(self.list(kind, predicate)), None)


class MemoryStore(EntityStore):
    """Process local store. Used by the test suite and for demos."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._rows: Dict[type, Dict[int, object]] = {kind: {} for kind in ENTITY_KINDS}
        self._next_id: Dict[type, int] = {kind: 1 for kind in ENTITY_KINDS}

    @contextmanager
    def _transaction(self, key):
        with self._lock:
            rows = {kind: dict(table) for kind, table in self._rows.items()}
            next_id = dict(self._next_id)
            try:
                yield
            except BaseException:
                self._rows, self._next_id = rows, next_id
                logger.debug("rolled back unit %r", key)
                raise

    def create(self, draft):
        kind = type(draft)
        with self._lock:
            ident = self._next_id[kind]
            self._next_id[kind] = ident + 1
            entity = replace(draft, id=ident)
            self._rows[kind][ident] = entity
            return entity

    def get(self, kind, ident):
        with self._lock:
            return self._rows[kind].get(ident)

    def list(self, kind, predicate=None):
        with self._lock:
            table = self._rows[kind]
            entities = [table[ident] for ident in sorted(table)]
        if predicate is None:
            return entities
        return [e for e in entities if predicate(e)]

    def update(self, kind, ident, **changes):
        with self._lock:
            current = self._rows[kind].get(ident)
            if current is None:
                return None
            changes.pop("id", None)
            entity = replace(current, **changes)
            self._rows[kind][ident] = entity
            return entity

    def delete(self, kind, ident):
        with self._lock:
            return self._rows[kind].pop(ident, None) is not None


def build_store(backend: str, db=None) -> EntityStore:
    """Pick the storage backend named by the STORE_BACKEND setting."""
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlalchemy":
        from sql_store import SqlStore

        return SqlStore(db)
    raise ValueError(f"unknown store backend: {backend!r}")
