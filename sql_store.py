"""Entity store backed by Flask-SQLAlchemy.

Must be used inside an application context. Calls made outside a unit of
work commit straight away; inside ``atomic`` they only flush, and the
outermost unit commits once at the end (or rolls back if its body raises).
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import fields

from sqlalchemy import select

import entities
import models
from store import EntityStore

logger = logging.getLogger(__name__)

TABLES = {
    entities.User: models.User,
    entities.Book: models.Book,
    entities.Borrowing: models.Borrowing,
    entities.Review: models.Review,
}


def _to_entity(kind, row):
    return kind(**{f.name: getattr(row, f.name) for f in fields(kind)})


class SqlStore(EntityStore):
    def __init__(self, db=None) -> None:
        super().__init__()
        self.db = db or models.db
        self._local = threading.local()

    @property
    def _depth(self) -> int:
        return getattr(self._local, "depth", 0)

    @_depth.setter
    def _depth(self, value: int) -> None:
        self._local.depth = value

    @contextmanager
    def _write(self):
        try:
            yield
            if self._depth:
                self.db.session.flush()
            else:
                self.db.session.commit()
        except Exception:
            if not self._depth:
                self.db.session.rollback()
            raise

    @contextmanager
    def _transaction(self, key):
        session = self.db.session
        outermost = self._depth == 0
        self._depth += 1
        try:
            if outermost:
                # reads inside the unit must see rows committed while we waited
                session.expire_all()
            if isinstance(key, tuple) and len(key) == 2 and key[0] in TABLES:
                table = TABLES[key[0]]
                # Row lock on backends that have one; SQLite ignores it.
                session.execute(
                    select(table.id).where(table.id == key[1]).with_for_update()
                )
            yield
            if outermost:
                session.commit()
        except BaseException:
            if outermost:
                session.rollback()
                logger.debug("rolled back unit %r", key)
            raise
        finally:
            self._depth -= 1

    def create(self, draft):
        kind = type(draft)
        values = {f.name: getattr(draft, f.name) for f in fields(kind) if f.name != "id"}
        with self._write():
            row = TABLES[kind](**values)
            self.db.session.add(row)
            self.db.session.flush()
            entity = _to_entity(kind, row)
        return entity

    def get(self, kind, ident):
        row = self.db.session.get(TABLES[kind], ident)
        return _to_entity(kind, row) if row is not None else None

    def list(self, kind, predicate=None):
        table = TABLES[kind]
        rows = self.db.session.scalars(select(table).order_by(table.id)).all()
        found = [_to_entity(kind, row) for row in rows]
        if predicate is None:
            return found
        return [e for e in found if predicate(e)]

    def update(self, kind, ident, **changes):
        row = self.db.session.get(TABLES[kind], ident)
        if row is None:
            return None
        changes.pop("id", None)
        with self._write():
            for name, value in changes.items():
                if not hasattr(row, name):
                    raise TypeError(f"{kind.__name__} has no field {name!r}")
                setattr(row, name, value)
            self.db.session.flush()
            entity = _to_entity(kind, row)
        return entity

    def delete(self, kind, ident):
        row = self.db.session.get(TABLES[kind], ident)
        if row is None:
            return False
        with self._write():
            self.db.session.delete(row)
        return True
