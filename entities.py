"""Entity snapshots handed out by the stores.

Snapshots are frozen: a caller that wants a change goes through the store,
which hands back a new snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Optional

BORROWED = "borrowed"
RETURNED = "returned"
OVERDUE = "overdue"  # derived label, never stored


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class User:
    username: str
    password_hash: str
    name: str
    email: str
    is_admin: bool = False
    id: Optional[int] = None


@dataclass(frozen=True)
class Book:
    title: str
    author: str
    isbn: str
    genre: str
    description: str = ""
    cover_image: str = ""
    publication_year: Optional[int] = None
    pages: Optional[int] = None
    total_copies: int = 1
    available_copies: int = 1
    rating: int = 0
    review_count: int = 0
    id: Optional[int] = None


@dataclass(frozen=True)
class Borrowing:
    user_id: int
    book_id: int
    borrow_date: datetime
    due_date: datetime
    status: str = BORROWED
    return_date: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.return_date is None


@dataclass(frozen=True)
class Review:
    user_id: int
    book_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


ENTITY_KINDS = (User, Book, Borrowing, Review)

# Never leaves the process.
PRIVATE_FIELDS = {"password_hash"}


def to_dict(entity) -> dict:
    """JSON friendly dict of an entity, without credentials."""
    data = {}
    for f in fields(entity):
        if f.name in PRIVATE_FIELDS:
            continue
        value = getattr(entity, f.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[f.name] = value
    return data


def user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "name": user.name}
