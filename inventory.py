"""Admin edits to the book inventory.

Edits keep ``0 <= available_copies <= total_copies``. Changing
``total_copies`` moves ``available_copies`` by the same amount, so copies
already on loan stay accounted for. No edit may put more copies on the
shelf than ``total_copies`` minus the copies on loan, otherwise those loans
could never be returned.
"""

from __future__ import annotations

import logging
from typing import Optional

from entities import Book, Borrowing
from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "author", "description", "isbn", "genre", "publication_year",
    "cover_image", "pages", "total_copies", "available_copies",
)


def _check_copies(total: int, available: int) -> None:
    if total < 1:
        raise ValidationError("invalid_total_copies", "total_copies")
    if available < 0 or available > total:
        raise ValidationError("invalid_available_copies", "available_copies")


def create_book(store, **fields) -> Book:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError("unknown_field", sorted(unknown)[0])
    total = fields.get("total_copies")
    if total is None:
        total = 1
    available = fields.get("available_copies")
    if available is None:
        available = total
    _check_copies(total, available)
    fields.update(total_copies=total, available_copies=available,
                  description=fields.get("description") or "",
                  cover_image=fields.get("cover_image") or "")
    book = store.create(Book(rating=0, review_count=0, **fields))
    logger.info("added book %s %r (%s copies)", book.id, book.title, total)
    return book


def update_book(store, book_id: int, **changes) -> Optional[Book]:
    """Apply a partial edit. Returns None for an unknown book."""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError("unknown_field", sorted(unknown)[0])

    with store.atomic((Book, book_id)):
        book = store.get(Book, book_id)
        if book is None:
            return None
        total = changes.get("total_copies", book.total_copies)
        on_loan = len(store.list(Borrowing, lambda b: b.book_id == book_id and b.is_active))
        if "available_copies" in changes:
            available = changes["available_copies"]
            _check_copies(total, available)
            if available > total - on_loan:
                raise ValidationError("copies_on_loan", "available_copies")
        else:
            available = book.available_copies + (total - book.total_copies)
            if available < 0 or available > total - on_loan:
                raise ValidationError("copies_on_loan", "total_copies")
            _check_copies(total, available)
        changes.update(total_copies=total, available_copies=available)
        book = store.update(Book, book_id, **changes)

    logger.info("updated book %s: %s", book_id, ", ".join(sorted(changes)))
    return book


def delete_book(store, book_id: int) -> bool:
    """Remove a book that has no copies on loan."""
    with store.atomic((Book, book_id)):
        if store.get(Book, book_id) is None:
            return False
        on_loan = store.find(Borrowing, lambda b: b.book_id == book_id and b.is_active)
        if on_loan is not None:
            raise ValidationError("copies_on_loan", "book_id")
        store.delete(Book, book_id)
    logger.info("deleted book %s", book_id)
    return True


def get_book(store, book_id: int) -> Book:
    book = store.get(Book, book_id)
    if book is None:
        raise NotFound("book", book_id)
    return book
