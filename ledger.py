"""Borrowing and returning copies of books.

A book's ``available_copies`` is a cached count of copies not on loan. The
ledger is the only code that moves it in response to loans, and it always
moves it in the same unit of work as the borrowing record it belongs to.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from config import Config
from entities import BORROWED, OVERDUE, RETURNED, Book, Borrowing, User, utcnow
from errors import AlreadyReturned, ConsistencyError, NotFound, Unavailable

logger = logging.getLogger(__name__)

LOAN_PERIOD = timedelta(days=Config.LOAN_PERIOD_DAYS)


def is_overdue(borrowing: Borrowing, now: Optional[datetime] = None) -> bool:
    """Due date passed and the copy is still out."""
    now = now or utcnow()
    return borrowing.return_date is None and borrowing.due_date < now


def display_status(borrowing: Borrowing, now: Optional[datetime] = None) -> str:
    if is_overdue(borrowing, now):
        return OVERDUE
    return borrowing.status


class AvailabilityLedger:
    def __init__(self, store, loan_period: timedelta = LOAN_PERIOD,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.loan_period = loan_period
        self.clock = clock

    def borrow(self, user_id: int, book_id: int) -> Tuple[Borrowing, Book]:
        """Take one copy of a book out on loan for a user.

        Raises NotFound for an unknown user or book, and Unavailable when
        no copy is left. Nothing is written in either case.
        """
        if self.store.get(User, user_id) is None:
            raise NotFound("user", user_id)

        with self.store.atomic((Book, book_id)):
            book = self.store.get(Book, book_id)
            if book is None:
                raise NotFound("book", book_id)
            if book.available_copies <= 0:
                logger.info("book %s unavailable for user %s", book_id, user_id)
                raise Unavailable(book_id)

            now = self.clock()
            book = self.store.update(Book, book_id,
                                     available_copies=book.available_copies - 1)
            borrowing = self.store.create(Borrowing(
                user_id=user_id,
                book_id=book_id,
                borrow_date=now,
                due_date=now + self.loan_period,
                status=BORROWED,
            ))

        logger.info("user %s borrowed book %s (borrowing %s, %s left)",
                    user_id, book_id, borrowing.id, book.available_copies)
        return borrowing, book

    def return_book(self, borrowing_id: int) -> Tuple[Borrowing, Optional[Book]]:
        """Close a borrowing and put its copy back on the shelf.

        Raises NotFound for an unknown borrowing and AlreadyReturned for a
        second return. If the book row has been deleted meanwhile the
        borrowing is still closed and the returned book is None.
        """
        borrowing = self.store.get(Borrowing, borrowing_id)
        if borrowing is None:
            raise NotFound("borrowing", borrowing_id)

        with self.store.atomic((Book, borrowing.book_id)):
            # Re-read under the book's lock: a concurrent return may have won.
            borrowing = self.store.get(Borrowing, borrowing_id)
            if borrowing is None:
                raise NotFound("borrowing", borrowing_id)
            if borrowing.return_date is not None:
                raise AlreadyReturned(borrowing_id)

            book = self.store.get(Book, borrowing.book_id)
            if book is not None and book.available_copies >= book.total_copies:
                logger.error("book %s already has all %s copies on the shelf; "
                             "refusing to return borrowing %s",
                             book.id, book.total_copies, borrowing_id)
                raise ConsistencyError(book.id)

            borrowing = self.store.update(Borrowing, borrowing_id,
                                          return_date=self.clock(), status=RETURNED)
            if book is not None:
                book = self.store.update(Book, book.id,
                                         available_copies=book.available_copies + 1)

        logger.info("borrowing %s returned", borrowing_id)
        return borrowing, book

    def borrowings_for(self, user_id: Optional[int] = None) -> List[Borrowing]:
        """All borrowings, or only those of one user."""
        if user_id is None:
            return self.store.list(Borrowing)
        return self.store.list(Borrowing, lambda b: b.user_id == user_id)

    def active_borrowings(self, user_id: Optional[int] = None,
                          book_id: Optional[int] = None) -> List[Borrowing]:
        return self.store.list(Borrowing, lambda b: (
            b.is_active
            and (user_id is None or b.user_id == user_id)
            and (book_id is None or b.book_id == book_id)
        ))
