"""Book ratings derived from reviews.

``Book.rating`` is the mean of all review ratings for the book, rounded
half up to an integer; ``Book.review_count`` is the number of reviews. Both
are recomputed from the full review set on every new review.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from entities import Book, Review, User, utcnow
from errors import InvalidRating, NotFound

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def aggregate(ratings: List[int]) -> Tuple[int, int]:
    """(rating, review_count) for a list of review ratings."""
    if not ratings:
        return 0, 0
    return round_half_up(sum(ratings), len(ratings)), len(ratings)


def valid_rating(rating) -> bool:
    return (isinstance(rating, int) and not isinstance(rating, bool)
            and MIN_RATING <= rating <= MAX_RATING)


class RatingAggregator:
    def __init__(self, store, clock: Callable = utcnow) -> None:
        self.store = store
        self.clock = clock

    def add_review(self, user_id: int, book_id: int, rating: int,
                   comment: Optional[str] = None) -> Tuple[Review, Book]:
        if not valid_rating(rating):
            raise InvalidRating(rating)
        if self.store.get(User, user_id) is None:
            raise NotFound("user", user_id)

        with self.store.atomic((Book, book_id)):
            if self.store.get(Book, book_id) is None:
                raise NotFound("book", book_id)
            review = self.store.create(Review(
                user_id=user_id,
                book_id=book_id,
                rating=rating,
                comment=comment or None,
                created_at=self.clock(),
            ))
            book = self._store_aggregate(book_id)

        logger.info("user %s rated book %s %s/5; book now %s from %s reviews",
                    user_id, book_id, rating, book.rating, book.review_count)
        return review, book

    def recompute(self, book_id: int) -> Optional[Book]:
        with self.store.atomic((Book, book_id)):
            if self.store.get(Book, book_id) is None:
                return None
            return self._store_aggregate(book_id)

    def reviews_for(self, book_id: int) -> List[Review]:
        return self.store.list(Review, lambda r: r.book_id == book_id)

    def _store_aggregate(self, book_id: int) -> Book:
        rating, count = aggregate([r.rating for r in self.reviews_for(book_id)])
        return self.store.update(Book, book_id, rating=rating, review_count=count)
