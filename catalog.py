"""Browsing queries over the book catalog."""

from __future__ import annotations

import math
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from entities import Book
from errors import ValidationError

AVAILABILITY_MODES = ("all", "available", "unavailable")
SORT_KEYS = ("title_asc", "title_desc", "recent", "rating")
DEFAULT_SORT = "recent"
DEFAULT_PAGE_SIZE = 12


@dataclass
class Page:
    items: List = field(default_factory=list)
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0


def _collate(text: str) -> str:
    # case and accent insensitive ordering key
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def search(store, text: str) -> List[Book]:
    term = text.casefold()
    return store.list(Book, lambda b: any(
        term in (value or "").casefold()
        for value in (b.title, b.author, b.description, b.genre)
    ))


def by_genre(store, genre: str) -> List[Book]:
    wanted = genre.casefold()
    return store.list(Book, lambda b: b.genre.casefold() == wanted)


def list_books(store, search_text: Optional[str] = None,
               genre: Optional[str] = None) -> List[Book]:
    """Search wins over genre; with neither, every book."""
    if search_text:
        return search(store, search_text)
    if genre:
        return by_genre(store, genre)
    return store.list(Book)


def genres(store) -> List[str]:
    return sorted({b.genre for b in store.list(Book)})


def filter_by_availability(books: Sequence[Book], mode: str = "all") -> List[Book]:
    if mode == "all":
        return list(books)
    if mode == "available":
        return [b for b in books if b.available_copies > 0]
    if mode == "unavailable":
        return [b for b in books if b.available_copies == 0]
    raise ValidationError("invalid_availability", "availability")


def sort_books(books: Sequence[Book], key: str = DEFAULT_SORT) -> List[Book]:
    if key == "title_asc":
        return sorted(books, key=lambda b: (_collate(b.title), b.title))
    if key == "title_desc":
        return sorted(books, key=lambda b: (_collate(b.title), b.title), reverse=True)
    if key == "recent":
        # ids grow with insertion, so they stand in for creation time
        return sorted(books, key=lambda b: b.id, reverse=True)
    if key == "rating":
        return sorted(books, key=lambda b: b.rating or 0, reverse=True)
    raise ValidationError("invalid_sort", "sort")


def paginate(items: Sequence, page: int, page_size: int) -> Page:
    """Slice out a 1-indexed page. Out of range pages come back empty."""
    if page_size < 1:
        raise ValidationError("invalid_page_size", "page_size")
    total = len(items)
    total_pages = max(1, math.ceil(total / page_size))
    start = (page - 1) * page_size
    chunk = list(items[start:start + page_size]) if start >= 0 else []
    return Page(items=chunk, current_page=page, total_pages=total_pages,
                total_items=total)


def clamp_page(page: int, total_pages: int) -> int:
    """Pages outside 1..total_pages fall back to the first page."""
    if page < 1 or page > total_pages:
        return 1
    return page


def browse(store, search_text: Optional[str] = None, genre: Optional[str] = None,
           availability: str = "all", sort: str = DEFAULT_SORT, page: int = 1,
           page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    books = list_books(store, search_text, genre)
    books = filter_by_availability(books, availability)
    books = sort_books(books, sort)
    result = paginate(books, page, page_size)
    current = clamp_page(page, result.total_pages)
    if current != page:
        result = paginate(books, current, page_size)
    return result
