"""Getting books into an empty library.

``seed_initial_data`` installs an admin account and a few sample titles on
first start. ``import_books`` pulls titles from the public Frappe library
API page by page.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import requests

from auth import register_user
from entities import Book, User
from errors import ImportFailed
from inventory import create_book

logger = logging.getLogger(__name__)

FRAPPE_API_URL = "https://frappe.io/api/method/frappe-library"
IMPORTED_GENRE = "General"

SAMPLE_BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A story of wealth, love, and tragedy in the Roaring Twenties.",
        "isbn": "9780743273565",
        "genre": "Fiction",
        "publication_year": 1925,
        "cover_image": "https://m.media-amazon.com/images/I/71FTb9X6wsL._AC_UF1000,1000_QL80_.jpg",
        "total_copies": 3,
        "pages": 180,
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "description": "A story of racial injustice and moral growth in the American South during the 1930s.",
        "isbn": "9780061120084",
        "genre": "Fiction",
        "publication_year": 1960,
        "cover_image": "https://m.media-amazon.com/images/I/71FLioeVKgL._AC_UF1000,1000_QL80_.jpg",
        "total_copies": 5,
        "pages": 281,
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian social science fiction novel that depicts a totalitarian regime.",
        "isbn": "9780451524935",
        "genre": "Science Fiction",
        "publication_year": 1949,
        "cover_image": "https://m.media-amazon.com/images/I/71kxa1-0mfL._AC_UF1000,1000_QL80_.jpg",
        "total_copies": 2,
        "pages": 328,
    },
]


def seed_initial_data(store, admin_password: str = "admin123") -> bool:
    """Seed an admin and sample books unless there already are users."""
    if store.list(User):
        logger.info("Database already contains data, skipping seed")
        return False

    register_user(store, username="admin", password=admin_password,
                  name="Administrator", email="admin@bookhaven.com", is_admin=True)
    for fields in SAMPLE_BOOKS:
        create_book(store, **fields)
    logger.info("Initial data seeded successfully")
    return True


def _to_int(value) -> Optional[int]:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _book_fields(item: dict) -> Optional[dict]:
    title = (item.get("title") or "").strip()
    if not title:
        return None
    publisher = (item.get("publisher") or "").strip()
    return {
        "title": title[:255],
        "author": (item.get("authors") or "Unknown").strip()[:255],
        "isbn": (item.get("isbn") or "").strip()[:50],
        "genre": IMPORTED_GENRE,
        "description": f"Published by {publisher}." if publisher else "",
        "pages": _to_int(item.get("num_pages")),
        "total_copies": 1,
    }


def import_books(store, count: int = 20, title: Optional[str] = None,
                 authors: Optional[str] = None, url: str = FRAPPE_API_URL,
                 timeout: float = 10) -> List[Book]:
    """Import up to ``count`` books, one copy each.

    Raises ImportFailed when the remote API cannot be reached or answers
    with something other than the expected JSON.
    """
    filters = {}
    if title:
        filters["title"] = title
    if authors:
        filters["authors"] = authors

    imported: List[Book] = []
    page = 1

    while len(imported) < count:
        params = {"page": page}
        params.update(filters)

        try:
            r = requests.get(url, params=params, timeout=timeout)
            r.raise_for_status()
            items = r.json().get("message", [])
        except (requests.RequestException, ValueError, AttributeError) as exc:
            logger.warning("Frappe import failed on page %s: %s", page, exc)
            raise ImportFailed(page) from exc

        if not items:
            break

        for item in items:
            if len(imported) >= count:
                break
            fields = _book_fields(item)
            if fields is None:
                continue
            imported.append(create_book(store, **fields))

        page += 1

    logger.info("Imported %s books from %s", len(imported), url)
    return imported
