import pytest

from entities import Book, Borrowing, Review, User, utcnow
from store import MemoryStore, build_store


def _book(title="Emma", **fields):
    return Book(title=title, author="Jane Austen", isbn="9780141439587",
                genre="Classics", **fields)


def test_create_assigns_increasing_ids(store):
    first = store.create(_book("Emma"))
    second = store.create(_book("Persuasion"))

    assert first.id is not None
    assert second.id > first.id
    assert store.get(Book, first.id) == first


def test_ids_are_per_kind(store):
    book = store.create(_book())
    review = store.create(Review(user_id=1, book_id=book.id, rating=4, created_at=utcnow()))

    assert book.id == 1
    assert review.id == 1


def test_get_unknown_id_returns_none(store):
    assert store.get(Book, 999) is None
    assert store.get(User, 999) is None


def test_list_is_ordered_by_id_and_filters(store):
    for title in ("Sense and Sensibility", "Emma", "Mansfield Park"):
        store.create(_book(title))

    books = store.list(Book)
    assert [b.id for b in books] == sorted(b.id for b in books)
    assert [b.title for b in books] == ["Sense and Sensibility", "Emma", "Mansfield Park"]

    short = store.list(Book, lambda b: len(b.title) < 6)
    assert [b.title for b in short] == ["Emma"]


def test_update_merges_fields(store):
    book = store.create(_book(total_copies=3, available_copies=3))

    updated = store.update(Book, book.id, available_copies=2, pages=474)

    assert updated.available_copies == 2
    assert updated.pages == 474
    assert updated.title == "Emma"
    assert store.get(Book, book.id) == updated


def test_update_unknown_id_returns_none(store):
    assert store.update(Book, 42, title="Nothing") is None


def test_delete(store):
    book = store.create(_book())

    assert store.delete(Book, book.id) is True
    assert store.get(Book, book.id) is None
    assert store.delete(Book, book.id) is False


def test_snapshots_are_immutable(store):
    book = store.create(_book())

    with pytest.raises(AttributeError):
        book.title = "Changed"
    assert store.get(Book, book.id).title == "Emma"


def test_atomic_rolls_back_on_error(store):
    book = store.create(_book(total_copies=2, available_copies=2))

    with pytest.raises(RuntimeError):
        with store.atomic((Book, book.id)):
            store.update(Book, book.id, available_copies=1)
            store.create(Borrowing(user_id=1, book_id=book.id,
                                   borrow_date=utcnow(), due_date=utcnow()))
            raise RuntimeError("boom")

    assert store.get(Book, book.id).available_copies == 2
    assert store.list(Borrowing) == []


def test_atomic_commits_together(store):
    book = store.create(_book(total_copies=2, available_copies=2))

    with store.atomic((Book, book.id)):
        store.update(Book, book.id, available_copies=1)
        store.create(Borrowing(user_id=1, book_id=book.id,
                               borrow_date=utcnow(), due_date=utcnow()))

    assert store.get(Book, book.id).available_copies == 1
    assert len(store.list(Borrowing)) == 1


def test_find_returns_first_match(store):
    store.create(_book("Emma"))
    store.create(_book("Emma"))

    assert store.find(Book, lambda b: b.title == "Emma").id == 1
    assert store.find(Book, lambda b: b.title == "Ulysses") is None


def test_build_store_rejects_unknown_backend():
    assert isinstance(build_store("memory"), MemoryStore)
    with pytest.raises(ValueError):
        build_store("redis")
