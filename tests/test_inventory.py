import pytest

from entities import Book
from errors import NotFound, ValidationError
from inventory import create_book, delete_book, get_book, update_book
from ledger import AvailabilityLedger


def test_create_book_defaults(store):
    book = create_book(store, title="Emma", author="Jane Austen",
                       isbn="9780141439587", genre="Classics")

    assert book.total_copies == 1
    assert book.available_copies == 1
    assert (book.rating, book.review_count) == (0, 0)
    assert book.description == ""


def test_create_book_starts_fully_available(store):
    book = create_book(store, title="Emma", author="Jane Austen",
                       isbn="9780141439587", genre="Classics", total_copies=4)
    assert book.available_copies == 4


@pytest.mark.parametrize("copies", [
    {"total_copies": 0},
    {"total_copies": 2, "available_copies": 3},
    {"total_copies": 2, "available_copies": -1},
])
def test_create_book_rejects_bad_copy_counts(store, copies):
    with pytest.raises(ValidationError):
        create_book(store, title="Emma", author="Jane Austen",
                    isbn="9780141439587", genre="Classics", **copies)
    assert store.list(Book) == []


def test_create_book_rejects_unknown_field(store):
    with pytest.raises(ValidationError) as excinfo:
        create_book(store, title="Emma", author="Jane Austen", isbn="1",
                    genre="Classics", rating=5)
    assert excinfo.value.field == "rating"


def test_raising_total_copies_adds_to_shelf(store, make_user, make_book):
    book = make_book(total_copies=2)
    AvailabilityLedger(store).borrow(make_user().id, book.id)

    book = update_book(store, book.id, total_copies=5)

    assert book.total_copies == 5
    assert book.available_copies == 4


def test_cannot_drop_below_copies_on_loan(store, make_user, make_book):
    book = make_book(total_copies=3)
    ledger = AvailabilityLedger(store)
    ledger.borrow(make_user().id, book.id)
    ledger.borrow(make_user().id, book.id)

    with pytest.raises(ValidationError) as excinfo:
        update_book(store, book.id, total_copies=1)

    assert excinfo.value.code == "copies_on_loan"
    assert store.get(Book, book.id).total_copies == 3


def test_cannot_shelve_copies_that_are_on_loan(store, make_user, make_book):
    book = make_book(total_copies=2)
    ledger = AvailabilityLedger(store)
    loan, _ = ledger.borrow(make_user().id, book.id)

    with pytest.raises(ValidationError) as excinfo:
        update_book(store, book.id, available_copies=2)

    assert excinfo.value.code == "copies_on_loan"
    assert excinfo.value.field == "available_copies"
    assert store.get(Book, book.id).available_copies == 1

    returned, book = ledger.return_book(loan.id)
    assert returned.return_date is not None
    assert book.available_copies == 2


def test_explicit_available_copies_within_loans(store, make_user, make_book):
    book = make_book(total_copies=3)
    AvailabilityLedger(store).borrow(make_user().id, book.id)

    # one copy went missing from the shelf
    book = update_book(store, book.id, available_copies=1)
    assert book.available_copies == 1

    book = update_book(store, book.id, total_copies=4, available_copies=3)
    assert (book.total_copies, book.available_copies) == (4, 3)


def test_update_plain_fields(store, make_book):
    book = make_book()

    updated = update_book(store, book.id, title="Dune Messiah", pages=256)

    assert updated.title == "Dune Messiah"
    assert updated.pages == 256
    assert updated.available_copies == book.available_copies


def test_update_unknown_book(store):
    assert update_book(store, 31, title="Ghost") is None


def test_delete_refused_while_on_loan(store, make_user, make_book):
    book = make_book()
    ledger = AvailabilityLedger(store)
    loan, _ = ledger.borrow(make_user().id, book.id)

    with pytest.raises(ValidationError):
        delete_book(store, book.id)

    ledger.return_book(loan.id)
    assert delete_book(store, book.id) is True
    assert delete_book(store, book.id) is False


def test_get_book(store, make_book):
    book = make_book()

    assert get_book(store, book.id) == book
    with pytest.raises(NotFound):
        get_book(store, book.id + 1)
