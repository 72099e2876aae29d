import logging
from dataclasses import dataclass
from datetime import timedelta

import click
from flask import Blueprint, Flask, current_app, jsonify, request
from flask.cli import with_appcontext
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.datastructures import ImmutableMultiDict

import auth
import catalog
import importer
import inventory
from auth import Principal, admin_required, login_manager
from config import Config
from entities import Book, Borrowing, User, to_dict, user_summary
from errors import (
    AlreadyReturned,
    Forbidden,
    ImportFailed,
    InvalidRating,
    LibraryError,
    NotFound,
    Unavailable,
    ValidationError,
)
from forms import (
    BookForm,
    BookUpdateForm,
    BorrowForm,
    ImportForm,
    LoginForm,
    ProfileForm,
    ReviewForm,
    SignupForm,
)
from ledger import AvailabilityLedger, display_status, is_overdue
from models import db
from ratings import RatingAggregator
from store import EntityStore, build_store

api = Blueprint("api", __name__, url_prefix="/api")

STATUS_CODES = {
    NotFound: 404,
    Unavailable: 400,
    AlreadyReturned: 400,
    InvalidRating: 400,
    ValidationError: 400,
    Forbidden: 403,
    ImportFailed: 502,
}

MESSAGES = {
    "unavailable": "Book is not available for borrowing",
    "already_returned": "Book already returned",
    "invalid_rating": "Rating must be a whole number from 1 to 5",
    "forbidden": "Forbidden",
    "import_failed": "Could not reach the book import service",
    "username_taken": "Username already exists",
    "email_taken": "Email already exists",
    "copies_on_loan": "Copies of this book are still on loan",
    "invalid_total_copies": "Total copies must be at least 1",
    "invalid_available_copies": "Available copies must be between 0 and total copies",
    "invalid_availability": "Availability must be one of: all, available, unavailable",
    "invalid_sort": "Sort must be one of: title_asc, title_desc, recent, rating",
    "invalid_page_size": "Page size must be at least 1",
}

NOT_FOUND_MESSAGES = {
    "book": "Book not found",
    "user": "User not found",
    "borrowing": "Borrowing record not found",
}


@dataclass
class Services:
    store: EntityStore
    ledger: AvailabilityLedger
    ratings: RatingAggregator


def services() -> Services:
    return current_app.extensions["bookhaven"]


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    login_manager.init_app(app)

    store = build_store(app.config["STORE_BACKEND"], db)
    app.extensions["bookhaven"] = Services(
        store=store,
        ledger=AvailabilityLedger(store, timedelta(days=app.config["LOAN_PERIOD_DAYS"])),
        ratings=RatingAggregator(store),
    )

    app.register_blueprint(api)
    app.cli.add_command(seed_command)
    app.cli.add_command(import_command)

    # Auto-create DB tables
    if app.config["STORE_BACKEND"] == "sqlalchemy":
        with app.app_context():
            db.create_all()

    if app.config["SEED_ON_STARTUP"]:
        with app.app_context():
            importer.seed_initial_data(store)

    app.logger.info("BookHaven ready (%s store)", app.config["STORE_BACKEND"])
    return app


# ------------------------------------------------------
# HELPERS
# ------------------------------------------------------

def json_payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def json_form(form_class, payload=None):
    """Bind a form to the JSON body, the way a browser would post it."""
    payload = json_payload() if payload is None else payload
    formdata = ImmutableMultiDict(
        {key: str(value) for key, value in payload.items()
         if value is not None and not isinstance(value, (dict, list))}
    )
    return form_class(formdata=formdata)


def invalid(form):
    field, message = form.first_error()
    body = {"message": f"{field}: {message}" if field else "Invalid request", "code": "invalid"}
    return jsonify(body), 400


def book_or_404(book_id):
    return inventory.get_book(services().store, book_id)


def borrowing_json(borrowing, book=None):
    data = to_dict(borrowing)
    data["overdue"] = is_overdue(borrowing)
    data["display_status"] = display_status(borrowing)
    if book is not None:
        data["book"] = to_dict(book)
    return data


@api.app_errorhandler(LibraryError)
def handle_library_error(error):
    status = next((code for cls, code in STATUS_CODES.items() if isinstance(error, cls)), None)
    if status is None:
        current_app.logger.error("unhandled library error %s", error.code, exc_info=error)
        return jsonify({"message": "Internal server error", "code": error.code}), 500
    if isinstance(error, NotFound):
        message = NOT_FOUND_MESSAGES.get(error.kind, "Not found")
    else:
        message = MESSAGES.get(error.code, "Invalid request")
    return jsonify({"message": message, "code": error.code}), status


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"message": "Unauthorized", "code": "not_authenticated"}), 401


# ------------------------------------------------------
# AUTH
# ------------------------------------------------------

@api.route("/auth/login", methods=["POST"])
def login():
    form = json_form(LoginForm)
    if not form.validate():
        return invalid(form)
    user = auth.authenticate(services().store, form.username.data, form.password.data)
    if user is None:
        return jsonify({"message": "Invalid username or password", "code": "invalid_credentials"}), 401
    principal = Principal.from_user(user)
    login_user(principal)
    return jsonify(principal.to_dict())


@api.route("/auth/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"message": "Logged out"})


@api.route("/auth/session")
@login_required
def session_user():
    return jsonify(current_user.to_dict())


# ------------------------------------------------------
# USERS
# ------------------------------------------------------

@api.route("/users", methods=["POST"])
def signup():
    form = json_form(SignupForm)
    if not form.validate():
        return invalid(form)
    user = auth.register_user(
        services().store,
        username=form.username.data.strip(),
        password=form.password.data,
        name=form.name.data.strip(),
        email=form.email.data.strip(),
    )
    principal = Principal.from_user(user)
    # Log the user in after registration
    login_user(principal)
    return jsonify(principal.to_dict()), 201


@api.route("/users/me", methods=["PUT"])
@login_required
def update_profile():
    form = json_form(ProfileForm)
    if not form.validate():
        return invalid(form)
    user = auth.update_profile(
        services().store,
        current_user.id,
        name=form.name.data,
        email=form.email.data,
        password=form.password.data,
    )
    if user is None:
        raise NotFound("user", current_user.id)
    return jsonify(Principal.from_user(user).to_dict())


# ------------------------------------------------------
# BOOKS
# ------------------------------------------------------

@api.route("/books")
def books():
    found = catalog.list_books(
        services().store,
        search_text=request.args.get("search"),
        genre=request.args.get("genre"),
    )
    current_app.logger.debug("listing %s books for %s", len(found), dict(request.args))
    return jsonify([to_dict(b) for b in found])


@api.route("/books/browse")
def browse_books():
    page = catalog.browse(
        services().store,
        search_text=request.args.get("search"),
        genre=request.args.get("genre"),
        availability=request.args.get("availability", "all"),
        sort=request.args.get("sort", catalog.DEFAULT_SORT),
        page=request.args.get("page", 1, type=int),
        page_size=request.args.get("page_size", catalog.DEFAULT_PAGE_SIZE, type=int),
    )
    return jsonify({
        "items": [to_dict(b) for b in page.items],
        "current_page": page.current_page,
        "total_pages": page.total_pages,
        "total_items": page.total_items,
    })


@api.route("/search")
def search():
    query = request.args.get("query", "")
    if not query:
        return jsonify({"message": "Search query is required", "code": "invalid"}), 400
    return jsonify([to_dict(b) for b in catalog.search(services().store, query)])


@api.route("/books/<int:book_id>")
def book_detail(book_id):
    return jsonify(to_dict(book_or_404(book_id)))


@api.route("/books", methods=["POST"])
@admin_required
def add_book():
    form = json_form(BookForm)
    if not form.validate():
        return invalid(form)
    fields = {name: value for name, value in form.data.items() if name in inventory.EDITABLE_FIELDS}
    book = inventory.create_book(services().store, **fields)
    return jsonify(to_dict(book)), 201


@api.route("/books/<int:book_id>", methods=["PUT"])
@admin_required
def edit_book(book_id):
    payload = json_payload()
    form = json_form(BookUpdateForm, payload)
    if not form.validate():
        return invalid(form)
    book = inventory.update_book(services().store, book_id, **form.submitted_data(payload))
    if book is None:
        raise NotFound("book", book_id)
    return jsonify(to_dict(book))


@api.route("/books/<int:book_id>", methods=["DELETE"])
@admin_required
def delete_book(book_id):
    if not inventory.delete_book(services().store, book_id):
        raise NotFound("book", book_id)
    return "", 204


@api.route("/genres")
def genres():
    return jsonify(catalog.genres(services().store))


# ------------------------------------------------------
# BORROWINGS
# ------------------------------------------------------

@api.route("/borrowings")
@login_required
def borrowings():
    svc = services()
    user_id = None if current_user.is_admin else current_user.id
    records = svc.ledger.borrowings_for(user_id)
    return jsonify([borrowing_json(b, svc.store.get(Book, b.book_id)) for b in records])


@api.route("/borrowings", methods=["POST"])
@login_required
def borrow():
    form = json_form(BorrowForm)
    if not form.validate():
        return invalid(form)
    borrowing, book = services().ledger.borrow(current_user.id, form.book_id.data)
    return jsonify({"borrowing": borrowing_json(borrowing), "book": to_dict(book)}), 201


@api.route("/borrowings/<int:borrowing_id>/return", methods=["PUT"])
@login_required
def return_book(borrowing_id):
    svc = services()
    borrowing = svc.store.get(Borrowing, borrowing_id)
    if borrowing is None:
        raise NotFound("borrowing", borrowing_id)
    # Check if the user is the borrower or an admin
    if borrowing.user_id != current_user.id and not current_user.is_admin:
        raise Forbidden()
    borrowing, book = svc.ledger.return_book(borrowing_id)
    return jsonify({
        "borrowing": borrowing_json(borrowing),
        "book": to_dict(book) if book is not None else None,
    })


# ------------------------------------------------------
# REVIEWS
# ------------------------------------------------------

@api.route("/books/<int:book_id>/reviews")
def book_reviews(book_id):
    svc = services()
    book_or_404(book_id)
    result = []
    for review in svc.ratings.reviews_for(book_id):
        data = to_dict(review)
        data["user"] = user_summary(svc.store.get(User, review.user_id))
        result.append(data)
    return jsonify(result)


@api.route("/books/<int:book_id>/reviews", methods=["POST"])
@login_required
def add_review(book_id):
    form = json_form(ReviewForm)
    if not form.validate():
        return invalid(form)
    review, book = services().ratings.add_review(
        current_user.id, book_id, form.rating.data, form.comment.data
    )
    data = to_dict(review)
    data["user"] = {"id": current_user.id, "username": current_user.username,
                    "name": current_user.name}
    return jsonify({"review": data, "book": to_dict(book)}), 201


# ------------------------------------------------------
# FRAPPE IMPORT API
# ------------------------------------------------------

@api.route("/admin/import", methods=["POST"])
@admin_required
def import_data():
    form = json_form(ImportForm)
    if not form.validate():
        return invalid(form)
    imported = importer.import_books(
        services().store,
        count=form.count.data or 20,
        title=form.title.data or None,
        authors=form.authors.data or None,
        url=current_app.config["FRAPPE_API_URL"],
        timeout=current_app.config["FRAPPE_TIMEOUT"],
    )
    return jsonify({"imported": len(imported), "books": [to_dict(b) for b in imported]}), 201


# ------------------------------------------------------
# CLI
# ------------------------------------------------------

@click.command("seed")
@with_appcontext
@click.option("--admin-password", default="admin123", show_default=True)
def seed_command(admin_password):
    """Seed the admin account and sample books into an empty library."""
    if importer.seed_initial_data(services().store, admin_password=admin_password):
        click.echo("Seeded initial data.")
    else:
        click.echo("Library already has users; nothing to seed.")


@click.command("import-books")
@with_appcontext
@click.option("--count", default=20, show_default=True, type=int)
@click.option("--title", default=None)
@click.option("--authors", default=None)
def import_command(count, title, authors):
    """Import books from the Frappe library API."""
    imported = importer.import_books(
        services().store, count=count, title=title, authors=authors,
        url=current_app.config["FRAPPE_API_URL"],
        timeout=current_app.config["FRAPPE_TIMEOUT"],
    )
    click.echo(f"Imported {len(imported)} books.")


# ------------------------------------------------------
# RUN SERVER
# ------------------------------------------------------

if __name__ == "__main__":
    create_app().run(debug=True)
