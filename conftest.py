import pytest

from app import create_app
from auth import register_user
from config import TestConfig
from inventory import create_book


class SqlTestConfig(TestConfig):
    STORE_BACKEND = "sqlalchemy"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app


@pytest.fixture(autouse=True)
def _fresh_login_cache(request):
    """Flask-Login caches the current user on ``g``; requests reuse the
    fixture's long-lived app context, so drop the cache after each request."""
    if "app" not in request.fixturenames:
        return
    from flask import g, request_finished

    flask_app = request.getfixturevalue("app")

    def _clear(sender, **extra):
        g.pop("_login_user", None)

    request_finished.connect(_clear, flask_app, weak=False)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(params=["memory", "sqlalchemy"])
def store(request):
    """A fresh store for each backend, inside an application context."""
    config = TestConfig if request.param == "memory" else SqlTestConfig
    app = create_app(config)
    with app.app_context():
        yield app.extensions["bookhaven"].store
        if request.param == "sqlalchemy":
            from models import db

            db.session.remove()
            db.drop_all()


@pytest.fixture
def make_user(store):
    counter = iter(range(1, 10_000))

    def _make(username=None, is_admin=False):
        n = next(counter)
        username = username or f"reader{n}"
        return register_user(store, username=username, password="secret123",
                             name=f"Reader {n}", email=f"{username}@example.com",
                             is_admin=is_admin)

    return _make


@pytest.fixture
def make_book(store):
    def _make(title="Dune", author="Frank Herbert", genre="Science Fiction",
              total_copies=1, **fields):
        fields.setdefault("isbn", "9780441013593")
        return create_book(store, title=title, author=author, genre=genre,
                           total_copies=total_copies, **fields)

    return _make
