"""Accounts, credentials and the logged in principal.

Routes never see stored ``User`` snapshots directly; Flask-Login loads a
``Principal`` for the session and that is what gets passed around.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app
from flask_login import LoginManager, UserMixin, current_user, login_required
from werkzeug.security import check_password_hash, generate_password_hash

from entities import User
from errors import Forbidden, ValidationError

logger = logging.getLogger(__name__)

login_manager = LoginManager()


@dataclass
class Principal(UserMixin):
    id: int
    username: str
    name: str
    email: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, username=user.username, name=user.name,
                   email=user.email, is_admin=user.is_admin)

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "name": self.name,
                "email": self.email, "is_admin": self.is_admin}


@login_manager.user_loader
def load_principal(user_id: str) -> Optional[Principal]:
    store = current_app.extensions["bookhaven"].store
    try:
        user = store.get(User, int(user_id))
    except ValueError:
        return None
    return Principal.from_user(user) if user else None


def _taken(store, field: str, value: str, exclude_id: Optional[int] = None) -> bool:
    wanted = value.casefold()
    return store.find(User, lambda u: getattr(u, field).casefold() == wanted
                      and u.id != exclude_id) is not None


def register_user(store, username: str, password: str, name: str, email: str,
                  is_admin: bool = False) -> User:
    """Create an account. Usernames and emails are unique, ignoring case."""
    with store.atomic("users"):
        if _taken(store, "username", username):
            raise ValidationError("username_taken", "username")
        if _taken(store, "email", email):
            raise ValidationError("email_taken", "email")
        user = store.create(User(
            username=username,
            password_hash=generate_password_hash(password),
            name=name,
            email=email,
            is_admin=is_admin,
        ))
    logger.info("registered user %s (%s)", user.id, user.username)
    return user


def authenticate(store, username: str, password: str) -> Optional[User]:
    wanted = username.casefold()
    user = store.find(User, lambda u: u.username.casefold() == wanted)
    if user is None or not check_password_hash(user.password_hash, password):
        logger.info("failed login for %r", username)
        return None
    return user


def update_profile(store, user_id: int, name: Optional[str] = None,
                   email: Optional[str] = None,
                   password: Optional[str] = None) -> Optional[User]:
    changes = {}
    if name:
        changes["name"] = name
    if password:
        changes["password_hash"] = generate_password_hash(password)
    with store.atomic("users"):
        if email:
            if _taken(store, "email", email, exclude_id=user_id):
                raise ValidationError("email_taken", "email")
            changes["email"] = email
        if not changes:
            return store.get(User, user_id)
        return store.update(User, user_id, **changes)


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden()
        return view(*args, **kwargs)

    return wrapper
