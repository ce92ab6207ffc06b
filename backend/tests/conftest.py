"""Shared fixtures.

The database URL must be set before any ``selliox`` module is imported,
because settings and the engine are created at import time.
"""

import itertools
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="selliox-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["PAYOUT_ENCRYPTION_KEY"] = "11" * 32
os.environ.pop("SENDGRID_API_KEY", None)

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402

from selliox.auth.local import auth_service  # noqa: E402
from selliox.auth.models import UserAccount  # noqa: E402
from selliox.storage.db import db  # noqa: E402

_user_numbers = itertools.count(1)


@pytest.fixture(autouse=True)
def fresh_database():
    db.drop_tables()
    db.create_tables()
    yield


@pytest.fixture
def make_user():
    """Insert a user directly (no password hashing, no sign-up ticket)."""

    def _make(name: str | None = None, email: str | None = None, is_admin: bool = False) -> UserAccount:
        number = next(_user_numbers)
        with db.session() as session:
            user = UserAccount(
                email=email or f"user{number}@example.com",
                name=name or f"User {number}",
                is_admin=is_admin,
            )
            session.add(user)
            session.flush()
            session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_header():
    def _header(user: UserAccount) -> dict[str, str]:
        return {"Authorization": f"Bearer {auth_service.create_access_token(user)}"}

    return _header


@pytest.fixture
def reload_user():
    """Fresh copy of a user row."""

    def _reload(user_id: int) -> UserAccount:
        with db.session() as session:
            return session.get(UserAccount, user_id)

    return _reload


@pytest.fixture
def interleave():
    """Run ``action`` once, just before the first statement starting with ``prefix``.

    The action runs on its own connection and commits before the intercepted
    statement executes, the way a concurrent request would between a read
    and the write that depends on it. SQLite only takes its write lock at
    the first write, so the intercepted statement must be the first write
    of its transaction.
    """
    listeners = []

    def _interleave(prefix, action):
        state = {"fired": False, "result": None}

        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if state["fired"] or not statement.lstrip().upper().startswith(prefix.upper()):
                return
            state["fired"] = True
            state["result"] = action()

        event.listen(db.engine, "before_cursor_execute", before_cursor_execute)
        listeners.append(before_cursor_execute)
        return state

    yield _interleave

    for listener in listeners:
        event.remove(db.engine, "before_cursor_execute", listener)
