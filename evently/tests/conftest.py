import itertools
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import jwt
import pytest

# Ensure bearer verification is configured for tests
os.environ["SUPABASE_JWT_SECRET"] = "test_secret"

from evently.auth_service.controller import SessionController
from evently.auth_service.models import PROFILE_KEY, PROFILE_TABLE
from evently.database.account_store import (
    CONFLICT,
    INVALID_CREDENTIALS,
    NO_ROWS,
    Account,
    AccountResult,
    CountResult,
    RowResult,
    RowsResult,
    Session,
    StoreError,
)
from evently.gateway.server import create_app

TABLE_KEYS = {
    "users": PROFILE_KEY,
    "events": "event_id",
    "venues": "venue_id",
    "ticket_purchases": "purchase_id",
}


class FakeBackend:
    """
    In-memory stand-in for the hosted account/row store.

    Shared by every FakeAccountStore created from it, the way one Supabase
    project is shared by every client.
    """

    def __init__(self):
        self.accounts = {}        # email -> {"account_id", "password", "email"}
        self.refresh_tokens = {}  # refresh token -> email
        self.tables = defaultdict(list)
        self.failures = {}        # "operation:table" -> StoreError
        self.calls = []           # (operation, table)
        self.confirm_email = False
        self._ids = itertools.count(1)

    def next_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def fail(self, operation, table, code="unknown", message="store unavailable"):
        self.failures[f"{operation}:{table}"] = StoreError(code, message)

    def store(self, defer_events=False):
        return FakeAccountStore(self, defer_events=defer_events)

    # --- SEEDING ---
    def add_account(self, email, password="password123"):
        account_id = self.next_id("acct")
        self.accounts[email] = {"account_id": account_id, "password": password, "email": email}
        return account_id

    def add_user(self, email, role="attendee", name=None, password="password123", **fields):
        account_id = self.add_account(email, password)
        row = {PROFILE_KEY: account_id, "email": email, "name": name or email.split("@")[0], "role": role}
        row.update(fields)
        self.tables["users"].append(row)
        return account_id

    def add_row(self, table, **fields):
        key = TABLE_KEYS[table]
        fields.setdefault(key, self.next_id(table))
        self.tables[table].append(dict(fields))
        return fields[key]


def _matches(row, filters):
    for column, value in (filters or {}).items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif row.get(column) != value:
            return False
    return True


class FakeAccountStore:
    """Implements the AccountStore contract against a FakeBackend."""

    def __init__(self, backend, defer_events=False):
        self.backend = backend
        self.defer_events = defer_events
        self.pending = []
        self.closed = False
        self._listeners = []
        self._session = None
        self._bearer = False

    # --- SESSION EVENTS ---
    def _emit(self, session):
        if self.defer_events:
            self.pending.append(session)
            return
        for callback in list(self._listeners):
            callback(session)

    def deliver(self):
        """Deliver queued session events in order."""
        while self.pending:
            session = self.pending.pop(0)
            for callback in list(self._listeners):
                callback(session)

    def on_session_change(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        callback(self._session)
        return unsubscribe

    @property
    def listener_count(self):
        return len(self._listeners)

    def close(self):
        self._listeners.clear()
        self.closed = True

    # --- SESSION RESTORE ---
    def _start_session(self, email):
        info = self.backend.accounts[email]
        refresh = f"refresh-{info['account_id']}-{self.backend.next_id('r')}"
        self.backend.refresh_tokens[refresh] = email
        self._session = Session(
            account=Account(info["account_id"], email, email_verified=True),
            access_token=f"access-{info['account_id']}",
            refresh_token=refresh,
        )
        self._emit(self._session)

    def restore_session(self, access_token, refresh_token):
        email = self.backend.refresh_tokens.get(refresh_token)
        if email is None:
            return StoreError("auth", "Invalid Refresh Token")
        info = self.backend.accounts[email]
        self._session = Session(Account(info["account_id"], email, True), access_token, refresh_token)
        return None

    def restore_access_token(self, access_token, claims):
        self._bearer = True
        self._session = Session(Account(str(claims["sub"]), claims.get("email") or ""), access_token)

    def current_session(self):
        return self._session

    def session_tokens(self):
        if self._bearer or self._session is None or not self._session.refresh_token:
            return None
        return self._session.access_token, self._session.refresh_token

    @property
    def is_bearer(self):
        return self._bearer

    # --- ACCOUNTS ---
    def _failure(self, operation, table=""):
        self.backend.calls.append((operation, table))
        return self.backend.failures.get(f"{operation}:{table}")

    def create_account(self, email, password):
        error = self._failure("create_account")
        if error:
            return AccountResult(error=error)
        if email in self.backend.accounts:
            return AccountResult(error=StoreError(CONFLICT, "User already registered"))
        account_id = self.backend.add_account(email, password)
        if not self.backend.confirm_email:
            self._start_session(email)
        return AccountResult(account=Account(account_id, email))

    def authenticate(self, email, password):
        error = self._failure("authenticate")
        if error:
            return error
        info = self.backend.accounts.get(email)
        if info is None or info["password"] != password:
            return StoreError(INVALID_CREDENTIALS, "Invalid login credentials")
        self._start_session(email)
        return None

    def sign_out(self):
        error = self._failure("sign_out")
        self._bearer = False
        self._session = None
        self._emit(None)
        return error

    # --- ROWS ---
    def select_one(self, table, filters, columns="*"):
        error = self._failure("select_one", table)
        if error:
            return RowResult(error=error)
        rows = [r for r in self.backend.tables[table] if _matches(r, filters)]
        if len(rows) != 1:
            return RowResult(error=StoreError(NO_ROWS, "JSON object requested, multiple (or no) rows returned"))
        return RowResult(row=dict(rows[0]))

    def select_many(self, table, filters=None, columns="*", order_by=None, descending=False,
                    search=None, search_columns=()):
        error = self._failure("select_many", table)
        if error:
            return RowsResult(error=error)
        rows = [dict(r) for r in self.backend.tables[table] if _matches(r, filters)]
        if search and search_columns:
            needle = search.lower()
            rows = [r for r in rows if any(needle in str(r.get(c) or "").lower() for c in search_columns)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        return RowsResult(rows=rows)

    def count(self, table, filters=None):
        error = self._failure("count", table)
        if error:
            return CountResult(error=error)
        return CountResult(count=sum(1 for r in self.backend.tables[table] if _matches(r, filters)))

    def insert_one(self, table, record):
        error = self._failure("insert_one", table)
        if error:
            return RowResult(error=error)
        row = dict(record)
        key = TABLE_KEYS[table]
        row.setdefault(key, self.backend.next_id(table))
        if any(r.get(key) == row[key] for r in self.backend.tables[table]):
            return RowResult(error=StoreError(CONFLICT, "duplicate key value violates unique constraint"))
        if table == "ticket_purchases":
            row.setdefault("purchase_date", datetime.now(timezone.utc).isoformat())
        self.backend.tables[table].append(row)
        return RowResult(row=dict(row))

    def update_one(self, table, filters, patch):
        error = self._failure("update_one", table)
        if error:
            return RowResult(error=error)
        for row in self.backend.tables[table]:
            if _matches(row, filters):
                row.update(patch)
                return RowResult(row=dict(row))
        return RowResult(error=StoreError(NO_ROWS, f"No {table} row matched the update"))

    def delete(self, table, filters):
        error = self._failure("delete", table)
        if error:
            return error
        rows = self.backend.tables[table]
        keep = [r for r in rows if not _matches(r, filters)]
        if len(keep) == len(rows):
            return StoreError(NO_ROWS, f"No {table} row matched the delete")
        self.backend.tables[table] = keep
        return None


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store(backend):
    return backend.store()


@pytest.fixture
def deferred_store(backend):
    return backend.store(defer_events=True)


@pytest.fixture
def controller(store):
    with SessionController(store) as ctrl:
        yield ctrl


@pytest.fixture
def app(backend):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "ACCOUNT_STORE_FACTORY": backend.store,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Sign the test client in; returns the JSON session payload."""
    def _login(email, password="password123"):
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()
    return _login


@pytest.fixture
def bearer_headers():
    """Authorization headers carrying a token signed with the test secret."""
    def _headers(account_id, email="api@example.com"):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": account_id, "email": email, "aud": "authenticated",
             "iat": now, "exp": now + timedelta(hours=1)},
            os.environ["SUPABASE_JWT_SECRET"],
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def profiles(backend):
    return backend.tables[PROFILE_TABLE]
