"""
Remote Account/Row Store adapter.

Wraps one Supabase client and exposes the small contract the rest of the
application depends on:

- create_account / authenticate / sign_out
- on_session_change (with initial-session delivery)
- select_one / insert_one / update_one
- select_many / count / delete for the CRUD services

Every Supabase, PostgREST and transport exception is decoded here, once,
into a StoreError with a stable `code`. Nothing above this module inspects
library error objects.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from postgrest.exceptions import APIError
from supabase import AuthApiError, AuthError, Client

# --- ERROR CODES ---
NO_ROWS = "no-rows"
INVALID_CREDENTIALS = "invalid-credentials"
AUTH_FAILED = "auth"
NETWORK = "network"
PERMISSION_DENIED = "permission-denied"
CONFLICT = "conflict"
UNKNOWN = "unknown"

# PostgREST / Postgres codes we care about
_PGRST_CODES = {
    "PGRST116": NO_ROWS,
    "42501": PERMISSION_DENIED,
    "23505": CONFLICT,
}


@dataclass(frozen=True)
class StoreError:
    code: str
    message: str


@dataclass(frozen=True)
class Account:
    """Identity issued by the auth provider."""
    account_id: str
    email: str
    email_verified: bool = False


@dataclass(frozen=True)
class Session:
    account: Account
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class AccountResult:
    account: Optional[Account] = None
    error: Optional[StoreError] = None


@dataclass(frozen=True)
class RowResult:
    row: Optional[Dict[str, Any]] = None
    error: Optional[StoreError] = None


@dataclass(frozen=True)
class RowsResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[StoreError] = None


@dataclass(frozen=True)
class CountResult:
    count: int = 0
    error: Optional[StoreError] = None


SessionCallback = Callable[[Optional[Session]], None]


# --- DECODING ---
def decode_error(exc: Exception) -> StoreError:
    """
    Translate a library exception into a StoreError.

    Args:
        exc (Exception): Anything raised by the Supabase client.

    Returns:
        StoreError: Tagged error with a human-readable message.
    """
    if isinstance(exc, APIError):
        code = _PGRST_CODES.get(str(exc.code or ""), UNKNOWN)
        return StoreError(code, exc.message or "Row store request failed")
    if isinstance(exc, AuthApiError):
        if exc.status in (400, 401):
            return StoreError(INVALID_CREDENTIALS, exc.message or "Invalid login credentials")
        return StoreError(AUTH_FAILED, exc.message or "Authentication failed")
    if isinstance(exc, AuthError):
        return StoreError(AUTH_FAILED, exc.message or "Authentication failed")
    if isinstance(exc, httpx.HTTPError):
        return StoreError(NETWORK, f"Could not reach the account store: {exc}")
    return StoreError(UNKNOWN, str(exc) or exc.__class__.__name__)


_HTTP_STATUS = {
    NO_ROWS: 404,
    INVALID_CREDENTIALS: 401,
    PERMISSION_DENIED: 403,
    CONFLICT: 409,
}


def http_status(error: StoreError) -> int:
    """HTTP status a view should answer with for `error`."""
    return _HTTP_STATUS.get(error.code, 500)


def ilike_clause(column: str, search: str) -> str:
    """
    One `or=` clause matching `search` anywhere in `column`.

    The pattern is double-quoted so commas, dots and parentheses in user
    input stay part of the value instead of splitting the filter.
    """
    escaped = search.replace("\\", "\\\\").replace('"', '\\"')
    return f'{column}.ilike."%{escaped}%"'


def decode_account(user: Any) -> Optional[Account]:
    """Build an Account from a Supabase auth user object."""
    if user is None:
        return None
    return Account(
        account_id=str(user.id),
        email=user.email or "",
        email_verified=bool(getattr(user, "email_confirmed_at", None)),
    )


def decode_session(session: Any) -> Optional[Session]:
    """Build a Session from a Supabase auth session object."""
    if session is None or getattr(session, "user", None) is None:
        return None
    return Session(
        account=decode_account(session.user),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


class AccountStore:
    """
    Adapter over a single Supabase client.

    The adapter keeps one subscription to the client's auth events and fans
    each (decoded) session out to its own listeners.
    """

    def __init__(self, client: Client):
        self._client = client
        self._listeners: List[SessionCallback] = []
        self._bearer: Optional[Session] = None
        # Set when a remote sign-out failed; the client still holds the old session
        self._signed_out = False
        self._subscription = client.auth.on_auth_state_change(self._on_auth_event)

    # --- SESSION RESTORE ---
    def restore_session(self, access_token: str, refresh_token: str) -> Optional[StoreError]:
        """
        Restore a browser session from stored tokens.

        Returns:
            StoreError if the tokens were rejected, otherwise None.
        """
        try:
            self._client.auth.set_session(access_token, refresh_token)
        except Exception as e:
            error = decode_error(e)
            logging.warning(f"[Store] Could not restore session: {error.message}")
            return error
        self._signed_out = False
        return None

    def restore_access_token(self, access_token: str, claims: Dict[str, Any]) -> None:
        """
        Act on behalf of a bearer-token caller.

        `claims` must already be verified (see auth_service.utils). Row
        requests carry the caller's token so the store's access policies apply.
        """
        account = Account(
            account_id=str(claims["sub"]),
            email=claims.get("email") or "",
            email_verified=bool((claims.get("user_metadata") or {}).get("email_verified")),
        )
        self._bearer = Session(account=account, access_token=access_token)
        self._client.postgrest.auth(access_token)

    def current_session(self) -> Optional[Session]:
        if self._bearer is not None:
            return self._bearer
        if self._signed_out:
            return None
        try:
            return decode_session(self._client.auth.get_session())
        except Exception as e:
            logging.warning(f"[Store] Could not read current session: {decode_error(e).message}")
            return None

    def session_tokens(self) -> Optional[Tuple[str, str]]:
        """(access_token, refresh_token) of the cookie session, if any."""
        if self._bearer is not None:
            return None
        session = self.current_session()
        if session is None or not session.refresh_token:
            return None
        return session.access_token, session.refresh_token

    @property
    def is_bearer(self) -> bool:
        return self._bearer is not None

    # --- SESSION EVENTS ---
    def _on_auth_event(self, event: str, session: Any) -> None:
        logging.info(f"[Store] Auth event {event}")
        self._emit(decode_session(session))

    def _emit(self, session: Optional[Session]) -> None:
        for callback in list(self._listeners):
            callback(session)

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Register for session changes.

        The callback is invoked immediately with the current session (or
        None), then again on every sign-in, sign-out and token refresh.

        Returns:
            A function that removes the subscription.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        callback(self.current_session())
        return unsubscribe

    def close(self) -> None:
        """Drop all listeners and the underlying auth subscription."""
        self._listeners.clear()
        try:
            self._subscription.unsubscribe()
        except Exception as e:
            logging.warning(f"[Store] Failed to unsubscribe from auth events: {e}")

    # --- ACCOUNTS ---
    def create_account(self, email: str, password: str) -> AccountResult:
        try:
            response = self._client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            return AccountResult(error=decode_error(e))

        if response.session is not None:
            self._signed_out = False
        account = decode_account(response.user)
        if account is None:
            return AccountResult(error=StoreError(AUTH_FAILED, "Sign-up did not return an account"))
        return AccountResult(account=account)

    def authenticate(self, email: str, password: str) -> Optional[StoreError]:
        try:
            self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            return decode_error(e)
        self._signed_out = False
        return None

    def sign_out(self) -> Optional[StoreError]:
        """
        Sign out. Never raises.

        GoTrue only emits SIGNED_OUT when the remote call succeeds (or is
        rejected with an API error). On a network or server failure the
        session is dropped here instead, listeners get None, and the error
        is returned.
        """
        if self._bearer is not None:
            self._bearer = None
            self._emit(None)
            return None
        try:
            self._client.auth.sign_out()
        except Exception as e:
            error = decode_error(e)
            logging.error(f"[Store] Sign-out failed: {error.message}")
            self._signed_out = True
            self._emit(None)
            return error
        return None

    # --- ROWS ---
    def _filtered(self, query: Any, filters: Optional[Dict[str, Any]]) -> Any:
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        return query

    def select_one(self, table: str, filters: Dict[str, Any], columns: str = "*") -> RowResult:
        try:
            query = self._filtered(self._client.table(table).select(columns), filters)
            response = query.single().execute()
        except Exception as e:
            return RowResult(error=decode_error(e))
        return RowResult(row=response.data)

    def select_many(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        search: Optional[str] = None,
        search_columns: Tuple[str, ...] = (),
    ) -> RowsResult:
        try:
            query = self._filtered(self._client.table(table).select(columns), filters)
            if search and search_columns:
                query = query.or_(",".join(ilike_clause(c, search) for c in search_columns))
            if order_by:
                query = query.order(order_by, desc=descending)
            response = query.execute()
        except Exception as e:
            return RowsResult(error=decode_error(e))
        return RowsResult(rows=list(response.data or []))

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> CountResult:
        try:
            query = self._client.table(table).select("*", count="exact", head=True)
            response = self._filtered(query, filters).execute()
        except Exception as e:
            return CountResult(error=decode_error(e))
        return CountResult(count=response.count or 0)

    def insert_one(self, table: str, record: Dict[str, Any]) -> RowResult:
        try:
            response = self._client.table(table).insert(record).execute()
        except Exception as e:
            return RowResult(error=decode_error(e))
        rows = response.data or []
        return RowResult(row=rows[0] if rows else None)

    def update_one(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> RowResult:
        """Update matching rows; no match (or no visible match) is a no-rows error."""
        try:
            query = self._filtered(self._client.table(table).update(patch), filters)
            response = query.execute()
        except Exception as e:
            return RowResult(error=decode_error(e))
        rows = response.data or []
        if not rows:
            return RowResult(error=StoreError(NO_ROWS, f"No {table} row matched the update"))
        return RowResult(row=rows[0])

    def delete(self, table: str, filters: Dict[str, Any]) -> Optional[StoreError]:
        try:
            response = self._filtered(self._client.table(table).delete(), filters).execute()
        except Exception as e:
            return decode_error(e)
        if not response.data:
            return StoreError(NO_ROWS, f"No {table} row matched the delete")
        return None
