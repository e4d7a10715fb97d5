"""
Per-request session controller lifecycle.

Each request that touches authentication gets its own AccountStore (a fresh
Supabase client) with the caller's session restored into it, and its own
SessionController subscribed to that store. The gateway registers:

- persist_session() as an after_request hook: writes the store's current
  tokens back into the signed session cookie.
- close_session_controller() as a teardown hook: unsubscribes the
  controller and the store, whatever happened during the request.
"""

import logging
from typing import Optional

from flask import Response, abort, current_app, g, make_response, session

from evently.auth_service.controller import SessionController
from evently.auth_service.utils import verify_token_from_request
from evently.database.account_store import AccountStore
from evently.database.db_connection import get_db

SESSION_ACCESS_KEY = "sb_access_token"
SESSION_REFRESH_KEY = "sb_refresh_token"


def default_store_factory() -> AccountStore:
    return AccountStore(get_db())


def _open_store() -> AccountStore:
    factory = current_app.config.get("ACCOUNT_STORE_FACTORY") or default_store_factory
    store = factory()

    token, claims, err, code = verify_token_from_request()
    if err is not None:
        store.close()
        abort(make_response(err, code))

    if token is not None:
        store.restore_access_token(token, claims)
        return store

    access_token = session.get(SESSION_ACCESS_KEY)
    refresh_token = session.get(SESSION_REFRESH_KEY)
    if access_token and refresh_token:
        if store.restore_session(access_token, refresh_token) is not None:
            clear_session_tokens()
    return store


def current_auth() -> SessionController:
    """
    The SessionController for this request, created on first use.
    """
    controller: Optional[SessionController] = g.get("auth")
    if controller is None:
        controller = SessionController(_open_store())
        g.auth = controller
    return controller


def clear_session_tokens() -> None:
    if SESSION_ACCESS_KEY in session:
        session.pop(SESSION_ACCESS_KEY, None)
        session.pop(SESSION_REFRESH_KEY, None)


def persist_session(response: Response) -> Response:
    """
    Store the current cookie-session tokens (or forget them after sign-out).
    """
    controller: Optional[SessionController] = g.get("auth")
    if controller is None or controller.store.is_bearer:
        return response

    tokens = controller.store.session_tokens()
    if tokens is None:
        clear_session_tokens()
    elif session.get(SESSION_ACCESS_KEY) != tokens[0] or session.get(SESSION_REFRESH_KEY) != tokens[1]:
        session[SESSION_ACCESS_KEY], session[SESSION_REFRESH_KEY] = tokens
    return response


def close_session_controller(exc: Optional[BaseException] = None) -> None:
    controller: Optional[SessionController] = g.pop("auth", None)
    if controller is None:
        return
    try:
        controller.close()
    finally:
        controller.store.close()
    if exc is not None:
        logging.info(f"[Auth] Request ended with {exc.__class__.__name__}; session controller closed")
