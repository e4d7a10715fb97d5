"""
Route guards.

Every role-gated view goes through the same three-state decision:

    loading                        -> WAIT (never redirect)
    no user, or the wrong role     -> REDIRECT to sign-in
    signed in but no role yet      -> REDIRECT to role selection
    signed in with a required role -> PROCEED

`evaluate_guard` is the pure decision; `role_required` applies it to a
Flask view using the request's SessionController.
"""

from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, Iterable, Optional

from flask import jsonify, redirect

from evently.auth_service.models import Role, SessionView, User
from evently.auth_service.session import current_auth

LOGIN_ROUTE = "/auth/login"
ROLE_SELECTION_ROUTE = "/dashboard"


class GuardAction(str, Enum):
    WAIT = "wait"
    REDIRECT = "redirect"
    PROCEED = "proceed"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    target: Optional[str] = None


WAIT = GuardDecision(GuardAction.WAIT)
PROCEED = GuardDecision(GuardAction.PROCEED)


def evaluate_guard(view: SessionView, required_roles: Iterable[Any]) -> GuardDecision:
    """
    Decide what a role-gated page should do for `view`.

    Args:
        view (SessionView): Snapshot of the caller's session.
        required_roles: Roles allowed on the page (Role or role strings).

    Returns:
        GuardDecision: WAIT, PROCEED, or REDIRECT with a target route.
    """
    if view.is_loading:
        return WAIT
    if view.user is None:
        return GuardDecision(GuardAction.REDIRECT, LOGIN_ROUTE)
    if view.role is None:
        return GuardDecision(GuardAction.REDIRECT, ROLE_SELECTION_ROUTE)

    allowed = {Role.parse(r) for r in required_roles}
    if view.role not in allowed:
        return GuardDecision(GuardAction.REDIRECT, LOGIN_ROUTE)
    return PROCEED


def landing_route(user: Optional[User], role: Optional[Role]) -> str:
    """The page a user lands on after choosing (or already having) a role."""
    if user is None:
        return LOGIN_ROUTE
    if role is Role.ATTENDEE:
        return "/attendee"
    if role is Role.ORGANIZER:
        return f"/organizer/{user.id}"
    if role is Role.ADMIN:
        return "/admin"
    return ROLE_SELECTION_ROUTE


def role_required(*roles: Any) -> Callable:
    """
    Decorator gating a view on the caller's role.

    Browser callers are redirected; bearer-token callers get JSON errors.
    """
    def decorator(view_func: Callable) -> Callable:
        @wraps(view_func)
        def wrapped(*args: Any, **kwargs: Any) -> Any:
            auth = current_auth()
            decision = evaluate_guard(auth.view, roles)

            if decision.action is GuardAction.WAIT:
                return jsonify({"status": "loading"}), 202

            if decision.action is GuardAction.REDIRECT:
                if auth.store.is_bearer:
                    if auth.user is None:
                        return jsonify({"error": "missing token"}), 401
                    return jsonify({"error": "permission denied"}), 403
                return redirect(decision.target)

            return view_func(*args, **kwargs)
        return wrapped
    return decorator
