"""
Authentication service route handlers.

Provides routes for:
- Sign-up (account + profile row)
- Sign-in / sign-out
- First-time role selection
- Profile retrieval and owner edits (/me)
- Admin user listing, editing and role reassignment

All session state is owned by the request's SessionController
(`auth_service.session.current_auth`).
"""

import logging
from typing import Tuple, Dict, Any, Type

from flask import Blueprint, request, jsonify, Response

from evently.auth_service.errors import (
    AccountCreationError,
    AuthError,
    CredentialError,
    ProfileCreationError,
    ProfileUpdateError,
    RoleUpdateError,
    ValidationError,
)
from evently.auth_service.guards import landing_route, role_required
from evently.auth_service.models import PROFILE_KEY, PROFILE_TABLE, ProfileDraft, Role
from evently.auth_service.session import clear_session_tokens, current_auth
from evently.database.account_store import http_status

auth_bp = Blueprint("auth", __name__)

PASSWORD_MIN_LENGTH = 8

ERROR_STATUS: Dict[Type[AuthError], int] = {
    ValidationError: 400,
    CredentialError: 401,
    AccountCreationError: 400,
    RoleUpdateError: 409,
    ProfileCreationError: 500,
    ProfileUpdateError: 500,
}

ADMIN_EDITABLE_FIELDS = ("name", "email", "organization_name", "bio", "profile_picture_url")


def error_response(error: AuthError) -> Tuple[Response, int]:
    return jsonify({"error": error.message}), ERROR_STATUS.get(type(error), 500)


def session_payload() -> Dict[str, Any]:
    view = current_auth().view
    payload = view.to_dict()
    payload["redirect"] = landing_route(view.user, view.role)
    return payload


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    Headers are not logged: they carry bearer tokens.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Create an account and its profile.

    Expects a JSON body with:
    - email (str)
    - password (str): Minimum 8 characters.
    - name (str)
    - role (str): attendee | organizer | admin
    - organization_name, bio (str, organizers only)
    - profile_picture_url (str, optional)

    Returns:
        201: Session view and landing route.
        400: Missing fields, invalid input, or the store rejected the account.
        500: Profile could not be saved (the new account is signed out).
    """
    data: Dict[str, Any] = request.get_json() or {}
    email: str = (data.get("email") or "").strip().lower()
    password: str = data.get("password") or ""
    role = Role.parse(data.get("role"))

    # Validate input
    if not email or not password:
        return jsonify({"error": "Email and password required"}), 400
    if len(password) < PASSWORD_MIN_LENGTH:
        return jsonify({"error": f"Password must be at least {PASSWORD_MIN_LENGTH} characters"}), 400
    if role is None:
        return jsonify({"error": "role must be one of: attendee, organizer, admin"}), 400

    draft = ProfileDraft(
        email=email,
        name=(data.get("name") or "").strip(),
        organization_name=data.get("organization_name"),
        bio=data.get("bio"),
        profile_picture_url=data.get("profile_picture_url"),
    )

    result = current_auth().sign_up(draft, role, password)
    if result.error:
        return error_response(result.error)

    return jsonify(session_payload()), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["GET"])
def login_entry() -> Tuple[Response, int]:
    """
    Sign-in entry point that guarded pages redirect to.
    """
    return jsonify({"status": "sign_in_required", "fields": ["email", "password"]}), 200


@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Sign in with email and password.

    Returns:
        200: Session view and landing route.
        400: Missing credentials.
        401: Invalid credentials.
    """
    data: Dict[str, Any] = request.get_json() or {}
    email: str = (data.get("email") or "").strip().lower()
    password: str = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password required"}), 400

    result = current_auth().sign_in(email, password)
    if result.error:
        return error_response(result.error)

    return jsonify(session_payload()), 200


# --- LOGOUT ---
@auth_bp.route("/logout", methods=["POST"])
def logout() -> Tuple[Response, int]:
    """
    Sign out. The cookie tokens are dropped whatever the store answers.

    Returns:
        200: Signed out.
        502: Signed out locally, but the store could not revoke the session.
    """
    result = current_auth().logout()
    clear_session_tokens()
    if result.error:
        return jsonify({"status": "signed_out_locally", "error": result.error.message}), 502
    return jsonify({"status": "signed_out"}), 200


# --- ROLE SELECTION ---
@auth_bp.route("/select-role", methods=["POST"])
def select_role() -> Tuple[Response, int]:
    """
    First-time role selection for a signed-in user.

    Expects JSON:
        { "role": "attendee" | "organizer" | "admin" }

    Returns:
        200: Session view with the new role and its landing route.
        400: Invalid role or not signed in.
        409: Role already chosen, or the store rejected the update.
    """
    data: Dict[str, Any] = request.get_json() or {}
    result = current_auth().select_role(data.get("role"))
    if result.error:
        return error_response(result.error)
    return jsonify(session_payload()), 200


# --- GET CURRENT USER ---
@auth_bp.route("/me", methods=["GET"])
def get_current_user() -> Tuple[Response, int]:
    """
    Retrieve the caller's session view.

    Returns:
        200: {user, role, is_loading, redirect}
    """
    return jsonify(session_payload()), 200


# --- UPDATE CURRENT USER ---
@auth_bp.route("/me", methods=["PUT"])
def update_current_user() -> Tuple[Response, int]:
    """
    Update the caller's own profile.

    Allowed fields: name, organization_name, bio, profile_picture_url

    Returns:
        200: Updated session view.
        400: No valid fields provided, or not signed in.
        500: Update failed.
    """
    auth = current_auth()
    if auth.user is None:
        return jsonify({"error": "Not signed in"}), 401

    data: Dict[str, Any] = request.get_json() or {}
    result = auth.update_profile(data)
    if result.error:
        return error_response(result.error)
    return jsonify(session_payload()), 200


# --- LIST USERS (ADMIN ONLY) ---
@auth_bp.route("/users", methods=["GET"])
@role_required(Role.ADMIN)
def list_users() -> Tuple[Response, int]:
    """
    Admin-only endpoint to list all profiles.
    """
    result = current_auth().store.select_many(PROFILE_TABLE, order_by="name")
    if result.error:
        logging.error(f"[Auth] Error listing users: {result.error.message}")
        return jsonify({"error": "Failed to retrieve users"}), http_status(result.error)
    return jsonify(result.rows), 200


@auth_bp.route("/users/<user_id>", methods=["GET"])
@role_required(Role.ADMIN)
def get_user(user_id: str) -> Tuple[Response, int]:
    result = current_auth().store.select_one(PROFILE_TABLE, {PROFILE_KEY: user_id})
    if result.error:
        return jsonify({"error": "User not found" if http_status(result.error) == 404
                        else "Could not retrieve user"}), http_status(result.error)
    return jsonify(result.row), 200


# --- EDIT USER (ADMIN ONLY) ---
@auth_bp.route("/users/<user_id>", methods=["PUT"])
@role_required(Role.ADMIN)
def update_user(user_id: str) -> Tuple[Response, int]:
    """
    Admin-only endpoint to edit any profile field, including role.

    Expects JSON with any of:
        name, email, organization_name, bio, profile_picture_url, role

    Returns:
        200: Updated profile row.
        400: No valid fields or invalid role.
        404: User not found.
        409: Role update rejected.
    """
    auth = current_auth()
    data: Dict[str, Any] = request.get_json() or {}
    fields = {k: v for k, v in data.items() if k in ADMIN_EDITABLE_FIELDS}

    if not fields and "role" not in data:
        return jsonify({"error": "No valid fields provided"}), 400

    if "role" in data:
        # Role and fields go out in one update
        result = auth.assign_role(user_id, data["role"], fields)
        if result.error:
            return error_response(result.error)
    else:
        updated = auth.store.update_one(PROFILE_TABLE, {PROFILE_KEY: user_id}, fields)
        if updated.error:
            logging.error(f"[Auth] Error updating user {user_id}: {updated.error.message}")
            return jsonify({"error": "Update failed"}), http_status(updated.error)

    profile = auth.store.select_one(PROFILE_TABLE, {PROFILE_KEY: user_id})
    if profile.error:
        return jsonify({"error": "User not found"}), http_status(profile.error)
    return jsonify(profile.row), 200
