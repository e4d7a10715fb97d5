"""
Landing pages.

/dashboard is the role-selection surface; the other pages are where each
role lands after signing in.
"""

from typing import Tuple

from flask import Blueprint, jsonify, redirect, Response

from evently.auth_service.guards import LOGIN_ROUTE, landing_route, role_required
from evently.auth_service.models import PROFILE_TABLE, Role
from evently.auth_service.session import current_auth
from evently.events_service.booking import PENDING
from evently.events_service.routes import with_purchase_flag

pages_bp = Blueprint("pages", __name__)

ROLE_OPTIONS = [
    {"role": Role.ATTENDEE.value, "label": "Attendee", "description": "Explore events and manage your tickets."},
    {"role": Role.ORGANIZER.value, "label": "Organizer", "description": "Create and manage your events."},
    {"role": Role.ADMIN.value, "label": "Administrator", "description": "Oversee the platform and manage users."},
]


@pages_bp.route("/dashboard", methods=["GET"])
def dashboard():
    """
    Role selection. Users who already have a role are sent to their landing page.
    """
    view = current_auth().view
    if view.is_loading:
        return jsonify({"status": "loading"}), 202
    if view.user is None:
        return redirect(LOGIN_ROUTE)
    if view.role is not None:
        return redirect(landing_route(view.user, view.role))
    return jsonify({
        "message": f"Welcome, {view.user.name}! Please select your role to continue.",
        "options": ROLE_OPTIONS,
    }), 200


@pages_bp.route("/attendee", methods=["GET"])
@role_required(Role.ATTENDEE)
def attendee_home() -> Tuple[Response, int]:
    result = current_auth().store.select_many("events", order_by="date")
    if result.error:
        return jsonify({"error": "Could not load events. Please try again later."}), 500
    return jsonify({
        "user": current_auth().user.to_dict(),
        "events": [with_purchase_flag(e) for e in result.rows],
    }), 200


@pages_bp.route("/organizer/<organizer_id>", methods=["GET"])
@role_required(Role.ORGANIZER)
def organizer_home(organizer_id: str):
    auth = current_auth()
    if auth.user.id != organizer_id:
        return redirect(LOGIN_ROUTE)

    events = auth.store.select_many("events", filters={"organizer_id": organizer_id}, order_by="date")
    if events.error:
        return jsonify({"error": "Could not load your events."}), 500
    return jsonify({"organizer": auth.user.to_dict(), "events": events.rows}), 200


@pages_bp.route("/admin", methods=["GET"])
@role_required(Role.ADMIN)
def admin_home() -> Tuple[Response, int]:
    store = current_auth().store
    users = store.count(PROFILE_TABLE)
    pending = store.count("events", {"venue_booking_status": PENDING})
    if users.error or pending.error:
        return jsonify({"error": "Could not load the admin overview."}), 500

    return jsonify({
        "admin": current_auth().user.to_dict(),
        "users": users.count,
        "pending_venue_approvals": pending.count,
    }), 200
