"""
Venues service route handlers.
Manages venues and the admin review of venue bookings.
"""

import logging
from typing import Any, Dict, List, Optional

from flask import Blueprint, request, jsonify

from evently.auth_service.guards import role_required
from evently.auth_service.models import Role
from evently.auth_service.session import current_auth
from evently.database.account_store import http_status
from evently.events_service.booking import PENDING, REVIEW_DECISIONS

venues_bp = Blueprint("venues", __name__)

VENUES_TABLE = "venues"
EVENTS_TABLE = "events"

REQUIRED_FIELDS = ["name", "address", "city", "country"]
ALLOWED_FIELDS = [
    "name", "address", "city", "state_province", "country", "capacity",
    "description", "amenities", "contact_email", "contact_phone", "image_url",
]


def parse_amenities(value: Any) -> Optional[List[str]]:
    """'Wifi, Parking,' -> ['Wifi', 'Parking']"""
    if value is None:
        return None
    items = value if isinstance(value, list) else str(value).split(",")
    cleaned = [str(item).strip() for item in items if str(item).strip()]
    return cleaned or None


def venue_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = {k: data[k] for k in ALLOWED_FIELDS if k in data}
    if "amenities" in fields:
        fields["amenities"] = parse_amenities(fields["amenities"])
    return fields


@venues_bp.before_request
def before_request() -> None:
    logging.info(f"[Venues] Incoming {request.method} {request.path}")


@venues_bp.route("/", methods=["GET"])
def list_venues():
    """
    Get all venues. Public access allowed (anyone can see venues).
    """
    result = current_auth().store.select_many(VENUES_TABLE, order_by="name")
    if result.error:
        logging.error(f"[Venues] Error listing venues: {result.error.message}")
        return jsonify({"error": "Failed to list venues"}), 500
    return jsonify(result.rows), 200


@venues_bp.route("/", methods=["POST"])
@role_required(Role.ORGANIZER, Role.ADMIN)
def create_venue():
    """
    Organizers and admins: create a new venue.
    """
    data = request.get_json() or {}
    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    record = venue_fields(data)
    record["created_by"] = current_auth().user.id

    result = current_auth().store.insert_one(VENUES_TABLE, record)
    if result.error:
        logging.error(f"[Venues] Error creating venue: {result.error.message}")
        return jsonify({"error": "Failed to create venue"}), http_status(result.error)
    return jsonify(result.row), 201


def _check_venue_access(venue_id: str):
    """Admins may change any venue; organizers only the ones they created."""
    auth = current_auth()
    result = auth.store.select_one(VENUES_TABLE, {"venue_id": venue_id})
    if result.error:
        if http_status(result.error) == 404:
            return jsonify({"error": "Venue not found"}), 404
        logging.error(f"[Venues] Error loading venue {venue_id}: {result.error.message}")
        return jsonify({"error": "Failed to retrieve venue"}), 500
    if auth.role is not Role.ADMIN and result.row.get("created_by") != auth.user.id:
        return jsonify({"error": "Permission denied"}), 403
    return None


@venues_bp.route("/<venue_id>", methods=["PUT"])
@role_required(Role.ORGANIZER, Role.ADMIN)
def update_venue(venue_id):
    data = request.get_json() or {}
    fields = venue_fields(data)
    if not fields:
        return jsonify({"error": "No valid fields to update"}), 400

    err = _check_venue_access(venue_id)
    if err:
        return err

    result = current_auth().store.update_one(VENUES_TABLE, {"venue_id": venue_id}, fields)
    if result.error:
        logging.error(f"[Venues] Error updating venue: {result.error.message}")
        return jsonify({"error": "Failed to update venue"}), http_status(result.error)
    return jsonify(result.row), 200


@venues_bp.route("/<venue_id>", methods=["DELETE"])
@role_required(Role.ORGANIZER, Role.ADMIN)
def delete_venue(venue_id):
    err = _check_venue_access(venue_id)
    if err:
        return err

    # Events keep their row; the store sets their venue_id to null
    error = current_auth().store.delete(VENUES_TABLE, {"venue_id": venue_id})
    if error:
        logging.error(f"[Venues] Error deleting venue: {error.message}")
        return jsonify({"error": "Failed to delete venue"}), http_status(error)
    return jsonify({"status": "deleted"}), 200


# --- VENUE BOOKING APPROVALS (ADMIN) ---

@venues_bp.route("/approvals", methods=["GET"])
@role_required(Role.ADMIN)
def list_pending_approvals():
    """
    Events waiting for an admin to approve their venue booking, soonest first.
    """
    result = current_auth().store.select_many(
        EVENTS_TABLE,
        filters={"venue_booking_status": PENDING},
        columns="event_id, title, date, venue_id, venue_booking_status, "
                "organizer:users ( name ), venue:venues ( name )",
        order_by="date",
    )
    if result.error:
        logging.error(f"[Venues] Error fetching pending approvals: {result.error.message}")
        return jsonify({"error": f"Error fetching approvals: {result.error.message}"}), 500
    return jsonify(result.rows), 200


@venues_bp.route("/approvals/<event_id>", methods=["POST"])
@role_required(Role.ADMIN)
def review_booking(event_id):
    """
    Approve or reject an event's venue booking.

    Expects JSON:
        { "status": "approved" | "rejected" }
    """
    data = request.get_json() or {}
    status = data.get("status")
    if status not in REVIEW_DECISIONS:
        return jsonify({"error": f"status must be one of: {', '.join(REVIEW_DECISIONS)}"}), 400

    result = current_auth().store.update_one(
        EVENTS_TABLE,
        {"event_id": event_id, "venue_booking_status": PENDING},
        {"venue_booking_status": status},
    )
    if result.error:
        if http_status(result.error) == 404:
            return jsonify({"error": "No pending booking for this event"}), 404
        logging.error(f"[Venues] Error reviewing booking for {event_id}: {result.error.message}")
        return jsonify({"error": "Failed to update booking"}), http_status(result.error)
    return jsonify(result.row), 200
