"""
Events service routes: browse, search, and organizer authoring.
Every event response carries `can_purchase`, derived from its venue booking status.
"""

import logging
from datetime import date
from typing import Tuple, Dict, Any, Optional
from urllib.parse import quote

from flask import Blueprint, request, jsonify, Response

from evently.auth_service.guards import role_required
from evently.auth_service.models import Role
from evently.auth_service.session import current_auth
from evently.database.account_store import http_status
from evently.events_service.booking import (
    can_purchase_tickets,
    initial_booking_status,
    next_booking_status,
)

events_bp = Blueprint("events", __name__)

EVENTS_TABLE = "events"

# --- CONSTANTS FOR VALIDATION ---
TITLE_MAX_LENGTH = 200
SEARCH_COLUMNS = ("title", "description", "location")
EDITABLE_FIELDS = [
    "title", "description", "date", "time", "location",
    "category", "ticket_price_range", "image_url",
]
LIST_COLUMNS = """
    event_id, title, description, date, time, location, category,
    ticket_price_range, image_url, organizer_id, venue_id, venue_booking_status,
    organizer:users ( name, organization_name ),
    venue:venues ( name, city )
"""


def parse_date(val: Optional[str]) -> Optional[date]:
    """
    Parse a 'YYYY-MM-DD' string.

    Returns:
        date: The parsed date, or None if invalid.
    """
    if not val:
        return None
    try:
        return date.fromisoformat(val)
    except (ValueError, TypeError):
        return None


def placeholder_image(title: str) -> str:
    return f"https://placehold.co/600x400.png?text={quote(title)}"


def with_purchase_flag(event: Dict[str, Any]) -> Dict[str, Any]:
    event = dict(event)
    event["can_purchase"] = can_purchase_tickets(event)
    return event


@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.route("/", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return all events, soonest first.

    Query parameters:
    - q: case-insensitive text search over title, description and location.
    - category: exact category match.

    Returns:
        200: List of event objects.
        500: Store error.
    """
    search = (request.args.get("q") or "").strip()
    category = (request.args.get("category") or "").strip()
    filters = {"category": category} if category else None

    result = current_auth().store.select_many(
        EVENTS_TABLE,
        filters=filters,
        columns=LIST_COLUMNS,
        order_by="date",
        search=search or None,
        search_columns=SEARCH_COLUMNS,
    )
    if result.error:
        logging.error(f"[Events] Error listing events: {result.error.message}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify([with_purchase_flag(e) for e in result.rows]), 200


@events_bp.route("/<event_id>", methods=["GET"])
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Get a single event by ID.

    Returns:
        200: Event object.
        404: Event not found.
    """
    result = current_auth().store.select_one(EVENTS_TABLE, {"event_id": event_id}, columns=LIST_COLUMNS)
    if result.error:
        status = http_status(result.error)
        if status == 404:
            return jsonify({"error": "Event not found"}), 404
        logging.error(f"[Events] Error getting event {event_id}: {result.error.message}")
        return jsonify({"error": "Failed to retrieve event"}), status
    return jsonify(with_purchase_flag(result.row)), 200


@events_bp.route("/", methods=["POST"])
@role_required(Role.ORGANIZER)
def create_event() -> Tuple[Response, int]:
    """
    Create an event owned by the calling organizer.

    Validations:
    - title and date are required; date is YYYY-MM-DD.
    - a venue_id puts the venue booking into 'pending'.

    Returns:
        201: { "event_id": str }
        400: Validation error.
        500: Store error.
    """
    user = current_auth().user
    data: Dict[str, Any] = request.get_json() or {}

    title = (data.get("title") or "").strip()
    event_date = parse_date(data.get("date"))

    # --- START VALIDATION ---
    if not title or not data.get("date"):
        return jsonify({"error": "title and date are required"}), 400
    if len(title) > TITLE_MAX_LENGTH:
        return jsonify({"error": f"Title must be {TITLE_MAX_LENGTH} characters or less."}), 400
    if event_date is None:
        return jsonify({"error": "Invalid date format. Use YYYY-MM-DD."}), 400
    # --- END VALIDATION ---

    venue_id = data.get("venue_id") or None
    record = {
        "title": title,
        "description": data.get("description"),
        "date": event_date.isoformat(),
        "time": data.get("time"),
        "location": data.get("location") or ("" if venue_id else "Online"),
        "venue_id": venue_id,
        "category": data.get("category"),
        "ticket_price_range": data.get("ticket_price_range"),
        "image_url": data.get("image_url") or placeholder_image(title),
        "organizer_id": user.id,
        "venue_booking_status": initial_booking_status(venue_id),
    }

    result = current_auth().store.insert_one(EVENTS_TABLE, record)
    if result.error or result.row is None:
        message = result.error.message if result.error else "no row returned"
        logging.error(f"[Events] Error creating event: {message}")
        return jsonify({"error": "Failed to create event"}), http_status(result.error) if result.error else 500

    return jsonify({"event_id": result.row["event_id"]}), 201


def _load_owned_event(event_id: str, allow_admin: bool = False) -> Tuple[Optional[Dict[str, Any]], Optional[Tuple[Response, int]]]:
    """Fetch an event and check the caller may change it."""
    auth = current_auth()
    result = auth.store.select_one(EVENTS_TABLE, {"event_id": event_id})
    if result.error:
        if http_status(result.error) == 404:
            return None, (jsonify({"error": "Event not found"}), 404)
        logging.error(f"[Events] Error loading event {event_id}: {result.error.message}")
        return None, (jsonify({"error": "Failed to retrieve event"}), 500)

    event = result.row
    is_owner = event.get("organizer_id") == auth.user.id
    if not is_owner and not (allow_admin and auth.role is Role.ADMIN):
        return None, (jsonify({"error": "You can only change your own events."}), 403)
    return event, None


@events_bp.route("/<event_id>", methods=["PUT"])
@role_required(Role.ORGANIZER)
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Update one of the caller's events.

    Changing the venue resets the venue booking status (see booking.next_booking_status).

    Returns:
        200: Updated event.
        400: Validation error.
        403: Not the event's organizer.
        404: Event not found.
    """
    data: Dict[str, Any] = request.get_json() or {}
    if not data:
        return jsonify({"error": "No update data provided"}), 400

    event, err = _load_owned_event(event_id)
    if err:
        return err

    patch = {k: data[k] for k in EDITABLE_FIELDS if k in data}

    # --- VALIDATION BLOCK ---
    if "title" in patch:
        title = (patch["title"] or "").strip()
        if not title:
            return jsonify({"error": "Title cannot be empty"}), 400
        if len(title) > TITLE_MAX_LENGTH:
            return jsonify({"error": f"Title must be {TITLE_MAX_LENGTH} characters or less."}), 400
        patch["title"] = title
    if "date" in patch:
        event_date = parse_date(patch["date"])
        if event_date is None:
            return jsonify({"error": "Invalid date format. Use YYYY-MM-DD."}), 400
        patch["date"] = event_date.isoformat()

    # --- VENUE BOOKING ---
    if "venue_id" in data:
        new_venue_id = data.get("venue_id") or None
        patch["venue_id"] = new_venue_id
    else:
        new_venue_id = event.get("venue_id")
    status = next_booking_status(event.get("venue_id"), event.get("venue_booking_status"), new_venue_id)
    if status != event.get("venue_booking_status"):
        patch["venue_booking_status"] = status

    if not patch:
        return jsonify({"error": "No valid fields to update"}), 400

    result = current_auth().store.update_one(EVENTS_TABLE, {"event_id": event_id}, patch)
    if result.error:
        logging.error(f"[Events] Error updating event {event_id}: {result.error.message}")
        return jsonify({"error": "Failed to update event"}), http_status(result.error)

    return jsonify(with_purchase_flag(result.row)), 200


@events_bp.route("/<event_id>", methods=["DELETE"])
@role_required(Role.ORGANIZER, Role.ADMIN)
def delete_event(event_id: str) -> Tuple[Response, int]:
    """
    Delete an event if the caller is its organizer or an admin.
    """
    _, err = _load_owned_event(event_id, allow_admin=True)
    if err:
        return err

    error = current_auth().store.delete(EVENTS_TABLE, {"event_id": event_id})
    if error:
        logging.error(f"[Events] Error deleting event {event_id}: {error.message}")
        return jsonify({"error": "Failed to delete event"}), http_status(error)

    return jsonify({"status": "deleted"}), 200
