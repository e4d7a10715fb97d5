"""
Tickets service routes: purchase, history, and cancellation for attendees.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, request, jsonify, Response

from evently.auth_service.guards import role_required
from evently.auth_service.models import Role
from evently.auth_service.session import current_auth
from evently.database.account_store import http_status
from evently.events_service.booking import can_purchase_tickets

tickets_bp = Blueprint("tickets", __name__)

PURCHASES_TABLE = "ticket_purchases"
EVENTS_TABLE = "events"

MIN_TICKETS = 1
MAX_TICKETS = 5
CONFIRMED = "confirmed"
CANCELLED = "cancelled"

HISTORY_COLUMNS = """
    purchase_id, quantity, purchase_date, status, updated_at, event_id,
    events ( event_id, title, date, time, image_url, location, ticket_price_range )
"""


@tickets_bp.before_request
def before_request() -> None:
    logging.info(f"[Tickets] Incoming {request.method} {request.path}")


@tickets_bp.route("/", methods=["POST"])
@role_required(Role.ATTENDEE)
def purchase_tickets() -> Tuple[Response, int]:
    """
    Buy tickets for an event.

    Expects JSON:
        { "event_id": str, "quantity": int (1-5), "payment_method_id": str (optional) }

    Returns:
        201: The purchase record.
        400: Invalid quantity or missing event_id.
        404: Event not found.
        409: Ticket sales are closed for this event (venue booking not approved).
    """
    auth = current_auth()
    data: Dict[str, Any] = request.get_json() or {}
    event_id = data.get("event_id")
    quantity = data.get("quantity", 1)

    if not event_id:
        return jsonify({"error": "event_id is required"}), 400
    if not isinstance(quantity, int) or isinstance(quantity, bool) or not (MIN_TICKETS <= quantity <= MAX_TICKETS):
        return jsonify({"error": f"quantity must be between {MIN_TICKETS} and {MAX_TICKETS}"}), 400

    event = auth.store.select_one(EVENTS_TABLE, {"event_id": event_id})
    if event.error:
        if http_status(event.error) == 404:
            return jsonify({"error": "Event not found"}), 404
        logging.error(f"[Tickets] Error loading event {event_id}: {event.error.message}")
        return jsonify({"error": "Failed to retrieve event"}), 500

    if not can_purchase_tickets(event.row):
        return jsonify({
            "error": "Tickets are not on sale until the event's venue booking is approved."
        }), 409

    record = {
        "event_id": event_id,
        "attendee_user_id": auth.user.id,
        "organizer_user_id": event.row.get("organizer_id"),
        "quantity": quantity,
        "payment_method_id": data.get("payment_method_id"),
        "status": CONFIRMED,
    }
    result = auth.store.insert_one(PURCHASES_TABLE, record)
    if result.error:
        logging.error(f"[Tickets] Error saving purchase: {result.error.message}")
        return jsonify({"error": "Failed to purchase tickets"}), http_status(result.error)

    logging.info(f"[Tickets] {auth.user.id} bought {quantity} ticket(s) for {event_id}")
    return jsonify(result.row), 201


@tickets_bp.route("/", methods=["GET"])
@role_required(Role.ATTENDEE)
def ticket_history() -> Tuple[Response, int]:
    """
    The caller's purchases, newest first, with event details.
    """
    auth = current_auth()
    result = auth.store.select_many(
        PURCHASES_TABLE,
        filters={"attendee_user_id": auth.user.id},
        columns=HISTORY_COLUMNS,
        order_by="purchase_date",
        descending=True,
    )
    if result.error:
        logging.error(f"[Tickets] Error fetching ticket history: {result.error.message}")
        return jsonify({"error": "Could not fetch your ticket history. Please try again later."}), 500
    return jsonify(result.rows), 200


@tickets_bp.route("/<purchase_id>/cancel", methods=["POST"])
@role_required(Role.ATTENDEE)
def cancel_ticket(purchase_id: str) -> Tuple[Response, int]:
    """
    Cancel one of the caller's confirmed purchases.
    """
    auth = current_auth()
    result = auth.store.update_one(
        PURCHASES_TABLE,
        {"purchase_id": purchase_id, "attendee_user_id": auth.user.id, "status": CONFIRMED},
        {"status": CANCELLED},
    )
    if result.error:
        if http_status(result.error) == 404:
            return jsonify({"error": "No confirmed purchase found"}), 404
        logging.error(f"[Tickets] Error cancelling {purchase_id}: {result.error.message}")
        return jsonify({"error": f"Could not cancel ticket: {result.error.message}"}), 500
    return jsonify(result.row), 200
