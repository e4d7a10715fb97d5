"""
Analytics routes.
Platform totals for admins and per-event ticket sales for organizers.
"""

import logging
from typing import Tuple

from flask import Blueprint, jsonify, Response

from evently.auth_service.guards import role_required
from evently.auth_service.models import PROFILE_KEY, PROFILE_TABLE, Role
from evently.auth_service.session import current_auth

analytics_bp = Blueprint("analytics", __name__)

COUNTED_TABLES = ["users", "events", "venues", "ticket_purchases"]


@analytics_bp.route("/platform", methods=["GET"])
@role_required(Role.ADMIN)
def platform_stats() -> Tuple[Response, int]:
    """
    Admin-only: row counts and role distribution.

    Returns:
        200: { "totals": {table: count}, "roles": [{"role": str, "count": int}] }
        500: Any count failed.
    """
    store = current_auth().store

    totals = {}
    for table in COUNTED_TABLES:
        result = store.count(table)
        if result.error:
            logging.error(f"[Analytics] Error counting {table}: {result.error.message}")
            return jsonify({"error": f"Error: {result.error.message}"}), 500
        totals[table] = result.count

    roles = []
    for role in Role:
        result = store.count(PROFILE_TABLE, {"role": role.value})
        if result.error:
            logging.error(f"[Analytics] Error counting {role.value} users: {result.error.message}")
            return jsonify({"error": f"Error: {result.error.message}"}), 500
        roles.append({"role": role.value, "count": result.count})

    return jsonify({"totals": totals, "roles": roles}), 200


@analytics_bp.route("/organizer/<organizer_id>", methods=["GET"])
@role_required(Role.ORGANIZER)
def organizer_stats(organizer_id: str) -> Tuple[Response, int]:
    """
    Confirmed tickets sold per event for the calling organizer.

    Returns:
        200: { organizer, total_events, total_tickets_sold, events: [...] }
        403: Another organizer's analytics.
    """
    auth = current_auth()
    if auth.user.id != organizer_id:
        return jsonify({"error": "Permission denied"}), 403

    store = auth.store
    organizer = store.select_one(PROFILE_TABLE, {PROFILE_KEY: organizer_id}, columns="name, organization_name")
    if organizer.error:
        logging.error(f"[Analytics] Error loading organizer {organizer_id}: {organizer.error.message}")
        return jsonify({"error": "Failed to load analytics data."}), 500

    events = store.select_many("events", filters={"organizer_id": organizer_id}, columns="event_id, title")
    if events.error:
        logging.error(f"[Analytics] Error loading events for {organizer_id}: {events.error.message}")
        return jsonify({"error": "Failed to load analytics data."}), 500

    per_event = []
    for event in events.rows:
        purchases = store.select_many(
            "ticket_purchases",
            filters={"event_id": event["event_id"], "status": "confirmed"},
            columns="quantity",
        )
        if purchases.error:
            # One failed event should not hide the others
            logging.warning(f"[Analytics] Error fetching purchases for {event['event_id']}: {purchases.error.message}")
            sold = 0
        else:
            sold = sum(p.get("quantity") or 0 for p in purchases.rows)
        per_event.append({"event_id": event["event_id"], "title": event["title"], "tickets_sold": sold})

    per_event.sort(key=lambda e: e["tickets_sold"], reverse=True)

    return jsonify({
        "organizer": organizer.row,
        "total_events": len(per_event),
        "total_tickets_sold": sum(e["tickets_sold"] for e in per_event),
        "events": per_event,
    }), 200
