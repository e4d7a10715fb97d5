"""
Venue booking status rules.

An event that uses a venue needs an admin to approve the booking before
tickets can be sold; events without a venue never need approval.
"""

from typing import Any, Dict, Optional

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
NOT_REQUESTED = "not_requested"

VALID_BOOKING_STATUSES = [PENDING, APPROVED, REJECTED, NOT_REQUESTED]
REVIEW_DECISIONS = [APPROVED, REJECTED]

# None is included: events created before booking statuses existed
PURCHASABLE_STATUSES = (APPROVED, NOT_REQUESTED, None)


def can_purchase_tickets(event: Dict[str, Any]) -> bool:
    """True when the event's booking status allows ticket sales, whatever the buyer's role."""
    return event.get("venue_booking_status") in PURCHASABLE_STATUSES


def initial_booking_status(venue_id: Optional[Any]) -> str:
    return PENDING if venue_id else NOT_REQUESTED


def next_booking_status(
    current_venue_id: Optional[Any],
    current_status: Optional[str],
    new_venue_id: Optional[Any],
) -> Optional[str]:
    """
    Booking status after an organizer edits the event's venue.

    - venue changed: pending (new venue) or not_requested (venue removed)
    - same venue but never requested: pending
    - otherwise unchanged
    """
    if new_venue_id != current_venue_id:
        return initial_booking_status(new_venue_id)
    if new_venue_id and not current_status:
        return PENDING
    return current_status
