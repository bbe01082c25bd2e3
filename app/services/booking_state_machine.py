"""
Booking State Machine

All booking status transitions are defined here; BookingService goes
through transition_booking() for every status change.

Lifecycle:
    pending ──────────────────────────────┐
    pre_order → payment_pending ──────────┼→ confirmed → active → completed
                                          │
    any non-terminal status ──────────────┴→ cancelled
"""

import logging
from typing import List, Dict, Optional, Any
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StatePreconditionError
from app.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
BOOKING_TRANSITIONS: Dict[str, List[str]] = {
    BookingStatus.PENDING.value: [
        BookingStatus.CONFIRMED.value,        # Admin confirms / paid in full
        BookingStatus.CANCELLED.value,
    ],
    BookingStatus.PRE_ORDER.value: [
        BookingStatus.PAYMENT_PENDING.value,  # Customer confirmed the time slot
        BookingStatus.CONFIRMED.value,        # Paid in full from credit balance
        BookingStatus.CANCELLED.value,
    ],
    BookingStatus.PAYMENT_PENDING.value: [
        BookingStatus.CONFIRMED.value,        # Payment succeeded
        BookingStatus.CANCELLED.value,
    ],
    BookingStatus.CONFIRMED.value: [
        BookingStatus.ACTIVE.value,
        BookingStatus.CANCELLED.value,
    ],
    BookingStatus.ACTIVE.value: [
        BookingStatus.COMPLETED.value,
        BookingStatus.CANCELLED.value,
    ],
    BookingStatus.COMPLETED.value: [],       # Terminal
    BookingStatus.CANCELLED.value: [],       # Terminal
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value): "Confirm",
    (BookingStatus.PRE_ORDER.value, BookingStatus.PAYMENT_PENDING.value): "Confirm Time Slot",
    (BookingStatus.PRE_ORDER.value, BookingStatus.CONFIRMED.value): "Confirm on Payment",
    (BookingStatus.PAYMENT_PENDING.value, BookingStatus.CONFIRMED.value): "Confirm on Payment",
    (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value): "Activate",
    (BookingStatus.ACTIVE.value, BookingStatus.COMPLETED.value): "Complete",
}

# Audit timestamp written when entering a status
TRANSITION_TIMESTAMPS: Dict[str, str] = {
    BookingStatus.CONFIRMED.value: "confirmed_at",
    BookingStatus.ACTIVE.value: "activated_at",
    BookingStatus.COMPLETED.value: "completed_at",
    BookingStatus.CANCELLED.value: "cancelled_at",
}

# Capacity is held only in these statuses
CAPACITY_HOLDING_STATUSES = [BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value]

# A successful payment may move a booking from these statuses to confirmed
PAYABLE_STATUSES = [
    BookingStatus.PENDING.value,
    BookingStatus.PRE_ORDER.value,
    BookingStatus.PAYMENT_PENDING.value,
]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in BOOKING_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return BOOKING_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    return not BOOKING_TRANSITIONS.get(status)


def can_cancel(status: str) -> bool:
    return can_transition(status, BookingStatus.CANCELLED.value)


def holds_capacity(status: str) -> bool:
    return status in CAPACITY_HOLDING_STATUSES


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise StatePreconditionError if the transition is not allowed."""
    if can_transition(current_status, new_status):
        return

    allowed = get_allowed_transitions(current_status)
    if not allowed:
        raise StatePreconditionError(
            f"Booking in '{current_status}' status cannot be modified. This is a terminal state.",
            {"current_status": current_status, "requested_status": new_status},
        )
    raise StatePreconditionError(
        f"Cannot change booking from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        {"current_status": current_status, "requested_status": new_status},
    )


def require_status(booking: Booking, *expected: str) -> None:
    """Raise unless the booking is in one of the expected statuses."""
    if booking.status not in expected:
        raise StatePreconditionError(
            f"Booking is not in {' or '.join(expected)} status. Current status: {booking.status}",
            {"booking_id": str(booking.id), "current_status": booking.status},
        )


async def transition_booking(
    db: AsyncSession,
    booking: Booking,
    new_status: str,
    extra_values: Optional[Dict[str, Any]] = None,
) -> Booking:
    """
    Move a booking to new_status with an optimistic conditional update.

    The UPDATE only matches while the row still has the status we read, so
    of two concurrent transitions from the same status only one succeeds.
    """
    current_status = booking.status
    validate_transition(current_status, new_status)

    values: Dict[str, Any] = dict(extra_values or {})
    values["status"] = new_status
    timestamp_field = TRANSITION_TIMESTAMPS.get(new_status)
    if timestamp_field:
        values[timestamp_field] = datetime.now(timezone.utc)

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == current_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StatePreconditionError(
            f"Booking {booking.booking_number} was modified concurrently; expected status '{current_status}'",
            {"booking_id": str(booking.id), "expected_status": current_status},
        )

    await db.refresh(booking)
    logger.info(
        f"Booking {booking.booking_number}: {get_transition_action(current_status, new_status)} "
        f"({current_status} -> {new_status})"
    )
    return booking
