"""
Tests for the booking state machine.

Covers transition rules, terminal states, capacity-holding statuses and the
conditional status update.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import StatePreconditionError
from app.models.booking import Booking, BookingStatus
from app.services.booking_state_machine import (
    can_transition,
    get_allowed_transitions,
    is_terminal,
    can_cancel,
    holds_capacity,
    validate_transition,
    transition_booking,
)


class TestTransitionRules:
    """Tests for the transition table helpers."""

    def test_pending_can_be_confirmed(self):
        assert can_transition("pending", "confirmed") is True

    def test_pre_order_moves_to_payment_pending(self):
        assert can_transition("pre_order", "payment_pending") is True

    def test_pending_cannot_skip_to_active(self):
        assert can_transition("pending", "active") is False

    def test_active_only_completes_or_cancels(self):
        assert sorted(get_allowed_transitions("active")) == ["cancelled", "completed"]

    @pytest.mark.parametrize("status", ["completed", "cancelled"])
    def test_terminal_statuses(self, status):
        assert is_terminal(status) is True
        assert can_cancel(status) is False

    @pytest.mark.parametrize("status", ["pending", "pre_order", "payment_pending", "confirmed", "active"])
    def test_non_terminal_statuses_can_cancel(self, status):
        assert is_terminal(status) is False
        assert can_cancel(status) is True

    def test_only_confirmed_and_active_hold_capacity(self):
        held = [s.value for s in BookingStatus if holds_capacity(s.value)]
        assert sorted(held) == ["active", "confirmed"]

    def test_validate_transition_from_terminal_state(self):
        with pytest.raises(StatePreconditionError) as exc:
            validate_transition("completed", "active")
        assert "terminal" in exc.value.message

    def test_validate_transition_lists_allowed(self):
        with pytest.raises(StatePreconditionError) as exc:
            validate_transition("pending", "completed")
        assert "confirmed" in exc.value.message


class TestTransitionBooking:
    """Tests for the conditional status update."""

    async def _booking(self, test_db, warehouse, status: str) -> Booking:
        booking = Booking(
            booking_number=f"BK-TEST-{uuid.uuid4().hex[:6]}",
            customer_id=uuid.uuid4(),
            warehouse_id=warehouse.id,
            booking_type="pallet",
            pallet_count=5,
            start_date=date.today(),
            total_amount=Decimal("100.00"),
            status=status,
        )
        test_db.add(booking)
        await test_db.commit()
        return booking

    @pytest.mark.asyncio
    async def test_transition_sets_status_and_timestamp(self, test_db, warehouse):
        booking = await self._booking(test_db, warehouse, "confirmed")

        await transition_booking(test_db, booking, "active")

        assert booking.status == "active"
        assert booking.activated_at is not None

    @pytest.mark.asyncio
    async def test_stale_status_loses(self, test_db, warehouse):
        """A second writer that read the old status cannot apply its transition."""
        booking = await self._booking(test_db, warehouse, "pending")
        await transition_booking(test_db, booking, "confirmed")
        await test_db.commit()

        stale = Booking(id=booking.id, booking_number=booking.booking_number, status="pending")
        with pytest.raises(StatePreconditionError):
            await transition_booking(test_db, stale, "cancelled")

    @pytest.mark.asyncio
    async def test_disallowed_transition_is_rejected(self, test_db, warehouse):
        booking = await self._booking(test_db, warehouse, "cancelled")

        with pytest.raises(StatePreconditionError):
            await transition_booking(test_db, booking, "confirmed")
