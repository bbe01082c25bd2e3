"""
Booking API Endpoints.

- Create bookings (self and on behalf of a teammate)
- Pre-order time slots
- Lifecycle: confirm, activate, complete, cancel
- On-behalf approvals
"""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, CurrentUser, StaffUser, AdminUser, Notifier
from app.core.exceptions import MarketplaceError, to_http_exception
from app.schemas.booking import (
    BookingCreate,
    OnBehalfBookingCreate,
    TimeSlotSet,
    ApprovalResponse,
    BookingResponse,
)
from app.services.booking_service import BookingService

router = APIRouter()


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Booking"
)
async def create_booking(data: BookingCreate, db: DB, current_user: CurrentUser, notifier: Notifier):
    """Create a booking for the caller. Capacity is checked, not reserved."""
    try:
        return await BookingService(db, notifier=notifier).create_booking(
            data,
            customer_id=current_user.id,
            customer_name=current_user.name,
            customer_email=current_user.email,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/on-behalf",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Booking On Behalf Of A Teammate"
)
async def create_booking_on_behalf(
    data: OnBehalfBookingCreate,
    db: DB,
    current_user: CurrentUser,
    notifier: Notifier,
):
    try:
        return await BookingService(db, notifier=notifier).create_booking_on_behalf(
            data,
            booker_id=current_user.id,
            booker_name=current_user.name,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get Booking")
async def get_booking(booking_id: UUID, db: DB, current_user: CurrentUser):
    try:
        booking = await BookingService(db).get_booking(booking_id)
    except MarketplaceError as e:
        raise to_http_exception(e)

    if booking.customer_id != current_user.id and booking.booked_by_id != current_user.id and not current_user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this booking")
    return booking


# ============================================================================
# PRE-ORDER TIME SLOTS
# ============================================================================

@router.post("/{booking_id}/time-slot", response_model=BookingResponse, summary="Set Drop-off Time Slot")
async def set_time_slot(booking_id: UUID, data: TimeSlotSet, db: DB, current_user: StaffUser, notifier: Notifier):
    try:
        return await BookingService(db, notifier=notifier).set_time_slot(
            booking_id, data.scheduled_dropoff_datetime, set_by=current_user.id
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{booking_id}/time-slot/confirm", response_model=BookingResponse, summary="Confirm Time Slot")
async def confirm_time_slot(booking_id: UUID, db: DB, current_user: CurrentUser):
    try:
        return await BookingService(db).confirm_time_slot(booking_id, customer_id=current_user.id)
    except MarketplaceError as e:
        raise to_http_exception(e)


# ============================================================================
# LIFECYCLE
# ============================================================================

@router.post("/{booking_id}/confirm", response_model=BookingResponse, summary="Confirm Booking")
async def confirm_booking(booking_id: UUID, db: DB, current_user: AdminUser, notifier: Notifier):
    """Reserve capacity and confirm a pending booking."""
    try:
        return await BookingService(db, notifier=notifier).confirm_booking(booking_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{booking_id}/activate", response_model=BookingResponse, summary="Activate Booking")
async def activate_booking(booking_id: UUID, db: DB, current_user: StaffUser):
    try:
        return await BookingService(db).activate_booking(booking_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{booking_id}/complete", response_model=BookingResponse, summary="Complete Booking")
async def complete_booking(booking_id: UUID, db: DB, current_user: StaffUser):
    try:
        return await BookingService(db).complete_booking(booking_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, summary="Cancel Booking")
async def cancel_booking(booking_id: UUID, db: DB, current_user: CurrentUser, notifier: Notifier):
    """Customers cancel their own bookings; admins cancel any booking."""
    try:
        return await BookingService(db, notifier=notifier).cancel_booking(
            booking_id,
            customer_id=None if current_user.is_admin else current_user.id,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


# ============================================================================
# ON-BEHALF APPROVALS
# ============================================================================

@router.post("/{booking_id}/approve", response_model=BookingResponse, summary="Approve On-Behalf Booking")
async def approve_booking(
    booking_id: UUID,
    data: ApprovalResponse,
    db: DB,
    current_user: CurrentUser,
    notifier: Notifier,
):
    try:
        return await BookingService(db, notifier=notifier).approve_on_behalf_booking(
            booking_id, current_user.id, current_user.name, data.message
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{booking_id}/reject", response_model=BookingResponse, summary="Reject On-Behalf Booking")
async def reject_booking(
    booking_id: UUID,
    data: ApprovalResponse,
    db: DB,
    current_user: CurrentUser,
    notifier: Notifier,
):
    try:
        return await BookingService(db, notifier=notifier).reject_on_behalf_booking(
            booking_id, current_user.id, current_user.name, data.message
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
