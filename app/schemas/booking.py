"""Booking schemas for API requests/responses."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import Field, EmailStr, model_validator

from app.models.booking import BookingStatus
from app.models.warehouse import StorageType
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ============================================================================
# REQUESTS
# ============================================================================

class BookingCreate(BaseCreateSchema):
    """Create a booking. Pallet bookings set pallet_count, area rentals area_sq_ft."""
    warehouse_id: UUID
    booking_type: StorageType
    pallet_count: Optional[int] = Field(None, gt=0)
    area_sq_ft: Optional[int] = Field(None, gt=0)
    floor_number: Optional[int] = None
    hall_id: Optional[UUID] = None
    start_date: date
    end_date: Optional[date] = None
    months: int = Field(default=1, ge=1, le=120)
    notes: Optional[str] = None
    initial_status: Optional[BookingStatus] = Field(
        None,
        description="pending or pre_order; pallet bookings default to pre_order",
    )

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class OnBehalfBookingCreate(BookingCreate):
    """Booking created by a team member for another member of the team."""
    customer_id: UUID
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_email: Optional[EmailStr] = None
    request_message: Optional[str] = None
    expires_at: Optional[datetime] = None


class TimeSlotSet(BaseCreateSchema):
    scheduled_dropoff_datetime: datetime


class ApprovalResponse(BaseCreateSchema):
    message: Optional[str] = None


# ============================================================================
# RESPONSES
# ============================================================================

class BookingApprovalResponse(BaseResponseSchema):
    id: UUID
    booking_id: UUID
    requested_by: UUID
    requested_by_name: Optional[str] = None
    request_message: Optional[str] = None
    status: str
    responded_by: Optional[UUID] = None
    response_message: Optional[str] = None
    responded_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime


class BookingResponse(BaseResponseSchema):
    id: UUID
    booking_number: str
    customer_id: UUID
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    warehouse_id: UUID
    booking_type: str
    pallet_count: Optional[int] = None
    area_sq_ft: Optional[int] = None
    floor_number: Optional[int] = None
    hall_id: Optional[UUID] = None
    reserved_zone_id: Optional[UUID] = None
    start_date: date
    end_date: Optional[date] = None
    months: Optional[int] = None

    base_amount: Decimal
    volume_discount_percent: Decimal
    membership_discount_percent: Decimal
    membership_tier: Optional[str] = None
    total_amount: Decimal

    status: str
    booked_on_behalf: bool
    booked_by_id: Optional[UUID] = None
    booked_by_name: Optional[str] = None
    requires_approval: bool
    approval_status: Optional[str] = None

    scheduled_dropoff_datetime: Optional[datetime] = None
    time_slot_set_at: Optional[datetime] = None
    time_slot_confirmed_at: Optional[datetime] = None

    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime


class BookingListResponse(BaseResponseSchema):
    items: List[BookingResponse]
    total: int
