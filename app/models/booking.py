"""
Booking Models - storage reservations and on-behalf approvals.

- Booking: pallet or area-rental reservation of warehouse capacity
- BookingApproval: customer approval request for a booking made on their behalf
"""
import uuid
from datetime import datetime, timezone, date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text, Date, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, Money

if TYPE_CHECKING:
    from app.models.warehouse import Warehouse


# ============================================================================
# ENUMS
# ============================================================================

class BookingStatus(str, Enum):
    """Booking lifecycle status."""
    PENDING = "pending"
    PRE_ORDER = "pre_order"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    """On-behalf approval status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================================
# MODELS
# ============================================================================

class Booking(Base):
    """
    Storage booking.

    Exactly one of pallet_count / area_sq_ft is set, matching booking_type.
    total_amount is the post-discount price at creation and is never
    recalculated.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        Index('ix_bookings_customer_status', 'customer_id', 'status'),
        Index('ix_bookings_type_status', 'booking_type', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    booking_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)

    # Customer
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Location
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    booking_type: Mapped[str] = mapped_column(String(20), nullable=False)
    pallet_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    area_sq_ft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    floor_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hall_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouse_halls.id", ondelete="SET NULL"),
        nullable=True
    )
    # Set when pallet capacity is reserved so it can be released later
    reserved_zone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouse_zones.id", ondelete="SET NULL"),
        nullable=True
    )

    # Period
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Pricing snapshot
    base_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    volume_discount_percent: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    membership_discount_percent: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    membership_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        default=BookingStatus.PENDING.value,
        nullable=False,
        index=True
    )

    # On-behalf booking
    booked_on_behalf: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    booked_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    booked_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approval_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Pre-order time slot
    scheduled_dropoff_datetime: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    time_slot_set_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    time_slot_set_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_slot_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    approvals: Mapped[List["BookingApproval"]] = relationship(
        "BookingApproval",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    @property
    def quantity(self) -> int:
        return self.pallet_count if self.booking_type == "pallet" else self.area_sq_ft

    def __repr__(self) -> str:
        return f"<Booking(number='{self.booking_number}', status='{self.status}')>"


class BookingApproval(Base):
    """Approval request sent to a customer for an on-behalf booking."""
    __tablename__ = "booking_approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    requested_by: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    requested_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    request_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ApprovalStatus.PENDING.value,
        nullable=False
    )

    responded_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    responded_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    response_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="approvals")
