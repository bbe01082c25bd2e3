"""
Booking Service - creation and lifecycle of storage bookings.

Flow:
1. create_booking() / create_booking_on_behalf() - capacity checked, price fixed
2. set_time_slot() / confirm_time_slot() - pre-order drop-off scheduling
3. confirm_booking() - capacity reserved
4. activate_booking() / complete_booking() / cancel_booking()

Capacity is only reserved at confirmation and only released from
confirmed/active bookings. Notifications are sent after commit and never
affect the outcome of the operation.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ValidationError,
    StatePreconditionError,
    AuthorizationError,
    NotFoundError,
    InsufficientCapacityError,
    MinimumQuantityNotMetError,
)
from app.database import add_numbered
from app.models.booking import Booking, BookingApproval, BookingStatus, ApprovalStatus
from app.models.membership import MembershipTier
from app.models.warehouse import Warehouse, StorageType
from app.schemas.booking import BookingCreate, OnBehalfBookingCreate
from app.services.booking_state_machine import (
    transition_booking,
    require_status,
    holds_capacity,
    can_cancel,
    PAYABLE_STATUSES,
)
from app.services.capacity_service import CapacityService, ReservationResult
from app.services.membership_service import MembershipService
from app.services.notification_service import (
    NotificationService,
    NotificationRequest,
    NotificationType,
    NotificationChannel,
    notify_safely,
)
from app.services.pricing_engine import (
    PricingEngine,
    PricingResult,
    PalletPricingInput,
    AreaRentalPricingInput,
)
from app.services.team_service import TeamService, TeamPredicate

logger = logging.getLogger(__name__)


class BookingService:
    """Booking lifecycle orchestration."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationService] = None,
        capacity_service: Optional[CapacityService] = None,
        pricing_engine: Optional[PricingEngine] = None,
        membership_service: Optional[MembershipService] = None,
        can_book_on_behalf: Optional[TeamPredicate] = None,
        is_team_admin_for_booking: Optional[TeamPredicate] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.capacity = capacity_service or CapacityService(db)
        self.membership = membership_service or MembershipService(db)
        self.pricing = pricing_engine or PricingEngine(db, membership_service=self.membership)

        team_service = TeamService(db)
        self.can_book_on_behalf = can_book_on_behalf or team_service.can_book_on_behalf
        self.is_team_admin_for_booking = is_team_admin_for_booking or team_service.is_team_admin_for_booking

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def get_active_pallet_count(self, customer_id: uuid.UUID) -> int:
        """Pallets held by the customer's active bookings (for cumulative discounts)."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Booking.pallet_count), 0)).where(
                Booking.customer_id == customer_id,
                Booking.booking_type == StorageType.PALLET.value,
                Booking.status == BookingStatus.ACTIVE.value,
            )
        )
        return int(result.scalar() or 0)

    async def _generate_booking_number(self, offset: int = 0) -> str:
        today = datetime.now(timezone.utc).strftime("%Y%m")
        prefix = f"BK-{today}"
        count = await self.db.scalar(
            select(func.count(Booking.id)).where(Booking.booking_number.like(f"{prefix}%"))
        ) or 0
        return f"{prefix}-{count + 1 + offset:04d}"

    # =========================================================================
    # CREATE
    # =========================================================================

    def _validate_quantities(self, data: BookingCreate) -> StorageType:
        try:
            booking_type = StorageType(data.booking_type)
        except ValueError:
            raise ValidationError(f"Invalid booking type: {data.booking_type}")

        if booking_type == StorageType.PALLET:
            if not data.pallet_count or data.pallet_count <= 0:
                raise ValidationError("Pallet count is required for pallet bookings")
            if data.area_sq_ft:
                raise ValidationError("Pallet bookings cannot specify an area")
        else:
            if not data.area_sq_ft or data.area_sq_ft <= 0:
                raise ValidationError("Area square footage is required for area rental bookings")
            if data.pallet_count:
                raise ValidationError("Area rental bookings cannot specify a pallet count")
        return booking_type

    async def price_booking(
        self,
        data: BookingCreate,
        customer_id: uuid.UUID,
        membership_tier: Optional[MembershipTier] = None,
    ) -> PricingResult:
        """
        Validate, check capacity and price a booking request without saving it.

        Raises:
            MinimumQuantityNotMetError: area below minimum (before any capacity check)
            InsufficientCapacityError: warehouse can't hold the request
        """
        booking_type = self._validate_quantities(data)

        warehouse = await self.db.get(Warehouse, data.warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse", data.warehouse_id)

        if booking_type == StorageType.AREA_RENTAL:
            minimum = await self.pricing.get_area_minimum(data.warehouse_id)
            if data.area_sq_ft < minimum:
                raise MinimumQuantityNotMetError(
                    f"Minimum area rental is {minimum} sq ft",
                    {"minimum": minimum, "requested": data.area_sq_ft},
                )

        quantity = data.pallet_count if booking_type == StorageType.PALLET else data.area_sq_ft
        check = await self.capacity.check_capacity(
            data.warehouse_id,
            booking_type,
            quantity,
            floor_number=data.floor_number,
        )
        if not check.available:
            raise InsufficientCapacityError(check.message, check.to_dict())

        tier = membership_tier or await self.membership.get_customer_tier(customer_id)

        if booking_type == StorageType.PALLET:
            existing = await self.get_active_pallet_count(customer_id)
            return await self.pricing.calculate_pallet_pricing(PalletPricingInput(
                warehouse_id=data.warehouse_id,
                pallet_count=data.pallet_count,
                months=data.months or 1,
                existing_pallet_count=existing,
                membership_tier=tier,
            ))

        return await self.pricing.calculate_area_rental_pricing(AreaRentalPricingInput(
            warehouse_id=data.warehouse_id,
            area_sq_ft=data.area_sq_ft,
            months=data.months or 1,
            membership_tier=tier,
        ))

    async def _build_booking(
        self,
        data: BookingCreate,
        customer_id: uuid.UUID,
        customer_name: Optional[str],
        customer_email: Optional[str],
    ) -> Booking:
        tier = await self.membership.get_customer_tier(customer_id)
        pricing = await self.price_booking(data, customer_id, membership_tier=tier)

        if data.booking_type == StorageType.PALLET.value:
            initial_status = BookingStatus(data.initial_status or BookingStatus.PRE_ORDER).value
        else:
            initial_status = BookingStatus.PENDING.value
        if initial_status not in (BookingStatus.PENDING.value, BookingStatus.PRE_ORDER.value):
            raise ValidationError(f"Bookings cannot be created in '{initial_status}' status")

        booking = Booking(
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            warehouse_id=data.warehouse_id,
            booking_type=StorageType(data.booking_type).value,
            pallet_count=data.pallet_count,
            area_sq_ft=data.area_sq_ft,
            floor_number=data.floor_number,
            hall_id=data.hall_id,
            start_date=data.start_date,
            end_date=data.end_date,
            months=data.months,
            base_amount=pricing.base_amount,
            volume_discount_percent=pricing.volume_discount_percent,
            membership_discount_percent=pricing.membership_discount_percent,
            membership_tier=tier.value,
            total_amount=pricing.final_amount,
            status=initial_status,
            notes=data.notes,
        )
        await add_numbered(self.db, booking, "booking_number", self._generate_booking_number)
        return booking

    async def create_booking(
        self,
        data: BookingCreate,
        customer_id: uuid.UUID,
        customer_name: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Booking:
        """Create a booking for the calling customer. Capacity is checked, not reserved."""
        booking = await self._build_booking(data, customer_id, customer_name, customer_email)
        await self.db.commit()

        logger.info(
            f"Created booking {booking.booking_number} ({booking.booking_type}, "
            f"{booking.quantity}) for customer {customer_id}: {booking.total_amount}"
        )
        return booking

    async def create_booking_on_behalf(
        self,
        data: OnBehalfBookingCreate,
        booker_id: uuid.UUID,
        booker_name: Optional[str] = None,
    ) -> Booking:
        """
        Create a booking for a teammate.

        Team admins create bookings that need no approval; other team members
        create bookings the customer has to approve before confirmation.
        """
        if not await self.can_book_on_behalf(booker_id, data.customer_id):
            raise AuthorizationError(
                "You can only book on behalf of members of your team",
                {"booker_id": str(booker_id), "customer_id": str(data.customer_id)},
            )

        is_admin = await self.is_team_admin_for_booking(booker_id, data.customer_id)
        requires_approval = not is_admin

        booking = await self._build_booking(data, data.customer_id, data.customer_name, data.customer_email)
        booking.booked_on_behalf = True
        booking.booked_by_id = booker_id
        booking.booked_by_name = booker_name
        booking.requires_approval = requires_approval
        booking.approval_status = ApprovalStatus.PENDING.value if requires_approval else None

        if requires_approval:
            self.db.add(BookingApproval(
                booking_id=booking.id,
                requested_by=booker_id,
                requested_by_name=booker_name,
                request_message=data.request_message,
                status=ApprovalStatus.PENDING.value,
                expires_at=data.expires_at,
            ))

        await self.db.commit()
        logger.info(
            f"Booking {booking.booking_number} created by {booker_id} on behalf of "
            f"{data.customer_id} (approval required: {requires_approval})"
        )

        if requires_approval:
            await notify_safely(self.notifier, NotificationRequest(
                user_id=str(data.customer_id),
                type=NotificationType.BOOKING,
                channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
                title="Booking Approval Required",
                message=(
                    f"{booker_name or 'A team member'} created booking {booking.booking_number} "
                    f"on your behalf. Please review and approve it."
                ),
                template="booking-approval-requested",
                template_data={
                    "bookingNumber": booking.booking_number,
                    "bookedBy": booker_name,
                    "totalAmount": str(booking.total_amount),
                    "message": data.request_message,
                },
            ))
        else:
            await notify_safely(self.notifier, NotificationRequest(
                user_id=str(data.customer_id),
                type=NotificationType.BOOKING,
                channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
                title="Booking Created On Your Behalf",
                message=(
                    f"{booker_name or 'Your team admin'} created booking "
                    f"{booking.booking_number} on your behalf."
                ),
                template="booking-created-on-behalf",
                template_data={
                    "bookingNumber": booking.booking_number,
                    "bookedBy": booker_name,
                    "totalAmount": str(booking.total_amount),
                },
            ))

        return booking

    # =========================================================================
    # PRE-ORDER TIME SLOT
    # =========================================================================

    async def set_time_slot(
        self,
        booking_id: uuid.UUID,
        scheduled_dropoff_datetime: datetime,
        set_by: uuid.UUID,
    ) -> Booking:
        """Warehouse staff proposes the drop-off time for a pre-order."""
        booking = await self.get_booking(booking_id)
        require_status(booking, BookingStatus.PRE_ORDER.value)

        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == BookingStatus.PRE_ORDER.value)
            .values(
                scheduled_dropoff_datetime=scheduled_dropoff_datetime,
                time_slot_set_by=set_by,
                time_slot_set_at=datetime.now(timezone.utc),
                time_slot_confirmed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError(
                f"Booking {booking.booking_number} is no longer a pre-order",
                {"booking_id": str(booking.id)},
            )
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(f"Time slot {scheduled_dropoff_datetime.isoformat()} set on booking {booking.booking_number}")
        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(booking.customer_id),
            type=NotificationType.BOOKING,
            channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
            title="Drop-off Time Scheduled",
            message=(
                f"Your drop-off for booking {booking.booking_number} is scheduled for "
                f"{scheduled_dropoff_datetime.strftime('%Y-%m-%d %H:%M')}. Please confirm the time slot."
            ),
            template="booking-time-slot-set",
            template_data={
                "bookingNumber": booking.booking_number,
                "scheduledDropoff": scheduled_dropoff_datetime.isoformat(),
            },
        ))
        return booking

    async def confirm_time_slot(self, booking_id: uuid.UUID, customer_id: uuid.UUID) -> Booking:
        """Customer accepts the proposed drop-off time; booking moves to payment_pending."""
        booking = await self.get_booking(booking_id)
        require_status(booking, BookingStatus.PRE_ORDER.value)
        if booking.customer_id != customer_id:
            raise AuthorizationError("Only the booking's customer can confirm the time slot")
        if booking.scheduled_dropoff_datetime is None:
            raise StatePreconditionError("No time slot has been set for this booking")

        await transition_booking(
            self.db,
            booking,
            BookingStatus.PAYMENT_PENDING.value,
            {"time_slot_confirmed_at": datetime.now(timezone.utc)},
        )
        await self.db.commit()
        return booking

    # =========================================================================
    # CONFIRM / ACTIVATE / COMPLETE / CANCEL
    # =========================================================================

    def _check_approval(self, booking: Booking) -> None:
        if booking.requires_approval and booking.approval_status != ApprovalStatus.APPROVED.value:
            raise StatePreconditionError(
                f"Booking {booking.booking_number} is awaiting customer approval "
                f"(approval status: {booking.approval_status})",
                {"booking_id": str(booking.id), "approval_status": booking.approval_status},
            )

    async def _reserve_for(self, booking: Booking) -> ReservationResult:
        return await self.capacity.reserve_capacity(
            booking.warehouse_id,
            booking.booking_type,
            booking.quantity,
            hall_id=booking.hall_id,
            floor_number=booking.floor_number,
        )

    def _reservation_values(self, reservation: ReservationResult) -> Dict[str, Any]:
        if reservation.zone_id:
            return {"reserved_zone_id": reservation.zone_id}
        return {"hall_id": reservation.hall_id}

    async def _release_for(self, booking: Booking) -> None:
        if booking.booking_type == StorageType.PALLET.value:
            if booking.reserved_zone_id is None:
                logger.warning(f"Booking {booking.booking_number} has no reserved zone; nothing to release")
                return
            await self.capacity.release_capacity(
                booking.warehouse_id,
                StorageType.PALLET,
                booking.pallet_count,
                zone_id=booking.reserved_zone_id,
            )
        else:
            if booking.hall_id is None:
                logger.warning(f"Booking {booking.booking_number} has no hall; nothing to release")
                return
            await self.capacity.release_capacity(
                booking.warehouse_id,
                StorageType.AREA_RENTAL,
                booking.area_sq_ft,
                hall_id=booking.hall_id,
            )

    async def confirm_booking(self, booking_id: uuid.UUID) -> Booking:
        """
        Admin confirmation of a pending booking; reserves capacity.

        Raises:
            StatePreconditionError: not pending, awaiting approval, or confirmed concurrently
            InsufficientCapacityError: no single zone/hall can hold the booking
        """
        booking = await self.get_booking(booking_id)
        require_status(booking, BookingStatus.PENDING.value)
        self._check_approval(booking)

        reservation = await self._reserve_for(booking)
        await transition_booking(
            self.db,
            booking,
            BookingStatus.CONFIRMED.value,
            self._reservation_values(reservation),
        )
        await self.db.commit()

        await self._notify_confirmed(booking)
        return booking

    async def confirm_from_payment(self, booking: Booking) -> bool:
        """
        Confirm a booking whose invoice was just paid. Does not commit.

        Returns False (and leaves the booking as is) when the booking is not
        in a payable status or capacity can't be reserved; the payment stands.
        """
        if booking.status not in PAYABLE_STATUSES:
            return False
        if booking.requires_approval and booking.approval_status != ApprovalStatus.APPROVED.value:
            logger.warning(f"Paid booking {booking.booking_number} still awaits customer approval")
            return False

        try:
            reservation = await self._reserve_for(booking)
        except InsufficientCapacityError as e:
            logger.error(f"Paid booking {booking.booking_number} could not reserve capacity: {e.message}")
            return False

        try:
            await transition_booking(
                self.db,
                booking,
                BookingStatus.CONFIRMED.value,
                self._reservation_values(reservation),
            )
        except StatePreconditionError as e:
            logger.error(f"Paid booking {booking.booking_number} could not be confirmed: {e.message}")
            await self.capacity.release_capacity(
                booking.warehouse_id,
                booking.booking_type,
                reservation.amount,
                hall_id=reservation.hall_id,
                zone_id=reservation.zone_id,
            )
            return False

        return True

    async def _notify_confirmed(self, booking: Booking) -> None:
        quantity_label = (
            f"{booking.pallet_count} pallets"
            if booking.booking_type == StorageType.PALLET.value
            else f"{booking.area_sq_ft} sq ft"
        )
        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(booking.customer_id),
            type=NotificationType.BOOKING,
            channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
            title="Booking Confirmed",
            message=(
                f"Your booking #{booking.booking_number} has been confirmed. "
                f"{quantity_label} ready for storage."
            ),
            template="booking-confirmed",
            template_data={
                "bookingNumber": booking.booking_number,
                "bookingType": booking.booking_type,
                "quantity": booking.quantity,
                "status": "Confirmed",
                "customerName": booking.customer_name,
            },
        ))

    async def activate_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.get_booking(booking_id)
        require_status(booking, BookingStatus.CONFIRMED.value)
        await transition_booking(self.db, booking, BookingStatus.ACTIVE.value)
        await self.db.commit()
        return booking

    async def complete_booking(self, booking_id: uuid.UUID) -> Booking:
        """End an active booking and release its capacity."""
        booking = await self.get_booking(booking_id)
        require_status(booking, BookingStatus.ACTIVE.value)

        await transition_booking(self.db, booking, BookingStatus.COMPLETED.value)
        await self._release_for(booking)
        await self.db.commit()
        return booking

    async def cancel_booking(
        self,
        booking_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Booking:
        """
        Cancel a booking. Capacity is released only if it had been reserved.

        When customer_id is given the caller must own the booking.
        """
        booking = await self.get_booking(booking_id)
        if customer_id is not None and booking.customer_id != customer_id:
            raise AuthorizationError("You can only cancel your own bookings")

        await self._cancel(booking)
        await self.db.commit()
        logger.info(f"Booking {booking.booking_number} cancelled")

        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(booking.customer_id),
            type=NotificationType.BOOKING,
            channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
            title="Booking Cancelled",
            message=f"Booking #{booking.booking_number} has been cancelled.",
            template="booking-cancelled",
            template_data={
                "bookingNumber": booking.booking_number,
                "status": "Cancelled",
                "customerName": booking.customer_name,
            },
        ))
        return booking

    async def _cancel(self, booking: Booking) -> None:
        if not can_cancel(booking.status):
            raise StatePreconditionError(
                f"Booking in '{booking.status}' status cannot be cancelled",
                {"booking_id": str(booking.id), "current_status": booking.status},
            )
        had_capacity = holds_capacity(booking.status)
        await transition_booking(self.db, booking, BookingStatus.CANCELLED.value)
        if had_capacity:
            await self._release_for(booking)

    # =========================================================================
    # ON-BEHALF APPROVAL
    # =========================================================================

    async def _respond_to_approval(
        self,
        booking_id: uuid.UUID,
        customer_id: uuid.UUID,
        approve: bool,
        responder_name: Optional[str],
        response_message: Optional[str],
    ) -> Booking:
        booking = await self.get_booking(booking_id)
        if booking.customer_id != customer_id:
            raise AuthorizationError("Only the booking's customer can respond to this approval request")
        if not booking.requires_approval or booking.approval_status != ApprovalStatus.PENDING.value:
            raise StatePreconditionError(
                "Booking does not have a pending approval request",
                {"booking_id": str(booking.id), "approval_status": booking.approval_status},
            )

        new_status = ApprovalStatus.APPROVED.value if approve else ApprovalStatus.REJECTED.value
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.approval_status == ApprovalStatus.PENDING.value)
            .values(approval_status=new_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError("Approval request was already answered")
        await self.db.refresh(booking)

        approval = (await self.db.execute(
            select(BookingApproval)
            .where(
                BookingApproval.booking_id == booking.id,
                BookingApproval.status == ApprovalStatus.PENDING.value,
            )
            .order_by(BookingApproval.created_at.desc())
            .limit(1)
        )).scalar_one_or_none()
        if approval:
            approval.status = new_status
            approval.responded_by = customer_id
            approval.responded_by_name = responder_name
            approval.response_message = response_message
            approval.responded_at = datetime.now(timezone.utc)

        if not approve:
            await self._cancel(booking)

        await self.db.commit()
        logger.info(f"Booking {booking.booking_number} on-behalf request {new_status} by {customer_id}")

        if booking.booked_by_id:
            verb = "approved" if approve else "rejected"
            await notify_safely(self.notifier, NotificationRequest(
                user_id=str(booking.booked_by_id),
                type=NotificationType.BOOKING,
                channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
                title=f"Booking {verb.capitalize()}",
                message=(
                    f"{responder_name or 'The customer'} {verb} booking {booking.booking_number}."
                    + (f" Message: {response_message}" if response_message else "")
                ),
                template=f"booking-{verb}",
                template_data={
                    "bookingNumber": booking.booking_number,
                    "respondedBy": responder_name,
                    "responseMessage": response_message,
                },
            ))
        return booking

    async def approve_on_behalf_booking(
        self,
        booking_id: uuid.UUID,
        customer_id: uuid.UUID,
        customer_name: Optional[str] = None,
        response_message: Optional[str] = None,
    ) -> Booking:
        return await self._respond_to_approval(booking_id, customer_id, True, customer_name, response_message)

    async def reject_on_behalf_booking(
        self,
        booking_id: uuid.UUID,
        customer_id: uuid.UUID,
        customer_name: Optional[str] = None,
        response_message: Optional[str] = None,
    ) -> Booking:
        """Reject the request; the booking is cancelled."""
        return await self._respond_to_approval(booking_id, customer_id, False, customer_name, response_message)
