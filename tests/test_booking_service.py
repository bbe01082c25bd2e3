"""
Tests for BookingService.

Covers creation (self and on behalf), pre-order time slots, confirmation
with capacity reservation, and cancellation/completion releases.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select

from app.core.exceptions import (
    StatePreconditionError,
    AuthorizationError,
    InsufficientCapacityError,
    MinimumQuantityNotMetError,
    ValidationError,
    NotFoundError,
)
from app.models.booking import Booking, BookingApproval
from app.models.team import ClientTeam, TeamMember
from app.models.warehouse import WarehouseZone, WarehouseHall
from app.schemas.booking import BookingCreate, OnBehalfBookingCreate
from app.services.booking_service import BookingService


def pallet_request(warehouse, pallets=100, **kwargs) -> BookingCreate:
    return BookingCreate(
        warehouse_id=warehouse.id,
        booking_type="pallet",
        pallet_count=pallets,
        start_date=date.today(),
        **kwargs,
    )


def area_request(warehouse, area=45000, **kwargs) -> BookingCreate:
    return BookingCreate(
        warehouse_id=warehouse.id,
        booking_type="area-rental",
        area_sq_ft=area,
        start_date=date.today(),
        **kwargs,
    )


async def zone_slots(test_db, zone_id) -> int:
    zone = await test_db.get(WarehouseZone, zone_id)
    await test_db.refresh(zone)
    return zone.available_slots


@pytest_asyncio.fixture
async def team(test_db):
    """A team with an admin, a member and the customer being booked for."""
    admin_id, member_id, customer_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    team = ClientTeam(name="Acme Logistics")
    test_db.add(team)
    await test_db.flush()
    test_db.add_all([
        TeamMember(team_id=team.id, member_id=admin_id, role="admin"),
        TeamMember(team_id=team.id, member_id=member_id, role="member"),
        TeamMember(team_id=team.id, member_id=customer_id, role="member"),
    ])
    await test_db.commit()
    return {"admin": admin_id, "member": member_id, "customer": customer_id}


class TestCreateBooking:
    """Tests for booking creation."""

    @pytest.mark.asyncio
    async def test_pallet_booking_defaults_to_pre_order(self, test_db, warehouse, customer_id):
        booking = await BookingService(test_db).create_booking(pallet_request(warehouse), customer_id)

        assert booking.status == "pre_order"
        assert booking.booking_number.startswith("BK-")
        assert booking.total_amount == Decimal("1912.50")
        assert booking.membership_tier == "bronze"
        assert booking.reserved_zone_id is None

    @pytest.mark.asyncio
    async def test_capacity_is_checked_not_reserved(self, test_db, warehouse, customer_id):
        booking = await BookingService(test_db).create_booking(
            pallet_request(warehouse, initial_status="pending"), customer_id
        )

        assert booking.status == "pending"
        zones = (await test_db.execute(select(WarehouseZone))).scalars().all()
        for zone in zones:
            await test_db.refresh(zone)
        assert sum(z.available_slots for z in zones) == 160

    @pytest.mark.asyncio
    async def test_area_rental_starts_pending(self, test_db, warehouse, customer_id):
        booking = await BookingService(test_db).create_booking(area_request(warehouse), customer_id)

        assert booking.status == "pending"
        assert booking.area_sq_ft == 45000

    @pytest.mark.asyncio
    async def test_area_below_minimum(self, test_db, warehouse, customer_id):
        with pytest.raises(MinimumQuantityNotMetError):
            await BookingService(test_db).create_booking(area_request(warehouse, area=30000), customer_id)

    @pytest.mark.asyncio
    async def test_insufficient_capacity(self, test_db, warehouse, customer_id):
        with pytest.raises(InsufficientCapacityError):
            await BookingService(test_db).create_booking(pallet_request(warehouse, pallets=200), customer_id)

    @pytest.mark.asyncio
    async def test_pallet_booking_cannot_carry_area(self, test_db, warehouse, customer_id):
        with pytest.raises(ValidationError):
            await BookingService(test_db).create_booking(
                pallet_request(warehouse, area_sq_ft=500), customer_id
            )

    @pytest.mark.asyncio
    async def test_taken_number_is_skipped(self, test_db, warehouse, customer_id):
        prefix = f"BK-{datetime.now(timezone.utc).strftime('%Y%m')}"
        test_db.add(Booking(
            booking_number=f"{prefix}-0002",
            customer_id=uuid.uuid4(),
            warehouse_id=warehouse.id,
            booking_type="pallet",
            pallet_count=5,
            start_date=date.today(),
            total_amount=Decimal("0"),
            status="pending",
        ))
        await test_db.commit()

        booking = await BookingService(test_db).create_booking(pallet_request(warehouse), customer_id)

        assert booking.booking_number == f"{prefix}-0003"
        assert booking.status == "pre_order"

    @pytest.mark.asyncio
    async def test_unknown_warehouse(self, test_db, customer_id):
        request = BookingCreate(
            warehouse_id=uuid.uuid4(),
            booking_type="pallet",
            pallet_count=5,
            start_date=date.today(),
        )
        with pytest.raises(NotFoundError):
            await BookingService(test_db).create_booking(request, customer_id)


class TestLifecycle:
    """Tests for confirm, activate, complete and cancel."""

    @pytest.mark.asyncio
    async def test_confirm_reserves_capacity(self, test_db, warehouse, customer_id, notifier):
        service = BookingService(test_db, notifier=notifier)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)

        confirmed = await service.confirm_booking(booking.id)

        assert confirmed.status == "confirmed"
        assert confirmed.confirmed_at is not None
        assert confirmed.reserved_zone_id is not None
        assert await zone_slots(test_db, confirmed.reserved_zone_id) == 0
        assert "Booking Confirmed" in notifier.titles()

    @pytest.mark.asyncio
    async def test_confirm_twice_fails(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)
        await service.confirm_booking(booking.id)

        with pytest.raises(StatePreconditionError):
            await service.confirm_booking(booking.id)

    @pytest.mark.asyncio
    async def test_confirm_area_rental_reserves_hall(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(area_request(warehouse), customer_id)

        confirmed = await service.confirm_booking(booking.id)

        hall = await test_db.get(WarehouseHall, confirmed.hall_id)
        await test_db.refresh(hall)
        assert hall.available_sq_ft == 5000

    @pytest.mark.asyncio
    async def test_cancel_confirmed_releases(self, test_db, warehouse, customer_id, notifier):
        service = BookingService(test_db, notifier=notifier)
        booking = await service.create_booking(
            pallet_request(warehouse, pallets=40, initial_status="pending"), customer_id
        )
        await service.confirm_booking(booking.id)
        zone_id = booking.reserved_zone_id

        cancelled = await service.cancel_booking(booking.id, customer_id=customer_id)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert await zone_slots(test_db, zone_id) == 100
        assert notifier.titles()[-1] == "Booking Cancelled"

    @pytest.mark.asyncio
    async def test_cancel_pending_leaves_capacity(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)

        await service.cancel_booking(booking.id)

        zones = (await test_db.execute(select(WarehouseZone))).scalars().all()
        for zone in zones:
            await test_db.refresh(zone)
        assert sum(z.available_slots for z in zones) == 160

    @pytest.mark.asyncio
    async def test_only_owner_cancels(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse), customer_id)

        with pytest.raises(AuthorizationError):
            await service.cancel_booking(booking.id, customer_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_activate_and_complete_releases(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(
            pallet_request(warehouse, pallets=30, initial_status="pending"), customer_id
        )
        await service.confirm_booking(booking.id)
        zone_id = booking.reserved_zone_id

        await service.activate_booking(booking.id)
        assert await service.get_active_pallet_count(customer_id) == 30

        completed = await service.complete_booking(booking.id)

        assert completed.status == "completed"
        assert await zone_slots(test_db, zone_id) == 100
        assert await service.get_active_pallet_count(customer_id) == 0

        with pytest.raises(StatePreconditionError):
            await service.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_activate_requires_confirmed(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)

        with pytest.raises(StatePreconditionError):
            await service.activate_booking(booking.id)


class TestTimeSlots:
    """Tests for pre-order drop-off scheduling."""

    @pytest.mark.asyncio
    async def test_set_and_confirm_time_slot(self, test_db, warehouse, customer_id, notifier):
        service = BookingService(test_db, notifier=notifier)
        booking = await service.create_booking(pallet_request(warehouse), customer_id)
        dropoff = datetime.now(timezone.utc) + timedelta(days=2)

        await service.set_time_slot(booking.id, dropoff, set_by=uuid.uuid4())
        confirmed = await service.confirm_time_slot(booking.id, customer_id)

        assert confirmed.status == "payment_pending"
        assert confirmed.time_slot_confirmed_at is not None
        assert "Drop-off Time Scheduled" in notifier.titles()

    @pytest.mark.asyncio
    async def test_confirm_without_slot(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse), customer_id)

        with pytest.raises(StatePreconditionError):
            await service.confirm_time_slot(booking.id, customer_id)

    @pytest.mark.asyncio
    async def test_other_customer_cannot_confirm_slot(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse), customer_id)
        await service.set_time_slot(booking.id, datetime.now(timezone.utc), set_by=uuid.uuid4())

        with pytest.raises(AuthorizationError):
            await service.confirm_time_slot(booking.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_slot_only_on_pre_orders(self, test_db, warehouse, customer_id):
        service = BookingService(test_db)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)

        with pytest.raises(StatePreconditionError):
            await service.set_time_slot(booking.id, datetime.now(timezone.utc), set_by=uuid.uuid4())


class TestOnBehalf:
    """Tests for team bookings made on behalf of a teammate."""

    def _request(self, warehouse, customer_id) -> OnBehalfBookingCreate:
        return OnBehalfBookingCreate(
            warehouse_id=warehouse.id,
            booking_type="pallet",
            pallet_count=20,
            start_date=date.today(),
            initial_status="pending",
            customer_id=customer_id,
            customer_name="Casey Customer",
            request_message="Booked for the Q3 overflow",
        )

    @pytest.mark.asyncio
    async def test_team_admin_needs_no_approval(self, test_db, warehouse, team, notifier):
        service = BookingService(test_db, notifier=notifier)

        booking = await service.create_booking_on_behalf(
            self._request(warehouse, team["customer"]), team["admin"], "Avery Admin"
        )

        assert booking.booked_on_behalf is True
        assert booking.requires_approval is False
        assert booking.customer_id == team["customer"]
        assert "Booking Created On Your Behalf" in notifier.titles()

    @pytest.mark.asyncio
    async def test_member_booking_needs_approval(self, test_db, warehouse, team, notifier):
        service = BookingService(test_db, notifier=notifier)

        booking = await service.create_booking_on_behalf(
            self._request(warehouse, team["customer"]), team["member"], "Morgan Member"
        )

        assert booking.requires_approval is True
        assert booking.approval_status == "pending"
        approvals = (await test_db.execute(
            select(BookingApproval).where(BookingApproval.booking_id == booking.id)
        )).scalars().all()
        assert len(approvals) == 1
        assert notifier.sent[-1].user_id == str(team["customer"])

        with pytest.raises(StatePreconditionError):
            await service.confirm_booking(booking.id)

        await service.approve_on_behalf_booking(booking.id, team["customer"], "Casey Customer")
        confirmed = await service.confirm_booking(booking.id)
        assert confirmed.status == "confirmed"

    @pytest.mark.asyncio
    async def test_rejection_cancels(self, test_db, warehouse, team):
        service = BookingService(test_db)
        booking = await service.create_booking_on_behalf(
            self._request(warehouse, team["customer"]), team["member"]
        )

        rejected = await service.reject_on_behalf_booking(booking.id, team["customer"], response_message="Not needed")

        assert rejected.approval_status == "rejected"
        assert rejected.status == "cancelled"

    @pytest.mark.asyncio
    async def test_only_customer_responds(self, test_db, warehouse, team):
        service = BookingService(test_db)
        booking = await service.create_booking_on_behalf(
            self._request(warehouse, team["customer"]), team["member"]
        )

        with pytest.raises(AuthorizationError):
            await service.approve_on_behalf_booking(booking.id, team["member"])

    @pytest.mark.asyncio
    async def test_outsider_cannot_book_on_behalf(self, test_db, warehouse, team):
        with pytest.raises(AuthorizationError):
            await BookingService(test_db).create_booking_on_behalf(
                self._request(warehouse, team["customer"]), uuid.uuid4()
            )

    @pytest.mark.asyncio
    async def test_injected_predicates(self, test_db, warehouse, customer_id):
        async def allow(booker_id, customer_id):
            return True

        service = BookingService(test_db, can_book_on_behalf=allow, is_team_admin_for_booking=allow)
        booking = await service.create_booking_on_behalf(self._request(warehouse, customer_id), uuid.uuid4())

        assert booking.requires_approval is False


class TestNotificationFailures:
    """A failing notification service never undoes a committed change."""

    @pytest.mark.asyncio
    async def test_confirm_survives(self, test_db, warehouse, customer_id, failing_notifier):
        service = BookingService(test_db, notifier=failing_notifier)
        booking = await service.create_booking(pallet_request(warehouse, initial_status="pending"), customer_id)

        confirmed = await service.confirm_booking(booking.id)

        await test_db.refresh(confirmed)
        assert confirmed.status == "confirmed"
        assert await zone_slots(test_db, confirmed.reserved_zone_id) == 0
        assert failing_notifier.attempts == 1

    @pytest.mark.asyncio
    async def test_cancel_survives(self, test_db, warehouse, customer_id, failing_notifier):
        service = BookingService(test_db, notifier=failing_notifier)
        booking = await service.create_booking(
            pallet_request(warehouse, pallets=40, initial_status="pending"), customer_id
        )
        await service.confirm_booking(booking.id)
        zone_id = booking.reserved_zone_id

        cancelled = await service.cancel_booking(booking.id, customer_id=customer_id)

        await test_db.refresh(cancelled)
        assert cancelled.status == "cancelled"
        assert await zone_slots(test_db, zone_id) == 100
        assert failing_notifier.attempts == 2

    @pytest.mark.asyncio
    async def test_on_behalf_survives(self, test_db, warehouse, team, failing_notifier):
        service = BookingService(test_db, notifier=failing_notifier)

        booking = await service.create_booking_on_behalf(
            OnBehalfBookingCreate(
                warehouse_id=warehouse.id,
                booking_type="pallet",
                pallet_count=20,
                start_date=date.today(),
                initial_status="pending",
                customer_id=team["customer"],
            ),
            team["member"],
            "Morgan Member",
        )

        await test_db.refresh(booking)
        assert booking.requires_approval is True
        approvals = (await test_db.execute(
            select(BookingApproval).where(BookingApproval.booking_id == booking.id)
        )).scalars().all()
        assert len(approvals) == 1
        assert failing_notifier.attempts == 1
