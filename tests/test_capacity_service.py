"""
Tests for the Capacity Ledger.

The warehouse fixture has Zone A (100 slots), Zone B (60 slots) and one
50,000 sq ft hall on floor 3.
"""

import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import InsufficientCapacityError, ValidationError, NotFoundError
from app.models.warehouse import WarehouseZone, WarehouseHall, StorageType
from app.services.capacity_service import CapacityService


async def _zones(test_db, warehouse):
    zones = (await test_db.execute(
        select(WarehouseZone).where(WarehouseZone.warehouse_id == warehouse.id).order_by(WarehouseZone.name)
    )).scalars().all()
    for zone in zones:
        await test_db.refresh(zone)
    return {zone.name: zone for zone in zones}


async def _hall(test_db):
    hall = (await test_db.execute(select(WarehouseHall))).scalar_one()
    await test_db.refresh(hall)
    return hall


class TestCheckCapacity:
    """Tests for capacity checks."""

    @pytest.mark.asyncio
    async def test_pallet_check_sums_zones(self, test_db, warehouse):
        check = await CapacityService(test_db).check_capacity(warehouse.id, StorageType.PALLET, 150)

        assert check.available is True
        assert check.available_amount == 160
        assert check.required == 150

    @pytest.mark.asyncio
    async def test_pallet_check_insufficient(self, test_db, warehouse):
        check = await CapacityService(test_db).check_capacity(warehouse.id, "pallet", 200)

        assert check.available is False
        assert "Insufficient capacity" in check.message

    @pytest.mark.asyncio
    async def test_area_check_defaults_to_rental_floor(self, test_db, warehouse):
        check = await CapacityService(test_db).check_capacity(warehouse.id, "area-rental", 45000)

        assert check.available is True
        assert check.available_amount == 50000

    @pytest.mark.asyncio
    async def test_area_check_on_floor_without_halls(self, test_db, warehouse):
        check = await CapacityService(test_db).check_capacity(
            warehouse.id, StorageType.AREA_RENTAL, 1000, floor_number=2
        )

        assert check.available is False
        assert check.available_amount == 0

    @pytest.mark.asyncio
    async def test_unknown_storage_type(self, test_db, warehouse):
        with pytest.raises(ValidationError):
            await CapacityService(test_db).check_capacity(warehouse.id, "shelf", 1)


class TestReserveRelease:
    """Tests for reservations and releases."""

    @pytest.mark.asyncio
    async def test_reserve_uses_zone_with_most_free_slots(self, test_db, warehouse):
        service = CapacityService(test_db)

        reservation = await service.reserve_capacity(warehouse.id, StorageType.PALLET, 70)
        zones = await _zones(test_db, warehouse)

        assert reservation.zone_id == zones["Zone A"].id
        assert zones["Zone A"].available_slots == 30
        assert zones["Zone B"].available_slots == 60

    @pytest.mark.asyncio
    async def test_reservations_never_split_across_zones(self, test_db, warehouse):
        """90 slots are free in total but no single zone holds 61."""
        service = CapacityService(test_db)
        await service.reserve_capacity(warehouse.id, StorageType.PALLET, 70)

        with pytest.raises(InsufficientCapacityError):
            await service.reserve_capacity(warehouse.id, StorageType.PALLET, 61)

        zones = await _zones(test_db, warehouse)
        assert zones["Zone A"].available_slots == 30
        assert zones["Zone B"].available_slots == 60

    @pytest.mark.asyncio
    async def test_release_never_exceeds_total(self, test_db, warehouse):
        service = CapacityService(test_db)
        reservation = await service.reserve_capacity(warehouse.id, StorageType.PALLET, 10)

        await service.release_capacity(warehouse.id, StorageType.PALLET, 80, zone_id=reservation.zone_id)

        zones = await _zones(test_db, warehouse)
        assert zones["Zone A"].available_slots == 100

    @pytest.mark.asyncio
    async def test_area_reserve_and_release(self, test_db, warehouse):
        service = CapacityService(test_db)

        reservation = await service.reserve_capacity(warehouse.id, StorageType.AREA_RENTAL, 45000)
        hall = await _hall(test_db)
        assert reservation.hall_id == hall.id
        assert hall.available_sq_ft == 5000
        assert hall.occupied_sq_ft == 45000

        await service.release_capacity(warehouse.id, StorageType.AREA_RENTAL, 45000, hall_id=hall.id)
        hall = await _hall(test_db)
        assert hall.available_sq_ft == 50000
        assert hall.occupied_sq_ft == 0

    @pytest.mark.asyncio
    async def test_area_reserve_too_large(self, test_db, warehouse):
        with pytest.raises(InsufficientCapacityError):
            await CapacityService(test_db).reserve_capacity(warehouse.id, StorageType.AREA_RENTAL, 60000)

    @pytest.mark.asyncio
    async def test_reserve_requires_positive_amount(self, test_db, warehouse):
        with pytest.raises(ValidationError):
            await CapacityService(test_db).reserve_capacity(warehouse.id, StorageType.PALLET, 0)

    @pytest.mark.asyncio
    async def test_pallet_release_requires_zone(self, test_db, warehouse):
        with pytest.raises(ValidationError):
            await CapacityService(test_db).release_capacity(warehouse.id, StorageType.PALLET, 5)

    @pytest.mark.asyncio
    async def test_release_to_unknown_zone(self, test_db, warehouse):
        with pytest.raises(NotFoundError):
            await CapacityService(test_db).release_capacity(
                warehouse.id, StorageType.PALLET, 5, zone_id=uuid.uuid4()
            )


class TestWarehouseCapacity:
    """Tests for the capacity report."""

    @pytest.mark.asyncio
    async def test_utilization(self, test_db, warehouse):
        service = CapacityService(test_db)
        await service.reserve_capacity(warehouse.id, StorageType.PALLET, 40)

        report = await service.get_warehouse_capacity(warehouse.id)

        assert report["total_slots"] == 160
        assert report["available_slots"] == 120
        assert report["occupied_slots"] == 40
        assert report["pallet_utilization_percent"] == 25.0
        assert report["total_sq_ft"] == 50000
        assert report["area_utilization_percent"] == 0.0

    @pytest.mark.asyncio
    async def test_unknown_warehouse(self, test_db):
        with pytest.raises(NotFoundError):
            await CapacityService(test_db).get_warehouse_capacity(uuid.uuid4())
