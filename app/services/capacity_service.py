"""
Capacity Ledger for pallet zones and area-rental halls.

Reservations never split across zones: a pallet booking is placed in the
single zone with the most free slots that can hold all of it, and an area
rental occupies one hall. Every reserve/release is one conditional UPDATE,
so concurrent bookings cannot overdraw a zone or hall.
"""
import logging
import uuid
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Union

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InsufficientCapacityError, NotFoundError, ValidationError
from app.models.warehouse import (
    Warehouse, WarehouseZone, WarehouseFloor, WarehouseHall, StorageType
)

logger = logging.getLogger(__name__)

# Lost conditional updates are retried against the next-best zone
MAX_RESERVE_ATTEMPTS = 3


@dataclass
class CapacityCheck:
    """Result of a capacity check. Insufficient capacity is not an error here."""
    available: bool
    available_amount: int
    required: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReservationResult:
    """Where a reservation landed."""
    success: bool
    storage_type: str
    amount: int
    zone_id: Optional[uuid.UUID] = None
    hall_id: Optional[uuid.UUID] = None
    message: str = ""


def _storage_type(value: Union[str, StorageType]) -> StorageType:
    try:
        return StorageType(value)
    except ValueError:
        raise ValidationError(f"Invalid booking type: {value}")


class CapacityService:
    """Check, reserve and release warehouse capacity."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # CHECK
    # =========================================================================

    async def check_capacity(
        self,
        warehouse_id: uuid.UUID,
        storage_type: Union[str, StorageType],
        required_amount: int,
        floor_number: Optional[int] = None,
        zone_id: Optional[uuid.UUID] = None,
    ) -> CapacityCheck:
        """Dispatch to the pallet or area-rental check."""
        storage_type = _storage_type(storage_type)
        if storage_type == StorageType.PALLET:
            return await self.check_pallet_capacity(warehouse_id, required_amount, zone_id)
        return await self.check_area_rental_capacity(warehouse_id, required_amount, floor_number)

    async def check_pallet_capacity(
        self,
        warehouse_id: uuid.UUID,
        pallet_count: int,
        zone_id: Optional[uuid.UUID] = None,
    ) -> CapacityCheck:
        """Sum free pallet slots across the warehouse's zones (or one zone)."""
        query = select(func.coalesce(func.sum(WarehouseZone.available_slots), 0)).where(
            WarehouseZone.warehouse_id == warehouse_id,
            WarehouseZone.zone_type == "pallet",
        )
        if zone_id:
            query = query.where(WarehouseZone.id == zone_id)

        available_slots = int((await self.db.execute(query)).scalar() or 0)

        if available_slots >= pallet_count:
            return CapacityCheck(
                available=True,
                available_amount=available_slots,
                required=pallet_count,
                message=f"Capacity available: {available_slots} slots free",
            )
        return CapacityCheck(
            available=False,
            available_amount=available_slots,
            required=pallet_count,
            message=(
                f"Insufficient capacity: Need {pallet_count} slots, "
                f"only {available_slots} available"
            ),
        )

    async def check_area_rental_capacity(
        self,
        warehouse_id: uuid.UUID,
        area_sq_ft: int,
        floor_number: Optional[int] = None,
    ) -> CapacityCheck:
        """Sum free square footage across halls on the area-rental floor."""
        floor_number = floor_number or settings.PRICING_AREA_RENTAL_FLOOR
        query = (
            select(func.coalesce(func.sum(WarehouseHall.available_sq_ft), 0))
            .join(WarehouseFloor, WarehouseHall.floor_id == WarehouseFloor.id)
            .where(
                WarehouseFloor.warehouse_id == warehouse_id,
                WarehouseFloor.floor_number == floor_number,
            )
        )
        available_sq_ft = int((await self.db.execute(query)).scalar() or 0)

        if available_sq_ft >= area_sq_ft:
            return CapacityCheck(
                available=True,
                available_amount=available_sq_ft,
                required=area_sq_ft,
                message=f"Capacity available: {available_sq_ft} sq ft free",
            )
        return CapacityCheck(
            available=False,
            available_amount=available_sq_ft,
            required=area_sq_ft,
            message=(
                f"Insufficient capacity: Need {area_sq_ft} sq ft, "
                f"only {available_sq_ft} available"
            ),
        )

    # =========================================================================
    # RESERVE
    # =========================================================================

    async def reserve_capacity(
        self,
        warehouse_id: uuid.UUID,
        storage_type: Union[str, StorageType],
        amount: int,
        hall_id: Optional[uuid.UUID] = None,
        floor_number: Optional[int] = None,
    ) -> ReservationResult:
        """
        Atomically take `amount` units from a single zone or hall.

        Raises:
            InsufficientCapacityError: no single zone/hall can hold the amount
        """
        if amount <= 0:
            raise ValidationError("Reservation amount must be greater than 0")

        storage_type = _storage_type(storage_type)
        if storage_type == StorageType.PALLET:
            return await self._reserve_pallets(warehouse_id, amount)
        return await self._reserve_area(warehouse_id, amount, hall_id, floor_number)

    async def _reserve_pallets(self, warehouse_id: uuid.UUID, amount: int) -> ReservationResult:
        for _ in range(MAX_RESERVE_ATTEMPTS):
            candidate = (await self.db.execute(
                select(WarehouseZone.id)
                .where(
                    WarehouseZone.warehouse_id == warehouse_id,
                    WarehouseZone.zone_type == "pallet",
                    WarehouseZone.available_slots >= amount,
                )
                .order_by(WarehouseZone.available_slots.desc())
                .limit(1)
            )).scalar_one_or_none()

            if candidate is None:
                break

            result = await self.db.execute(
                update(WarehouseZone)
                .where(
                    WarehouseZone.id == candidate,
                    WarehouseZone.available_slots >= amount,
                )
                .values(available_slots=WarehouseZone.available_slots - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info(f"Reserved {amount} pallet slots in zone {candidate} (warehouse {warehouse_id})")
                return ReservationResult(
                    success=True,
                    storage_type=StorageType.PALLET.value,
                    amount=amount,
                    zone_id=candidate,
                    message=f"Reserved {amount} slots",
                )
            logger.warning(f"Zone {candidate} changed during reservation, retrying")

        raise InsufficientCapacityError(
            "No available zones with sufficient capacity",
            {"warehouse_id": str(warehouse_id), "required": amount},
        )

    async def _reserve_area(
        self,
        warehouse_id: uuid.UUID,
        amount: int,
        hall_id: Optional[uuid.UUID],
        floor_number: Optional[int],
    ) -> ReservationResult:
        warehouse_floors = select(WarehouseFloor.id).where(WarehouseFloor.warehouse_id == warehouse_id)

        if hall_id is None:
            floor_number = floor_number or settings.PRICING_AREA_RENTAL_FLOOR
            hall_id = (await self.db.execute(
                select(WarehouseHall.id)
                .join(WarehouseFloor, WarehouseHall.floor_id == WarehouseFloor.id)
                .where(
                    WarehouseFloor.warehouse_id == warehouse_id,
                    WarehouseFloor.floor_number == floor_number,
                    WarehouseHall.available_sq_ft >= amount,
                )
                .order_by(WarehouseHall.available_sq_ft.desc())
                .limit(1)
            )).scalar_one_or_none()
            if hall_id is None:
                raise InsufficientCapacityError(
                    "No available halls with sufficient capacity",
                    {"warehouse_id": str(warehouse_id), "required": amount},
                )

        result = await self.db.execute(
            update(WarehouseHall)
            .where(
                WarehouseHall.id == hall_id,
                WarehouseHall.floor_id.in_(warehouse_floors),
                WarehouseHall.available_sq_ft >= amount,
            )
            .values(
                available_sq_ft=WarehouseHall.available_sq_ft - amount,
                occupied_sq_ft=WarehouseHall.occupied_sq_ft + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientCapacityError(
                "Insufficient capacity in selected hall",
                {"hall_id": str(hall_id), "required": amount},
            )

        logger.info(f"Reserved {amount} sq ft in hall {hall_id} (warehouse {warehouse_id})")
        return ReservationResult(
            success=True,
            storage_type=StorageType.AREA_RENTAL.value,
            amount=amount,
            hall_id=hall_id,
            message=f"Reserved {amount} sq ft",
        )

    # =========================================================================
    # RELEASE
    # =========================================================================

    async def release_capacity(
        self,
        warehouse_id: uuid.UUID,
        storage_type: Union[str, StorageType],
        amount: int,
        hall_id: Optional[uuid.UUID] = None,
        zone_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Return `amount` units to a zone or hall.

        Available never exceeds total and occupied never drops below zero.
        """
        if amount <= 0:
            raise ValidationError("Release amount must be greater than 0")

        storage_type = _storage_type(storage_type)
        if storage_type == StorageType.PALLET:
            if zone_id is None:
                raise ValidationError("Zone is required to release pallet capacity")
            freed = WarehouseZone.available_slots + amount
            result = await self.db.execute(
                update(WarehouseZone)
                .where(
                    WarehouseZone.id == zone_id,
                    WarehouseZone.warehouse_id == warehouse_id,
                )
                .values(
                    available_slots=case(
                        (freed > WarehouseZone.total_slots, WarehouseZone.total_slots),
                        else_=freed,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError("Zone", zone_id)
            logger.info(f"Released {amount} pallet slots to zone {zone_id}")
            return

        if hall_id is None:
            raise ValidationError("Hall is required to release area capacity")
        freed = WarehouseHall.available_sq_ft + amount
        remaining = WarehouseHall.occupied_sq_ft - amount
        result = await self.db.execute(
            update(WarehouseHall)
            .where(
                WarehouseHall.id == hall_id,
                WarehouseHall.floor_id.in_(
                    select(WarehouseFloor.id).where(WarehouseFloor.warehouse_id == warehouse_id)
                ),
            )
            .values(
                available_sq_ft=case(
                    (freed > WarehouseHall.total_sq_ft, WarehouseHall.total_sq_ft),
                    else_=freed,
                ),
                occupied_sq_ft=case((remaining < 0, 0), else_=remaining),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError("Hall", hall_id)
        logger.info(f"Released {amount} sq ft to hall {hall_id}")

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def get_warehouse_capacity(self, warehouse_id: uuid.UUID) -> Dict[str, Any]:
        """Pallet and area totals with utilization percentages."""
        warehouse = await self.db.get(Warehouse, warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse", warehouse_id)

        pallet_row = (await self.db.execute(
            select(
                func.coalesce(func.sum(WarehouseZone.total_slots), 0),
                func.coalesce(func.sum(WarehouseZone.available_slots), 0),
            ).where(WarehouseZone.warehouse_id == warehouse_id)
        )).one()
        area_row = (await self.db.execute(
            select(
                func.coalesce(func.sum(WarehouseHall.total_sq_ft), 0),
                func.coalesce(func.sum(WarehouseHall.available_sq_ft), 0),
            )
            .join(WarehouseFloor, WarehouseHall.floor_id == WarehouseFloor.id)
            .where(WarehouseFloor.warehouse_id == warehouse_id)
        )).one()

        total_slots, available_slots = int(pallet_row[0]), int(pallet_row[1])
        total_sq_ft, available_sq_ft = int(area_row[0]), int(area_row[1])

        def utilization(total: int, available: int) -> float:
            return round((total - available) / total * 100, 2) if total else 0.0

        return {
            "warehouse_id": warehouse_id,
            "total_slots": total_slots,
            "available_slots": available_slots,
            "occupied_slots": total_slots - available_slots,
            "pallet_utilization_percent": utilization(total_slots, available_slots),
            "total_sq_ft": total_sq_ft,
            "available_sq_ft": available_sq_ft,
            "occupied_sq_ft": total_sq_ft - available_sq_ft,
            "area_utilization_percent": utilization(total_sq_ft, available_sq_ft),
        }
