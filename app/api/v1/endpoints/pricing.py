"""
Pricing, Capacity and Membership API Endpoints.

Quotes never create bookings and never touch capacity.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from app.api.deps import DB, CurrentUser
from app.core.exceptions import MarketplaceError, to_http_exception
from app.models.warehouse import StorageType
from app.schemas.pricing import (
    PalletPricingRequest,
    AreaRentalPricingRequest,
    PricingResponse,
    CapacityCheckResponse,
    WarehouseCapacityResponse,
    TierInfoResponse,
)
from app.services.booking_service import BookingService
from app.services.capacity_service import CapacityService
from app.services.membership_service import MembershipService
from app.services.pricing_engine import PricingEngine, PalletPricingInput, AreaRentalPricingInput

router = APIRouter()


# ============================================================================
# PRICING
# ============================================================================

@router.post("/pricing/pallet", response_model=PricingResponse, summary="Quote Pallet Storage")
async def quote_pallet(data: PalletPricingRequest, db: DB, current_user: CurrentUser):
    """Defaults the tier and existing pallets to the caller's own."""
    membership = MembershipService(db)
    try:
        tier = data.membership_tier or await membership.get_customer_tier(current_user.id)
        existing = data.existing_pallet_count
        if existing is None:
            existing = await BookingService(db, membership_service=membership).get_active_pallet_count(current_user.id)

        result = await PricingEngine(db, membership_service=membership).calculate_pallet_pricing(
            PalletPricingInput(
                warehouse_id=data.warehouse_id,
                pallet_count=data.pallet_count,
                months=data.months,
                existing_pallet_count=existing,
                membership_tier=tier,
            )
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post("/pricing/area-rental", response_model=PricingResponse, summary="Quote Area Rental")
async def quote_area_rental(data: AreaRentalPricingRequest, db: DB, current_user: CurrentUser):
    membership = MembershipService(db)
    try:
        tier = data.membership_tier or await membership.get_customer_tier(current_user.id)
        result = await PricingEngine(db, membership_service=membership).calculate_area_rental_pricing(
            AreaRentalPricingInput(
                warehouse_id=data.warehouse_id,
                area_sq_ft=data.area_sq_ft,
                months=data.months,
                membership_tier=tier,
            )
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return result.to_dict()


# ============================================================================
# CAPACITY
# ============================================================================

@router.get("/capacity/check", response_model=CapacityCheckResponse, summary="Check Capacity")
async def check_capacity(
    db: DB,
    current_user: CurrentUser,
    warehouse_id: UUID = Query(...),
    storage_type: StorageType = Query(...),
    required_amount: int = Query(..., gt=0),
    floor_number: Optional[int] = Query(None),
    zone_id: Optional[UUID] = Query(None),
):
    try:
        check = await CapacityService(db).check_capacity(
            warehouse_id,
            storage_type,
            required_amount,
            floor_number=floor_number,
            zone_id=zone_id,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return check.to_dict()


@router.get(
    "/capacity/warehouses/{warehouse_id}",
    response_model=WarehouseCapacityResponse,
    summary="Warehouse Capacity Summary"
)
async def warehouse_capacity(warehouse_id: UUID, db: DB, current_user: CurrentUser):
    try:
        return await CapacityService(db).get_warehouse_capacity(warehouse_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


# ============================================================================
# MEMBERSHIP
# ============================================================================

@router.get("/membership/tier-info", response_model=TierInfoResponse, summary="My Membership Tier")
async def tier_info(db: DB, current_user: CurrentUser):
    membership = MembershipService(db)
    total_spend = await membership.get_customer_total_spend(current_user.id)
    info = await membership.get_tier_info(total_spend)
    return {**info.to_dict(), "total_spend": total_spend}
