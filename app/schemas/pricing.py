"""Pricing, capacity and membership schemas."""
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.membership import MembershipTier
from app.schemas.base import BaseCreateSchema


# ============================================================================
# PRICING
# ============================================================================

class PalletPricingRequest(BaseCreateSchema):
    warehouse_id: Optional[UUID] = None
    pallet_count: int = Field(..., gt=0)
    months: int = Field(default=1, ge=1, le=120)
    existing_pallet_count: Optional[int] = Field(
        None, ge=0, description="Defaults to the caller's active pallets"
    )
    membership_tier: Optional[MembershipTier] = Field(
        None, description="Defaults to the caller's tier"
    )


class AreaRentalPricingRequest(BaseCreateSchema):
    warehouse_id: Optional[UUID] = None
    area_sq_ft: int = Field(..., gt=0)
    months: int = Field(default=1, ge=1, le=120)
    membership_tier: Optional[MembershipTier] = None


class BreakdownItemResponse(BaseModel):
    item: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class PricingResponse(BaseModel):
    base_amount: Decimal
    volume_discount: Decimal
    volume_discount_percent: Decimal
    membership_discount: Decimal
    membership_discount_percent: Decimal
    subtotal: Decimal
    total_discount: Decimal
    total_discount_percent: Decimal
    final_amount: Decimal
    breakdown: List[BreakdownItemResponse]
    rate_source: str


# ============================================================================
# CAPACITY
# ============================================================================

class CapacityCheckResponse(BaseModel):
    available: bool
    available_amount: int
    required: int
    message: str


class WarehouseCapacityResponse(BaseModel):
    warehouse_id: UUID
    total_slots: int
    available_slots: int
    occupied_slots: int
    pallet_utilization_percent: float
    total_sq_ft: int
    available_sq_ft: int
    occupied_sq_ft: int
    area_utilization_percent: float


# ============================================================================
# MEMBERSHIP
# ============================================================================

class TierInfoResponse(BaseModel):
    tier: MembershipTier
    discount_percent: Decimal
    next_tier: Optional[MembershipTier] = None
    spend_needed_for_next_tier: Optional[Decimal] = None
    total_spend: Optional[Decimal] = None
