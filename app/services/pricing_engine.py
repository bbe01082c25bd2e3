"""
Pricing Engine for pallet storage and area rentals.

This service handles:
1. Rate resolution (warehouse rate plan, else static defaults from Settings)
2. Unit normalisation to a monthly rate
3. Volume discounts on cumulative pallet count
4. Membership discounts, applied after the volume discount
5. Itemised breakdown for invoicing
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict, Any, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, MinimumQuantityNotMetError
from app.models.membership import MembershipTier
from app.models.warehouse import WarehousePricing, PricingType, PricingUnit
from app.services.cache_service import CacheService, get_cache
from app.services.membership_service import MembershipService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def months_label(months: int) -> str:
    return f"{months} month{'s' if months > 1 else ''}"


# ============================================================================
# RATE PLANS
# ============================================================================

@dataclass
class VolumeDiscountTier:
    threshold: int
    discount_percent: Decimal


@dataclass
class RatePlan:
    """A resolved rate, already normalised to per-month."""
    monthly_rate: Decimal
    unit: str
    source: str  # "warehouse" or "default"
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    volume_discounts: List[VolumeDiscountTier] = field(default_factory=list)
    pallet_in_rate: Decimal = ZERO

    def to_cache(self) -> Dict[str, Any]:
        return {
            "monthly_rate": str(self.monthly_rate),
            "unit": self.unit,
            "source": self.source,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "volume_discounts": [
                {"threshold": t.threshold, "discount_percent": str(t.discount_percent)}
                for t in self.volume_discounts
            ],
            "pallet_in_rate": str(self.pallet_in_rate),
        }

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "RatePlan":
        return cls(
            monthly_rate=Decimal(data["monthly_rate"]),
            unit=data["unit"],
            source=data["source"],
            min_quantity=data.get("min_quantity"),
            max_quantity=data.get("max_quantity"),
            volume_discounts=parse_volume_discounts(data.get("volume_discounts")),
            pallet_in_rate=Decimal(data.get("pallet_in_rate", "0")),
        )


def parse_volume_discounts(raw: Any) -> List[VolumeDiscountTier]:
    """
    Accepts [{"threshold": 100, "discount_percent": 5}, ...] or {"100": 5, ...}.
    """
    if not raw:
        return []
    if isinstance(raw, dict):
        items = [{"threshold": k, "discount_percent": v} for k, v in raw.items()]
    else:
        items = raw
    return [
        VolumeDiscountTier(
            threshold=int(item["threshold"]),
            discount_percent=Decimal(str(item["discount_percent"])),
        )
        for item in items
    ]


def static_volume_discounts() -> List[VolumeDiscountTier]:
    return [
        VolumeDiscountTier(threshold=int(k), discount_percent=Decimal(str(v)))
        for k, v in settings.PRICING_VOLUME_DISCOUNTS.items()
    ]


def to_monthly_rate(base_price: Decimal, unit: str) -> Decimal:
    base_price = Decimal(base_price)
    if unit == PricingUnit.PER_DAY.value:
        return base_price * 30
    if unit == PricingUnit.PER_WEEK.value:
        return base_price * 52 / 12
    if unit == PricingUnit.PER_YEAR.value:
        return base_price / 12
    return base_price


def select_volume_discount(quantity: int, tiers: List[VolumeDiscountTier]) -> Decimal:
    """Percent for the highest threshold the quantity meets, 0 when none."""
    for tier in sorted(tiers, key=lambda t: t.threshold, reverse=True):
        if quantity >= tier.threshold:
            return tier.discount_percent
    return ZERO


class RateResolver:
    """
    Layered rate lookup: the warehouse's active rate plan, then the static
    defaults from Settings.
    """

    def __init__(self, db: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db
        self.cache = cache or get_cache()

    async def resolve(self, warehouse_id: Optional[uuid.UUID], pricing_type: PricingType) -> RatePlan:
        plan = None
        if warehouse_id:
            plan = await self._warehouse_plan(warehouse_id, pricing_type)
        if plan is None:
            plan = self._default_plan(pricing_type)
        return plan

    async def _warehouse_plan(
        self,
        warehouse_id: uuid.UUID,
        pricing_type: PricingType
    ) -> Optional[RatePlan]:
        cached = await self.cache.get_warehouse_pricing(str(warehouse_id), pricing_type.value)
        if cached:
            return RatePlan.from_cache(cached)

        result = await self.db.execute(
            select(WarehousePricing)
            .where(
                WarehousePricing.warehouse_id == warehouse_id,
                WarehousePricing.pricing_type == pricing_type.value,
                WarehousePricing.is_active.is_(True),
            )
            .order_by(WarehousePricing.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.debug(f"No {pricing_type.value} rate plan for warehouse {warehouse_id}, using defaults")
            return None

        volume_discounts = parse_volume_discounts(row.volume_discounts)
        if pricing_type == PricingType.PALLET and not volume_discounts:
            volume_discounts = static_volume_discounts()

        plan = RatePlan(
            monthly_rate=to_monthly_rate(row.base_price, row.unit),
            unit=row.unit,
            source="warehouse",
            min_quantity=row.min_quantity,
            max_quantity=row.max_quantity,
            volume_discounts=volume_discounts,
        )
        await self.cache.set_warehouse_pricing(str(warehouse_id), pricing_type.value, plan.to_cache())
        return plan

    def _default_plan(self, pricing_type: PricingType) -> RatePlan:
        if pricing_type == PricingType.PALLET:
            return RatePlan(
                monthly_rate=Decimal(str(settings.PRICING_STORAGE_PER_PALLET_PER_MONTH)),
                unit=PricingUnit.PER_MONTH.value,
                source="default",
                volume_discounts=static_volume_discounts(),
                pallet_in_rate=Decimal(str(settings.PRICING_PALLET_IN)),
            )
        return RatePlan(
            monthly_rate=Decimal(str(settings.PRICING_AREA_RENTAL_PER_SQFT_PER_YEAR)) / 12,
            unit=PricingUnit.PER_YEAR.value,
            source="default",
            min_quantity=settings.PRICING_AREA_RENTAL_MIN_SQFT,
        )


# ============================================================================
# INPUTS / RESULTS
# ============================================================================

@dataclass
class PalletPricingInput:
    warehouse_id: Optional[uuid.UUID]
    pallet_count: int
    months: int = 1
    existing_pallet_count: int = 0  # Customer's active pallets, for cumulative discounts
    membership_tier: Optional[MembershipTier] = None


@dataclass
class AreaRentalPricingInput:
    warehouse_id: Optional[uuid.UUID]
    area_sq_ft: int
    months: int = 1
    membership_tier: Optional[MembershipTier] = None


@dataclass
class BreakdownItem:
    item: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.total,
        }


@dataclass
class PricingResult:
    base_amount: Decimal
    volume_discount: Decimal
    volume_discount_percent: Decimal
    membership_discount: Decimal
    membership_discount_percent: Decimal
    subtotal: Decimal
    total_discount: Decimal
    total_discount_percent: Decimal
    final_amount: Decimal
    breakdown: List[BreakdownItem] = field(default_factory=list)
    rate_source: str = "default"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_amount": self.base_amount,
            "volume_discount": self.volume_discount,
            "volume_discount_percent": self.volume_discount_percent,
            "membership_discount": self.membership_discount,
            "membership_discount_percent": self.membership_discount_percent,
            "subtotal": self.subtotal,
            "total_discount": self.total_discount,
            "total_discount_percent": self.total_discount_percent,
            "final_amount": self.final_amount,
            "breakdown": [b.to_dict() for b in self.breakdown],
            "rate_source": self.rate_source,
        }


# ============================================================================
# ENGINE
# ============================================================================

class PricingEngine:
    """Deterministic price calculation for bookings and invoices."""

    def __init__(
        self,
        db: AsyncSession,
        membership_service: Optional[MembershipService] = None,
        rate_resolver: Optional[RateResolver] = None,
    ):
        self.db = db
        self.membership_service = membership_service or MembershipService(db)
        self.rate_resolver = rate_resolver or RateResolver(db)

    async def membership_discount_percent(self, tier: Optional[Union[str, MembershipTier]]) -> Decimal:
        if not tier:
            return ZERO
        return await self.membership_service.get_discount_percent(tier)

    def _build_result(
        self,
        base_amount: Decimal,
        volume_percent: Decimal,
        membership_percent: Decimal,
        breakdown: List[BreakdownItem],
        rate_source: str,
    ) -> PricingResult:
        volume_discount = base_amount * volume_percent / HUNDRED
        # Membership discount compounds on the amount left after the volume discount
        membership_discount = max(ZERO, base_amount - volume_discount) * membership_percent / HUNDRED
        total_discount = volume_discount + membership_discount
        total_discount_percent = total_discount / base_amount * HUNDRED if base_amount > 0 else ZERO
        final_amount = max(ZERO, base_amount - total_discount)

        return PricingResult(
            base_amount=money(base_amount),
            volume_discount=money(volume_discount),
            volume_discount_percent=volume_percent,
            membership_discount=money(membership_discount),
            membership_discount_percent=membership_percent,
            subtotal=money(base_amount),
            total_discount=money(total_discount),
            total_discount_percent=money(total_discount_percent),
            final_amount=money(final_amount),
            breakdown=breakdown,
            rate_source=rate_source,
        )

    async def calculate_pallet_pricing(self, data: PalletPricingInput) -> PricingResult:
        if not data.pallet_count or data.pallet_count <= 0:
            raise ValidationError("Pallet count is required for pallet bookings")
        months = data.months or 1
        if months <= 0:
            raise ValidationError("Months must be greater than 0")

        plan = await self.rate_resolver.resolve(data.warehouse_id, PricingType.PALLET)
        if plan.max_quantity and data.pallet_count > plan.max_quantity:
            raise ValidationError(f"Maximum pallet booking is {plan.max_quantity} pallets")

        pallet_in_cost = data.pallet_count * plan.pallet_in_rate
        storage_cost = data.pallet_count * plan.monthly_rate * months
        base_amount = pallet_in_cost + storage_cost

        cumulative = (data.existing_pallet_count or 0) + data.pallet_count
        volume_percent = select_volume_discount(cumulative, plan.volume_discounts)
        membership_percent = await self.membership_discount_percent(data.membership_tier)

        breakdown = []
        if pallet_in_cost > 0:
            breakdown.append(BreakdownItem(
                item="Pallet In",
                quantity=data.pallet_count,
                unit_price=money(plan.pallet_in_rate),
                total=money(pallet_in_cost),
            ))
        breakdown.append(BreakdownItem(
            item=f"Storage ({months_label(months)})",
            quantity=data.pallet_count,
            unit_price=money(plan.monthly_rate * months),
            total=money(storage_cost),
        ))

        return self._build_result(base_amount, volume_percent, membership_percent, breakdown, plan.source)

    async def calculate_area_rental_pricing(self, data: AreaRentalPricingInput) -> PricingResult:
        """
        Area rentals get membership discounts only.

        Raises:
            MinimumQuantityNotMetError: area below the warehouse (or default) minimum
        """
        if not data.area_sq_ft or data.area_sq_ft <= 0:
            raise ValidationError("Area square footage is required for area rental bookings")
        months = data.months or 1
        if months <= 0:
            raise ValidationError("Months must be greater than 0")

        minimum = await self.get_area_minimum(data.warehouse_id)
        if data.area_sq_ft < minimum:
            raise MinimumQuantityNotMetError(
                f"Minimum area rental is {minimum} sq ft",
                {"minimum": minimum, "requested": data.area_sq_ft},
            )

        plan = await self.rate_resolver.resolve(data.warehouse_id, PricingType.AREA_RENTAL)
        if plan.max_quantity and data.area_sq_ft > plan.max_quantity:
            raise ValidationError(f"Maximum area rental is {plan.max_quantity} sq ft")

        base_amount = data.area_sq_ft * plan.monthly_rate * months
        membership_percent = await self.membership_discount_percent(data.membership_tier)

        breakdown = [BreakdownItem(
            item=f"Area Rental ({months_label(months)})",
            quantity=1,
            unit_price=money(base_amount),
            total=money(base_amount),
        )]

        return self._build_result(base_amount, ZERO, membership_percent, breakdown, plan.source)

    async def get_area_minimum(self, warehouse_id: Optional[uuid.UUID]) -> int:
        plan = await self.rate_resolver.resolve(warehouse_id, PricingType.AREA_RENTAL)
        return plan.min_quantity or settings.PRICING_AREA_RENTAL_MIN_SQFT

    async def get_monthly_pallet_rate(self, warehouse_id: Optional[uuid.UUID]) -> RatePlan:
        return await self.rate_resolver.resolve(warehouse_id, PricingType.PALLET)
