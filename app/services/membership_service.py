"""
Membership Tier Resolver.

Tiers are derived from a customer's total paid spend using the thresholds in
membership_settings. Discount percentages are read from the same table and
fall back to the compiled defaults (Settings.MEMBERSHIP_DEFAULT_DISCOUNTS)
when the table can't be read or has no row for the tier.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Dict, Any, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.membership import MembershipSetting, MembershipTier, TIER_RANK
from app.models.payment import CustomerCredit
from app.services.cache_service import CacheService, get_cache

logger = logging.getLogger(__name__)


@dataclass
class TierSetting:
    tier: MembershipTier
    min_spend: Decimal
    discount_percent: Decimal
    program_enabled: bool

    def to_cache(self) -> Dict[str, Any]:
        return {
            "tier_name": self.tier.value,
            "min_spend": str(self.min_spend),
            "discount_percent": str(self.discount_percent),
            "program_enabled": self.program_enabled,
        }

    @classmethod
    def from_cache(cls, row: Dict[str, Any]) -> "TierSetting":
        return cls(
            tier=MembershipTier(row["tier_name"]),
            min_spend=Decimal(row["min_spend"]),
            discount_percent=Decimal(row["discount_percent"]),
            program_enabled=row["program_enabled"],
        )


@dataclass
class TierInfo:
    tier: MembershipTier
    discount_percent: Decimal
    next_tier: Optional[MembershipTier]
    spend_needed_for_next_tier: Optional[Decimal]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "discount_percent": self.discount_percent,
            "next_tier": self.next_tier.value if self.next_tier else None,
            "spend_needed_for_next_tier": self.spend_needed_for_next_tier,
        }


def static_discount_percent(tier: Union[str, MembershipTier]) -> Decimal:
    """Compiled-in discount for a tier."""
    tier = MembershipTier(tier)
    return Decimal(str(settings.MEMBERSHIP_DEFAULT_DISCOUNTS.get(tier.value, 0)))


def check_tier_upgrade(
    old_tier: Union[str, MembershipTier],
    new_tier: Union[str, MembershipTier],
) -> bool:
    """True only when new_tier ranks strictly above old_tier."""
    return TIER_RANK[MembershipTier(new_tier)] > TIER_RANK[MembershipTier(old_tier)]


class MembershipService:
    """Resolve tiers and tier discounts from configurable settings."""

    def __init__(self, db: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db
        self.cache = cache or get_cache()

    async def get_tier_settings(self) -> List[TierSetting]:
        """Active tier settings, cached."""
        cached = await self.cache.get_membership_settings()
        if cached is not None:
            return [TierSetting.from_cache(row) for row in cached]

        result = await self.db.execute(
            select(MembershipSetting).where(MembershipSetting.status == "active")
        )
        rows = [
            TierSetting(
                tier=MembershipTier(row.tier_name),
                min_spend=Decimal(row.min_spend),
                discount_percent=Decimal(row.discount_percent),
                program_enabled=row.program_enabled,
            )
            for row in result.scalars().all()
        ]
        await self.cache.set_membership_settings([row.to_cache() for row in rows])
        return rows

    async def resolve_tier(self, total_spend: Union[Decimal, float, int]) -> MembershipTier:
        """Highest tier whose min_spend does not exceed total_spend."""
        total_spend = Decimal(str(total_spend))
        tiers = await self.get_tier_settings()

        if not tiers or not all(t.program_enabled for t in tiers):
            return MembershipTier.BRONZE

        for tier in sorted(tiers, key=lambda t: t.min_spend, reverse=True):
            if total_spend >= tier.min_spend:
                return tier.tier

        return MembershipTier.BRONZE

    async def get_discount_percent(self, tier: Union[str, MembershipTier]) -> Decimal:
        """Configured discount for a tier, else the compiled default."""
        tier = MembershipTier(tier)
        try:
            tiers = await self.get_tier_settings()
        except SQLAlchemyError as e:
            logger.warning(f"Membership settings lookup failed, using defaults: {e}")
            return static_discount_percent(tier)

        for setting in tiers:
            if setting.tier == tier:
                return setting.discount_percent

        return static_discount_percent(tier)

    async def get_tier_info(self, total_spend: Union[Decimal, float, int]) -> TierInfo:
        total_spend = Decimal(str(total_spend))
        tier = await self.resolve_tier(total_spend)
        discount = await self.get_discount_percent(tier)

        next_tier = None
        spend_needed = None
        tiers = await self.get_tier_settings()
        higher = sorted(
            (t for t in tiers if TIER_RANK[t.tier] > TIER_RANK[tier]),
            key=lambda t: TIER_RANK[t.tier],
        )
        if higher:
            next_tier = higher[0].tier
            spend_needed = max(Decimal("0"), higher[0].min_spend - total_spend)

        return TierInfo(
            tier=tier,
            discount_percent=discount,
            next_tier=next_tier,
            spend_needed_for_next_tier=spend_needed,
        )

    async def get_customer_total_spend(self, customer_id: uuid.UUID) -> Decimal:
        credit = await self.db.get(CustomerCredit, customer_id)
        return Decimal(credit.total_spend) if credit else Decimal("0")

    async def get_customer_tier(self, customer_id: uuid.UUID) -> MembershipTier:
        return await self.resolve_tier(await self.get_customer_total_spend(customer_id))

    async def record_spend(self, customer_id: uuid.UUID, amount: Decimal) -> Dict[str, Any]:
        """
        Add a successful payment to the customer's lifetime spend.

        Returns old/new tier and whether that is an upgrade. Does not commit.
        """
        credit = await self.db.get(CustomerCredit, customer_id)
        if credit is None:
            credit = CustomerCredit(
                customer_id=customer_id,
                credit_balance=Decimal("0"),
                total_spend=Decimal("0"),
            )
            self.db.add(credit)

        old_tier = await self.resolve_tier(credit.total_spend)
        credit.total_spend = Decimal(credit.total_spend) + Decimal(amount)
        new_tier = await self.resolve_tier(credit.total_spend)

        upgraded = check_tier_upgrade(old_tier, new_tier)
        if upgraded:
            logger.info(f"Customer {customer_id} upgraded from {old_tier.value} to {new_tier.value}")

        return {"old_tier": old_tier, "new_tier": new_tier, "upgraded": upgraded}
