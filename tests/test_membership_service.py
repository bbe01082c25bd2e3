"""
Tests for MembershipService.

Tiers resolve from the membership_settings rows; the compiled defaults
cover discounts when no row exists.
"""

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from app.config import settings
from app.database_init import seed_membership_settings
from app.models.membership import MembershipSetting, MembershipTier
from app.models.payment import CustomerCredit
from app.services.membership_service import MembershipService, check_tier_upgrade, static_discount_percent


@pytest_asyncio.fixture
async def tier_settings(test_db):
    """The four default tiers as settings rows."""
    rows = [
        MembershipSetting(
            tier_name=tier,
            min_spend=Decimal(str(settings.MEMBERSHIP_DEFAULT_THRESHOLDS[tier])),
            discount_percent=Decimal(str(settings.MEMBERSHIP_DEFAULT_DISCOUNTS[tier])),
            program_enabled=True,
        )
        for tier in ("bronze", "silver", "gold", "platinum")
    ]
    test_db.add_all(rows)
    await test_db.commit()
    return rows


class TestTierResolution:
    """Tests for resolving a tier from cumulative spend."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("spend,expected", [
        (Decimal("0"), MembershipTier.BRONZE),
        (Decimal("9999.99"), MembershipTier.BRONZE),
        (Decimal("10000"), MembershipTier.SILVER),
        (Decimal("75000"), MembershipTier.GOLD),
        (Decimal("100000"), MembershipTier.PLATINUM),
    ])
    async def test_resolve_tier(self, test_db, tier_settings, spend, expected):
        assert await MembershipService(test_db).resolve_tier(spend) == expected

    @pytest.mark.asyncio
    async def test_no_settings_means_bronze(self, test_db):
        assert await MembershipService(test_db).resolve_tier(Decimal("250000")) == MembershipTier.BRONZE

    @pytest.mark.asyncio
    async def test_seed_replaces_cached_empty_settings(self, test_db):
        service = MembershipService(test_db)
        assert await service.resolve_tier(Decimal("75000")) == MembershipTier.BRONZE
        await test_db.commit()

        assert await seed_membership_settings() == 4

        assert await service.resolve_tier(Decimal("75000")) == MembershipTier.GOLD
        assert await seed_membership_settings() == 0

    @pytest.mark.asyncio
    async def test_disabled_program_means_bronze(self, test_db, tier_settings):
        tier_settings[2].program_enabled = False
        await test_db.commit()

        assert await MembershipService(test_db).resolve_tier(Decimal("75000")) == MembershipTier.BRONZE


class TestDiscounts:
    """Tests for tier discount lookup."""

    @pytest.mark.asyncio
    async def test_falls_back_to_compiled_defaults(self, test_db):
        service = MembershipService(test_db)

        assert await service.get_discount_percent(MembershipTier.SILVER) == Decimal("5")
        assert await service.get_discount_percent("platinum") == Decimal("15")

    @pytest.mark.asyncio
    async def test_configured_discount_wins(self, test_db, tier_settings):
        tier_settings[2].discount_percent = Decimal("12.50")
        await test_db.commit()

        assert await MembershipService(test_db).get_discount_percent(MembershipTier.GOLD) == Decimal("12.50")

    def test_static_discount(self):
        assert static_discount_percent("bronze") == Decimal("0")
        assert static_discount_percent(MembershipTier.GOLD) == Decimal("10")


class TestTierInfo:
    """Tests for tier progress reporting."""

    @pytest.mark.asyncio
    async def test_next_tier_and_spend_needed(self, test_db, tier_settings):
        info = await MembershipService(test_db).get_tier_info(Decimal("20000"))

        assert info.tier == MembershipTier.SILVER
        assert info.discount_percent == Decimal("5")
        assert info.next_tier == MembershipTier.GOLD
        assert info.spend_needed_for_next_tier == Decimal("30000")

    @pytest.mark.asyncio
    async def test_top_tier_has_no_next(self, test_db, tier_settings):
        info = await MembershipService(test_db).get_tier_info(Decimal("150000"))

        assert info.tier == MembershipTier.PLATINUM
        assert info.next_tier is None
        assert info.to_dict()["spend_needed_for_next_tier"] is None


class TestSpendTracking:
    """Tests for lifetime spend and upgrades."""

    def test_check_tier_upgrade(self):
        assert check_tier_upgrade("silver", "gold") is True
        assert check_tier_upgrade("gold", "silver") is False
        assert check_tier_upgrade("gold", "gold") is False

    @pytest.mark.asyncio
    async def test_record_spend_reports_upgrade(self, test_db, tier_settings):
        customer_id = uuid.uuid4()
        test_db.add(CustomerCredit(customer_id=customer_id, credit_balance=Decimal("0"), total_spend=Decimal("9500")))
        await test_db.commit()

        service = MembershipService(test_db)
        result = await service.record_spend(customer_id, Decimal("600"))
        await test_db.commit()

        assert result["old_tier"] == MembershipTier.BRONZE
        assert result["new_tier"] == MembershipTier.SILVER
        assert result["upgraded"] is True
        assert await service.get_customer_total_spend(customer_id) == Decimal("10100")

    @pytest.mark.asyncio
    async def test_record_spend_creates_credit_row(self, test_db, tier_settings):
        customer_id = uuid.uuid4()

        service = MembershipService(test_db)
        result = await service.record_spend(customer_id, Decimal("250"))
        await test_db.commit()

        assert result["upgraded"] is False
        assert await service.get_customer_tier(customer_id) == MembershipTier.BRONZE
