"""
Database initialization run at application startup.

Schema changes go through alembic; DB_AUTO_CREATE only exists for SQLite
and throwaway environments. Default membership tiers are seeded when the
settings table is empty.
"""

from decimal import Decimal
import logging

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import async_session_factory, init_db
from app.services.cache_service import get_cache

logger = logging.getLogger(__name__)


async def seed_membership_settings() -> int:
    """
    Insert one membership_settings row per tier if the table is empty.

    Returns the number of rows created.
    """
    from app.models.membership import MembershipSetting, MembershipTier

    async with async_session_factory() as session:
        existing = (await session.execute(
            select(func.count(MembershipSetting.id))
        )).scalar() or 0

        if existing:
            logger.info(f"Membership settings already present ({existing} tiers). Skipping seed.")
            return 0

        for tier in MembershipTier:
            session.add(MembershipSetting(
                tier_name=tier.value,
                min_spend=Decimal(str(settings.MEMBERSHIP_DEFAULT_THRESHOLDS.get(tier.value, 0))),
                discount_percent=Decimal(str(settings.MEMBERSHIP_DEFAULT_DISCOUNTS.get(tier.value, 0))),
                program_enabled=True,
                status="active",
            ))
        await session.commit()

    # Tier lookups cached before the seed saw an empty table
    await get_cache().invalidate_membership_settings()
    logger.info(f"Seeded {len(MembershipTier)} membership tiers")
    return len(MembershipTier)


async def startup_initialization() -> None:
    """Prepare the database before the app starts serving requests."""
    if settings.DB_AUTO_CREATE:
        await init_db()

    try:
        await seed_membership_settings()
    except SQLAlchemyError as e:
        # Tables missing until migrations run; pricing falls back to compiled defaults
        logger.warning(f"Membership settings seed skipped: {e}")
