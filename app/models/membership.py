"""Membership program settings."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, Money


class MembershipTier(str, Enum):
    """Spend-based customer tiers, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


TIER_RANK = {
    MembershipTier.BRONZE: 1,
    MembershipTier.SILVER: 2,
    MembershipTier.GOLD: 3,
    MembershipTier.PLATINUM: 4,
}


class MembershipSetting(Base):
    """
    Configurable threshold and discount for one tier.

    program_enabled is stored per row; the program counts as disabled when
    any active row has it switched off.
    """
    __tablename__ = "membership_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tier_name: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    min_spend: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    program_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
