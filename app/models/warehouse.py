"""
Warehouse Models - listings and their bookable capacity units.

- Warehouse: a listed facility
- WarehouseZone: pallet storage zone (slots)
- WarehouseFloor / WarehouseHall: area rental space (square feet)
- WarehousePricing: per-warehouse rate plan with volume discount table
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List, Dict, Any

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType, Money

if TYPE_CHECKING:
    from app.models.booking import Booking


# ============================================================================
# ENUMS
# ============================================================================

class StorageType(str, Enum):
    """Kind of storage a booking or rate applies to."""
    PALLET = "pallet"
    AREA_RENTAL = "area-rental"


class PricingType(str, Enum):
    """Rate plan types (as stored in warehouse_pricing.pricing_type)."""
    PALLET = "pallet"
    AREA_RENTAL = "area_rental"


class PricingUnit(str, Enum):
    """Billing period a base price is quoted in."""
    PER_DAY = "per_day"
    PER_WEEK = "per_week"
    PER_MONTH = "per_month"
    PER_YEAR = "per_year"


class WarehouseStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# ============================================================================
# MODELS
# ============================================================================

class Warehouse(Base):
    """A warehouse listed on the marketplace."""
    __tablename__ = "warehouses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, unique=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=WarehouseStatus.ACTIVE.value,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    zones: Mapped[List["WarehouseZone"]] = relationship(
        "WarehouseZone",
        back_populates="warehouse",
        cascade="all, delete-orphan"
    )
    floors: Mapped[List["WarehouseFloor"]] = relationship(
        "WarehouseFloor",
        back_populates="warehouse",
        cascade="all, delete-orphan"
    )
    pricing: Mapped[List["WarehousePricing"]] = relationship(
        "WarehousePricing",
        back_populates="warehouse",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Warehouse(name='{self.name}')>"


class WarehouseZone(Base):
    """
    Pallet storage zone.

    occupied slots are derived as total_slots - available_slots.
    """
    __tablename__ = "warehouse_zones"
    __table_args__ = (
        CheckConstraint('available_slots >= 0', name='ck_zone_available_non_negative'),
        CheckConstraint('available_slots <= total_slots', name='ck_zone_available_le_total'),
        Index('ix_warehouse_zones_warehouse_available', 'warehouse_id', 'available_slots'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    zone_type: Mapped[str] = mapped_column(String(30), default="pallet", nullable=False)
    total_slots: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_slots: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="zones")

    @property
    def occupied_slots(self) -> int:
        return self.total_slots - self.available_slots


class WarehouseFloor(Base):
    """A numbered floor whose halls are rented by square footage."""
    __tablename__ = "warehouse_floors"
    __table_args__ = (
        UniqueConstraint('warehouse_id', 'floor_number', name='uq_warehouse_floor_number'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    floor_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="floors")
    halls: Mapped[List["WarehouseHall"]] = relationship(
        "WarehouseHall",
        back_populates="floor",
        cascade="all, delete-orphan"
    )


class WarehouseHall(Base):
    """Rentable hall on a floor, measured in square feet."""
    __tablename__ = "warehouse_halls"
    __table_args__ = (
        CheckConstraint('available_sq_ft >= 0', name='ck_hall_available_non_negative'),
        CheckConstraint('available_sq_ft <= total_sq_ft', name='ck_hall_available_le_total'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    floor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouse_floors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_sq_ft: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_sq_ft: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    occupied_sq_ft: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    floor: Mapped["WarehouseFloor"] = relationship("WarehouseFloor", back_populates="halls")


class WarehousePricing(Base):
    """
    Rate plan for one storage type at one warehouse.

    volume_discounts is a list of {"threshold": int, "discount_percent": number}.
    """
    __tablename__ = "warehouse_pricing"
    __table_args__ = (
        Index('ix_warehouse_pricing_lookup', 'warehouse_id', 'pricing_type', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    pricing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    unit: Mapped[str] = mapped_column(
        String(20),
        default=PricingUnit.PER_MONTH.value,
        nullable=False
    )
    min_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    volume_discounts: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSONType,
        nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="pricing")
