"""
Payment Models.

- Payment: one payment attempt against an invoice
- PaymentTransaction: ledger of money movements
- Refund: refund issued against a payment
- CustomerCredit: prepaid credit balance and lifetime spend per customer
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, Money


# ============================================================================
# ENUMS
# ============================================================================

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMethod(str, Enum):
    CARD = "card"
    CREDIT_BALANCE = "credit_balance"


class TransactionType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    CREDIT_APPLIED = "credit_applied"
    CREDIT_ADDED = "credit_added"


class RefundStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ============================================================================
# MODELS
# ============================================================================

class Payment(Base):
    """Payment against an invoice, by card, credit balance, or both."""
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint('refunded_amount <= amount', name='ck_payment_refund_le_amount'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[str] = mapped_column(
        String(30),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        index=True
    )
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)

    # Gateway references
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    client_secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    charge_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    credit_balance_used: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - (self.refunded_amount or Decimal("0"))


class PaymentTransaction(Base):
    """Ledger row for every money movement."""
    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class Refund(Base):
    """Refund against a payment, to the card or to credit balance."""
    __tablename__ = "refunds"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    payment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=RefundStatus.PENDING.value,
        nullable=False
    )
    refund_to_credit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gateway_refund_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class CustomerCredit(Base):
    """Prepaid credit balance and lifetime paid spend for a customer."""
    __tablename__ = "customer_credits"
    __table_args__ = (
        CheckConstraint('credit_balance >= 0', name='ck_credit_balance_non_negative'),
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True
    )
    credit_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_spend: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
