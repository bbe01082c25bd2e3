"""Invoice and payment schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.membership import MembershipTier
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ============================================================================
# INVOICES
# ============================================================================

class InvoiceGenerateRequest(BaseCreateSchema):
    membership_tier: Optional[MembershipTier] = Field(
        None, description="Defaults to the customer's current tier"
    )


class InvoiceLine(BaseModel):
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class InvoiceResponse(BaseResponseSchema):
    id: UUID
    invoice_number: str
    customer_id: UUID
    customer_name: Optional[str] = None
    booking_id: Optional[UUID] = None
    service_order_id: Optional[UUID] = None
    warehouse_id: Optional[UUID] = None
    items: List[InvoiceLine]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    due_date: date
    paid_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime


class MonthlyInvoiceRunResponse(BaseModel):
    generated: int
    skipped: int
    errors: List[str]


# ============================================================================
# PAYMENTS
# ============================================================================

class InvoicePaymentRequest(BaseCreateSchema):
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the invoice total")
    use_credit_balance: bool = True


class PaymentConfirmRequest(BaseCreateSchema):
    payment_method_id: Optional[str] = Field(None, description="Gateway payment id, if known")


class RefundRequest(BaseCreateSchema):
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the remaining refundable amount")
    reason: Optional[str] = None
    refund_to_credit: bool = False


class PaymentResponse(BaseResponseSchema):
    id: UUID
    customer_id: UUID
    invoice_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    payment_intent_id: Optional[str] = None
    credit_balance_used: Decimal
    refunded_amount: Decimal
    failure_reason: Optional[str] = None
    created_at: datetime


class PaymentResult(BaseModel):
    payment: PaymentResponse
    client_secret: Optional[str] = None
    message: str


class RefundResponse(BaseResponseSchema):
    id: UUID
    payment_id: UUID
    customer_id: UUID
    amount: Decimal
    reason: Optional[str] = None
    status: str
    refund_to_credit: bool
    gateway_refund_id: Optional[str] = None
    created_at: datetime


class TransactionResponse(BaseResponseSchema):
    id: UUID
    payment_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None
    transaction_type: str
    amount: Decimal
    description: Optional[str] = None
    created_at: datetime


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentResponse]
    transactions: List[TransactionResponse]
    credit_balance: Decimal
