"""Task and claim schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.claim import ClaimType
from app.models.task import TaskType, TaskPriority
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ============================================================================
# TASKS
# ============================================================================

class TaskCreate(BaseCreateSchema):
    task_type: TaskType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    warehouse_id: UUID
    booking_id: Optional[UUID] = None
    zone: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    due_date: Optional[datetime] = None


class TaskReassign(BaseCreateSchema):
    worker_id: UUID = Field(..., description="User id of the worker")


class TaskResponse(BaseResponseSchema):
    id: UUID
    task_type: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    assigned_to: Optional[UUID] = None
    assigned_to_name: Optional[str] = None
    warehouse_id: UUID
    booking_id: Optional[UUID] = None
    zone: Optional[str] = None
    location: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: datetime


class AutoAssignResponse(BaseModel):
    assigned: int
    errors: List[str]


class BalanceResponse(BaseModel):
    reassigned: int
    errors: List[str]


# ============================================================================
# CLAIMS
# ============================================================================

class ClaimSubmit(BaseCreateSchema):
    booking_id: UUID
    claim_type: ClaimType = ClaimType.DAMAGE
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    incident_id: Optional[UUID] = None


class ClaimFromIncident(BaseCreateSchema):
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    claim_type: ClaimType = ClaimType.DAMAGE


class ClaimReview(BaseCreateSchema):
    approve: bool
    approved_amount: Optional[Decimal] = Field(None, gt=0)
    review_notes: Optional[str] = None


class ClaimPayment(BaseCreateSchema):
    payment_reference: Optional[str] = Field(None, max_length=100)


class ClaimResponse(BaseResponseSchema):
    id: UUID
    claim_number: str
    customer_id: UUID
    booking_id: UUID
    incident_id: Optional[UUID] = None
    claim_type: str
    description: str
    amount: Decimal
    approved_amount: Optional[Decimal] = None
    status: str
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    created_at: datetime


class ClaimStatsResponse(BaseModel):
    total: int
    submitted: int
    under_review: int
    approved: int
    rejected: int
    paid: int
    total_amount: Decimal
    total_approved_amount: Decimal
    total_paid_amount: Decimal


class EscalationResponse(BaseModel):
    escalated: int
    errors: List[str]
