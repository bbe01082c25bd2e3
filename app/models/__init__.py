"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""
from app.models.warehouse import (
    Warehouse,
    WarehouseZone,
    WarehouseFloor,
    WarehouseHall,
    WarehousePricing,
    StorageType,
    PricingType,
    PricingUnit,
)
from app.models.booking import Booking, BookingApproval, BookingStatus, ApprovalStatus
from app.models.team import ClientTeam, TeamMember, TeamRole
from app.models.membership import MembershipSetting, MembershipTier, TIER_RANK
from app.models.invoice import Invoice, InvoiceStatus, ServiceOrder, ServiceOrderStatus
from app.models.payment import (
    Payment,
    PaymentTransaction,
    Refund,
    CustomerCredit,
    PaymentStatus,
    PaymentMethod,
    TransactionType,
    RefundStatus,
)
from app.models.task import Task, Worker, TaskType, TaskStatus, TaskPriority
from app.models.claim import Claim, Incident, ClaimStatus, ClaimType, IncidentStatus

__all__ = [
    "Warehouse",
    "WarehouseZone",
    "WarehouseFloor",
    "WarehouseHall",
    "WarehousePricing",
    "StorageType",
    "PricingType",
    "PricingUnit",
    "Booking",
    "BookingApproval",
    "BookingStatus",
    "ApprovalStatus",
    "ClientTeam",
    "TeamMember",
    "TeamRole",
    "MembershipSetting",
    "MembershipTier",
    "TIER_RANK",
    "Invoice",
    "InvoiceStatus",
    "ServiceOrder",
    "ServiceOrderStatus",
    "Payment",
    "PaymentTransaction",
    "Refund",
    "CustomerCredit",
    "PaymentStatus",
    "PaymentMethod",
    "TransactionType",
    "RefundStatus",
    "Task",
    "Worker",
    "TaskType",
    "TaskStatus",
    "TaskPriority",
    "Claim",
    "Incident",
    "ClaimStatus",
    "ClaimType",
    "IncidentStatus",
]
