# Services module
from app.services.capacity_service import CapacityService
from app.services.pricing_engine import PricingEngine
from app.services.membership_service import MembershipService
from app.services.booking_service import BookingService
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService
from app.services.task_assignment_service import TaskAssignmentService
from app.services.claim_service import ClaimService
from app.services.notification_service import NotificationService

__all__ = [
    "CapacityService",
    "PricingEngine",
    "MembershipService",
    "BookingService",
    "InvoiceService",
    "PaymentService",
    "TaskAssignmentService",
    "ClaimService",
    "NotificationService",
]
