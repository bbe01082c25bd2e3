"""
Claims workflow for damage/loss claims against bookings.

    submitted -> under-review -> approved -> paid
    submitted | under-review -> rejected
    submitted -> approved (review without a separate start)

Reviewing a claim linked to an incident moves the incident along with it.
"""
import logging
import uuid
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any, Awaitable, Callable

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ValidationError,
    StatePreconditionError,
    AuthorizationError,
    NotFoundError,
)
from app.database import add_numbered
from app.models.booking import Booking
from app.models.claim import Claim, ClaimStatus, ClaimType, Incident, IncidentStatus
from app.services.notification_service import (
    NotificationService,
    NotificationRequest,
    NotificationType,
    NotificationChannel,
    notify_safely,
)
from app.services.pricing_engine import money

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = [ClaimStatus.SUBMITTED.value, ClaimStatus.UNDER_REVIEW.value]

EscalationHandler = Callable[[Claim], Awaitable[None]]


class ClaimService:
    """Claim submission, review and payout."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier

    async def get_claim(self, claim_id: uuid.UUID) -> Claim:
        claim = await self.db.get(Claim, claim_id)
        if not claim:
            raise NotFoundError("Claim", claim_id)
        return claim

    async def _generate_claim_number(self, offset: int = 0) -> str:
        prefix = f"CLM-{datetime.now(timezone.utc).strftime('%Y%m')}"
        count = await self.db.scalar(
            select(func.count(Claim.id)).where(Claim.claim_number.like(f"{prefix}%"))
        ) or 0
        return f"{prefix}-{count + 1 + offset:04d}"

    async def _move(self, claim: Claim, expected: List[str], values: Dict[str, Any]) -> Claim:
        """Conditional status update; fails if the claim moved in the meantime."""
        result = await self.db.execute(
            update(Claim)
            .where(Claim.id == claim.id, Claim.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError(
                f"Claim {claim.claim_number} was modified concurrently",
                {"claim_id": str(claim.id)},
            )
        await self.db.refresh(claim)
        return claim

    # =========================================================================
    # SUBMIT
    # =========================================================================

    async def submit_claim(
        self,
        customer_id: uuid.UUID,
        booking_id: uuid.UUID,
        description: str,
        amount: Decimal,
        claim_type: ClaimType = ClaimType.DAMAGE,
        incident_id: Optional[uuid.UUID] = None,
    ) -> Claim:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        if booking.customer_id != customer_id:
            raise AuthorizationError("You can only submit claims for your own bookings")

        if incident_id:
            incident = await self.db.get(Incident, incident_id)
            if not incident:
                raise NotFoundError("Incident", incident_id)
            if incident.affected_booking_id != booking_id:
                raise ValidationError("Incident is not associated with this booking")

        if amount is None or Decimal(amount) <= 0:
            raise ValidationError("Claim amount must be greater than zero")

        claim = Claim(
            customer_id=customer_id,
            booking_id=booking_id,
            incident_id=incident_id,
            claim_type=ClaimType(claim_type).value,
            description=description,
            amount=money(amount),
            status=ClaimStatus.SUBMITTED.value,
        )
        await add_numbered(self.db, claim, "claim_number", self._generate_claim_number)
        await self.db.commit()

        logger.info(f"Claim {claim.claim_number} submitted by {customer_id} for {claim.amount}")
        return claim

    async def create_claim_from_incident(
        self,
        incident_id: uuid.UUID,
        customer_id: uuid.UUID,
        amount: Decimal,
        description: Optional[str] = None,
        claim_type: ClaimType = ClaimType.DAMAGE,
    ) -> Claim:
        """One claim per incident, for the customer whose booking was affected."""
        incident = await self.db.get(Incident, incident_id)
        if not incident:
            raise NotFoundError("Incident", incident_id)
        if not incident.affected_booking_id:
            raise ValidationError("Incident must be associated with a booking to create a claim")

        booking = await self.db.get(Booking, incident.affected_booking_id)
        if not booking:
            raise NotFoundError("Booking", incident.affected_booking_id)
        if booking.customer_id != customer_id:
            raise AuthorizationError("Customer does not match the booking associated with this incident")

        existing = await self.db.scalar(
            select(func.count(Claim.id)).where(Claim.incident_id == incident_id)
        )
        if existing:
            raise StatePreconditionError("A claim already exists for this incident")

        return await self.submit_claim(
            customer_id=customer_id,
            booking_id=booking.id,
            description=description or f"Claim related to incident: {incident.title}",
            amount=amount,
            claim_type=claim_type,
            incident_id=incident_id,
        )

    # =========================================================================
    # REVIEW
    # =========================================================================

    async def start_review(self, claim_id: uuid.UUID, reviewer_id: uuid.UUID) -> Claim:
        claim = await self.get_claim(claim_id)
        if claim.status != ClaimStatus.SUBMITTED.value:
            raise StatePreconditionError(f"Claim cannot be moved to review from status: {claim.status}")

        await self._move(claim, [ClaimStatus.SUBMITTED.value], {
            "status": ClaimStatus.UNDER_REVIEW.value,
            "reviewed_by": reviewer_id,
        })
        await self.db.commit()
        return claim

    async def review_claim(
        self,
        claim_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        approve: bool,
        approved_amount: Optional[Decimal] = None,
        review_notes: Optional[str] = None,
    ) -> Claim:
        """
        Approve or reject a claim.

        The approved amount defaults to the claimed amount and may not exceed it.
        """
        claim = await self.get_claim(claim_id)
        if claim.status not in REVIEWABLE_STATUSES:
            raise StatePreconditionError(f"Claim cannot be reviewed in status: {claim.status}")

        values: Dict[str, Any] = {
            "reviewed_by": reviewer_id,
            "reviewed_at": datetime.now(timezone.utc),
            "review_notes": review_notes,
        }
        if approve:
            amount = money(approved_amount if approved_amount is not None else claim.amount)
            if amount <= 0:
                raise ValidationError("Approved amount must be greater than zero")
            if amount > money(claim.amount):
                raise ValidationError("Approved amount cannot exceed claimed amount")
            values.update(status=ClaimStatus.APPROVED.value, approved_amount=amount)
        else:
            values["status"] = ClaimStatus.REJECTED.value

        await self._move(claim, REVIEWABLE_STATUSES, values)

        if claim.incident_id:
            incident = await self.db.get(Incident, claim.incident_id)
            if incident and incident.status != IncidentStatus.RESOLVED.value:
                if approve:
                    incident.status = IncidentStatus.RESOLVED.value
                    incident.resolved_at = datetime.now(timezone.utc)
                else:
                    incident.status = IncidentStatus.INVESTIGATING.value

        await self.db.commit()
        logger.info(f"Claim {claim.claim_number} {claim.status} by {reviewer_id}")

        if approve:
            message = f"Your claim {claim.claim_number} was approved for ${claim.approved_amount:.2f}."
        else:
            message = f"Your claim {claim.claim_number} was rejected."
        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(claim.customer_id),
            type=NotificationType.CLAIM,
            channels=[NotificationChannel.EMAIL],
            title="Claim Reviewed",
            message=message,
            template=f"claim-{claim.status}",
            template_data={
                "claimNumber": claim.claim_number,
                "status": claim.status,
                "approvedAmount": str(claim.approved_amount) if claim.approved_amount is not None else None,
                "notes": review_notes,
            },
        ))
        return claim

    async def process_claim_payment(
        self,
        claim_id: uuid.UUID,
        payment_reference: Optional[str] = None,
    ) -> Claim:
        claim = await self.get_claim(claim_id)
        if claim.status != ClaimStatus.APPROVED.value:
            raise StatePreconditionError(
                f"Claim must be approved before payment can be processed. Current status: {claim.status}"
            )
        if not claim.approved_amount:
            raise ValidationError("Approved amount is missing")

        await self._move(claim, [ClaimStatus.APPROVED.value], {
            "status": ClaimStatus.PAID.value,
            "paid_at": datetime.now(timezone.utc),
            "payment_reference": payment_reference,
        })
        await self.db.commit()
        logger.info(f"Claim {claim.claim_number} paid: {claim.approved_amount}")
        return claim

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def get_claim_stats(self, customer_id: Optional[uuid.UUID] = None) -> Dict[str, Any]:
        query = select(Claim)
        if customer_id:
            query = query.where(Claim.customer_id == customer_id)
        claims = (await self.db.execute(query)).scalars().all()

        stats: Dict[str, Any] = {
            "total": len(claims),
            "submitted": 0,
            "under_review": 0,
            "approved": 0,
            "rejected": 0,
            "paid": 0,
            "total_amount": Decimal("0"),
            "total_approved_amount": Decimal("0"),
            "total_paid_amount": Decimal("0"),
        }
        for claim in claims:
            stats["total_amount"] += Decimal(claim.amount)
            key = claim.status.replace("-", "_")
            if key in stats:
                stats[key] += 1
            if claim.status == ClaimStatus.APPROVED.value and claim.approved_amount:
                stats["total_approved_amount"] += Decimal(claim.approved_amount)
            elif claim.status == ClaimStatus.PAID.value and claim.approved_amount:
                stats["total_paid_amount"] += Decimal(claim.approved_amount)
        return stats

    async def get_pending_review_claims(self) -> List[Claim]:
        result = await self.db.execute(
            select(Claim)
            .where(Claim.status.in_(REVIEWABLE_STATUSES))
            .order_by(Claim.created_at)
        )
        return list(result.scalars().all())

    async def escalate_pending_claims(
        self,
        days_threshold: Optional[int] = None,
        handler: Optional[EscalationHandler] = None,
    ) -> Dict[str, Any]:
        """
        Flag claims waiting for review longer than days_threshold.

        Each overdue claim is logged and passed to handler when one is given.
        """
        days = days_threshold if days_threshold is not None else settings.CLAIM_ESCALATION_DAYS
        threshold = datetime.now(timezone.utc) - timedelta(days=days)

        result = await self.db.execute(
            select(Claim)
            .where(Claim.status.in_(REVIEWABLE_STATUSES), Claim.created_at < threshold)
            .order_by(Claim.created_at)
        )
        escalated = 0
        errors: List[str] = []
        for claim in result.scalars().all():
            try:
                logger.warning(
                    f"Claim {claim.claim_number} has been {claim.status} for more than {days} days"
                )
                if handler:
                    await handler(claim)
                escalated += 1
            except Exception as e:
                message = f"Failed to escalate claim {claim.claim_number}: {e}"
                logger.error(message)
                errors.append(message)

        return {"escalated": escalated, "errors": errors}
