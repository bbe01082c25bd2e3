"""
Claims API Endpoints.

Customers submit claims; staff review and pay them.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import DB, CurrentUser, StaffUser, AdminUser, Notifier
from app.core.exceptions import MarketplaceError, to_http_exception
from app.schemas.operations import (
    ClaimSubmit,
    ClaimFromIncident,
    ClaimReview,
    ClaimPayment,
    ClaimResponse,
    ClaimStatsResponse,
    EscalationResponse,
)
from app.services.claim_service import ClaimService

router = APIRouter()


@router.post("", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED, summary="Submit Claim")
async def submit_claim(data: ClaimSubmit, db: DB, current_user: CurrentUser):
    try:
        return await ClaimService(db).submit_claim(
            customer_id=current_user.id,
            booking_id=data.booking_id,
            description=data.description,
            amount=data.amount,
            claim_type=data.claim_type,
            incident_id=data.incident_id,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/from-incident/{incident_id}",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Claim For An Incident"
)
async def claim_from_incident(incident_id: UUID, data: ClaimFromIncident, db: DB, current_user: CurrentUser):
    try:
        return await ClaimService(db).create_claim_from_incident(
            incident_id,
            customer_id=current_user.id,
            amount=data.amount,
            description=data.description,
            claim_type=data.claim_type,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.get("/stats", response_model=ClaimStatsResponse, summary="Claim Statistics")
async def claim_stats(
    db: DB,
    current_user: CurrentUser,
    customer_id: Optional[UUID] = Query(None, description="Staff only; customers always see their own"),
):
    if not current_user.is_staff:
        customer_id = current_user.id
    return await ClaimService(db).get_claim_stats(customer_id)


@router.get("/pending-review", response_model=List[ClaimResponse], summary="Claims Awaiting Review")
async def pending_review(db: DB, current_user: StaffUser):
    return await ClaimService(db).get_pending_review_claims()


@router.post("/escalate", response_model=EscalationResponse, summary="Escalate Overdue Claims")
async def escalate_claims(
    db: DB,
    current_user: AdminUser,
    days_threshold: Optional[int] = Query(None, ge=0),
):
    return await ClaimService(db).escalate_pending_claims(days_threshold)


@router.get("/{claim_id}", response_model=ClaimResponse, summary="Get Claim")
async def get_claim(claim_id: UUID, db: DB, current_user: CurrentUser):
    try:
        claim = await ClaimService(db).get_claim(claim_id)
    except MarketplaceError as e:
        raise to_http_exception(e)

    if claim.customer_id != current_user.id and not current_user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this claim")
    return claim


@router.post("/{claim_id}/start-review", response_model=ClaimResponse, summary="Start Review")
async def start_review(claim_id: UUID, db: DB, current_user: StaffUser):
    try:
        return await ClaimService(db).start_review(claim_id, reviewer_id=current_user.id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{claim_id}/review", response_model=ClaimResponse, summary="Approve Or Reject Claim")
async def review_claim(claim_id: UUID, data: ClaimReview, db: DB, current_user: StaffUser, notifier: Notifier):
    try:
        return await ClaimService(db, notifier=notifier).review_claim(
            claim_id,
            reviewer_id=current_user.id,
            approve=data.approve,
            approved_amount=data.approved_amount,
            review_notes=data.review_notes,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{claim_id}/pay", response_model=ClaimResponse, summary="Pay Approved Claim")
async def pay_claim(claim_id: UUID, data: ClaimPayment, db: DB, current_user: AdminUser):
    try:
        return await ClaimService(db).process_claim_payment(claim_id, data.payment_reference)
    except MarketplaceError as e:
        raise to_http_exception(e)
