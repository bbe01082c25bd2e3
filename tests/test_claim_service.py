"""
Tests for the claims workflow.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from app.core.exceptions import (
    ValidationError,
    StatePreconditionError,
    AuthorizationError,
    NotFoundError,
)
from app.models.booking import Booking
from app.models.claim import Claim, Incident
from app.services.claim_service import ClaimService


@pytest_asyncio.fixture
async def booking(test_db, warehouse, customer_id) -> Booking:
    booking = Booking(
        booking_number="BK-CLAIM-0001",
        customer_id=customer_id,
        warehouse_id=warehouse.id,
        booking_type="pallet",
        pallet_count=12,
        start_date=date.today(),
        total_amount=Decimal("250.00"),
        status="active",
    )
    test_db.add(booking)
    await test_db.commit()
    return booking


@pytest_asyncio.fixture
async def incident(test_db, warehouse, booking) -> Incident:
    incident = Incident(
        warehouse_id=warehouse.id,
        affected_booking_id=booking.id,
        title="Forklift punctured pallet 4",
        severity="high",
    )
    test_db.add(incident)
    await test_db.commit()
    return incident


class TestSubmit:
    """Tests for claim submission."""

    @pytest.mark.asyncio
    async def test_submit_own_booking(self, test_db, booking, customer_id):
        claim = await ClaimService(test_db).submit_claim(
            customer_id, booking.id, "Crushed cartons", Decimal("420.50"), claim_type="damage"
        )

        assert claim.status == "submitted"
        assert claim.claim_number.startswith("CLM-")
        assert claim.amount == Decimal("420.50")

    @pytest.mark.asyncio
    async def test_taken_number_is_skipped(self, test_db, booking, customer_id):
        prefix = f"CLM-{datetime.now(timezone.utc).strftime('%Y%m')}"
        test_db.add(Claim(
            claim_number=f"{prefix}-0002",
            customer_id=customer_id,
            booking_id=booking.id,
            description="Filed by hand",
            amount=Decimal("15"),
            status="submitted",
        ))
        await test_db.commit()

        claim = await ClaimService(test_db).submit_claim(customer_id, booking.id, "Torn wrap", Decimal("40"))

        assert claim.claim_number == f"{prefix}-0003"

    @pytest.mark.asyncio
    async def test_submit_for_someone_elses_booking(self, test_db, booking):
        with pytest.raises(AuthorizationError):
            await ClaimService(test_db).submit_claim(uuid.uuid4(), booking.id, "Missing", Decimal("10"))

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, test_db, booking, customer_id):
        with pytest.raises(ValidationError):
            await ClaimService(test_db).submit_claim(customer_id, booking.id, "Nothing", Decimal("0"))

    @pytest.mark.asyncio
    async def test_incident_must_match_booking(self, test_db, warehouse, booking, customer_id):
        other = Incident(warehouse_id=warehouse.id, title="Roof leak")
        test_db.add(other)
        await test_db.commit()

        with pytest.raises(ValidationError):
            await ClaimService(test_db).submit_claim(
                customer_id, booking.id, "Water damage", Decimal("90"), incident_id=other.id
            )


class TestFromIncident:
    """Tests for claims raised from incidents."""

    @pytest.mark.asyncio
    async def test_one_claim_per_incident(self, test_db, incident, customer_id):
        service = ClaimService(test_db)

        claim = await service.create_claim_from_incident(incident.id, customer_id, Decimal("300"))
        assert claim.incident_id == incident.id
        assert claim.description == "Claim related to incident: Forklift punctured pallet 4"

        with pytest.raises(StatePreconditionError):
            await service.create_claim_from_incident(incident.id, customer_id, Decimal("300"))

    @pytest.mark.asyncio
    async def test_incident_without_booking(self, test_db, warehouse, customer_id):
        incident = Incident(warehouse_id=warehouse.id, title="Power outage")
        test_db.add(incident)
        await test_db.commit()

        with pytest.raises(ValidationError):
            await ClaimService(test_db).create_claim_from_incident(incident.id, customer_id, Decimal("50"))

    @pytest.mark.asyncio
    async def test_wrong_customer(self, test_db, incident):
        with pytest.raises(AuthorizationError):
            await ClaimService(test_db).create_claim_from_incident(incident.id, uuid.uuid4(), Decimal("50"))


class TestReview:
    """Tests for review and payout."""

    @pytest.mark.asyncio
    async def test_approve_resolves_incident_then_pay(self, test_db, incident, customer_id, notifier):
        service = ClaimService(test_db, notifier=notifier)
        claim = await service.create_claim_from_incident(incident.id, customer_id, Decimal("300"))
        reviewer = uuid.uuid4()

        await service.start_review(claim.id, reviewer)
        approved = await service.review_claim(claim.id, reviewer, approve=True, approved_amount=Decimal("250"))

        assert approved.status == "approved"
        assert approved.approved_amount == Decimal("250.00")
        await test_db.refresh(incident)
        assert incident.status == "resolved"
        assert notifier.titles() == ["Claim Reviewed"]

        paid = await service.process_claim_payment(claim.id, payment_reference="ACH-5521")
        assert paid.status == "paid"
        assert paid.paid_at is not None

    @pytest.mark.asyncio
    async def test_approved_amount_capped(self, test_db, booking, customer_id):
        service = ClaimService(test_db)
        claim = await service.submit_claim(customer_id, booking.id, "Broken shelf", Decimal("100"))

        with pytest.raises(ValidationError):
            await service.review_claim(claim.id, uuid.uuid4(), approve=True, approved_amount=Decimal("100.01"))

    @pytest.mark.asyncio
    async def test_reject_sends_incident_back(self, test_db, incident, customer_id):
        service = ClaimService(test_db)
        claim = await service.create_claim_from_incident(incident.id, customer_id, Decimal("300"))

        rejected = await service.review_claim(claim.id, uuid.uuid4(), approve=False, review_notes="Pre-existing")

        assert rejected.status == "rejected"
        await test_db.refresh(incident)
        assert incident.status == "investigating"

        with pytest.raises(StatePreconditionError):
            await service.process_claim_payment(claim.id)

    @pytest.mark.asyncio
    async def test_review_started_once(self, test_db, booking, customer_id):
        service = ClaimService(test_db)
        claim = await service.submit_claim(customer_id, booking.id, "Dented drums", Decimal("75"))
        await service.start_review(claim.id, uuid.uuid4())

        with pytest.raises(StatePreconditionError):
            await service.start_review(claim.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_claim(self, test_db):
        with pytest.raises(NotFoundError):
            await ClaimService(test_db).start_review(uuid.uuid4(), uuid.uuid4())


class TestReporting:
    """Tests for stats, review queue and escalation."""

    @pytest.mark.asyncio
    async def test_stats(self, test_db, booking, customer_id):
        service = ClaimService(test_db)
        first = await service.submit_claim(customer_id, booking.id, "A", Decimal("100"))
        await service.submit_claim(customer_id, booking.id, "B", Decimal("50"))
        await service.review_claim(first.id, uuid.uuid4(), approve=True)

        stats = await service.get_claim_stats(customer_id)

        assert stats["total"] == 2
        assert stats["submitted"] == 1
        assert stats["approved"] == 1
        assert stats["total_amount"] == Decimal("150.00")
        assert stats["total_approved_amount"] == Decimal("100.00")
        assert (await service.get_claim_stats(uuid.uuid4()))["total"] == 0

    @pytest.mark.asyncio
    async def test_pending_review_queue(self, test_db, booking, customer_id):
        service = ClaimService(test_db)
        first = await service.submit_claim(customer_id, booking.id, "A", Decimal("100"))
        await service.submit_claim(customer_id, booking.id, "B", Decimal("50"))
        await service.review_claim(first.id, uuid.uuid4(), approve=False)

        pending = await service.get_pending_review_claims()

        assert [c.description for c in pending] == ["B"]

    @pytest.mark.asyncio
    async def test_escalates_old_claims(self, test_db, booking, customer_id):
        test_db.add_all([
            Claim(
                claim_number="CLM-OLD-0001",
                customer_id=customer_id,
                booking_id=booking.id,
                description="Waiting since last month",
                amount=Decimal("80"),
                status="under-review",
                created_at=datetime.now(timezone.utc) - timedelta(days=10),
            ),
            Claim(
                claim_number="CLM-NEW-0001",
                customer_id=customer_id,
                booking_id=booking.id,
                description="Filed today",
                amount=Decimal("20"),
                status="submitted",
            ),
        ])
        await test_db.commit()
        handled = []

        async def handler(claim):
            handled.append(claim.claim_number)

        result = await ClaimService(test_db).escalate_pending_claims(days_threshold=7, handler=handler)

        assert result == {"escalated": 1, "errors": []}
        assert handled == ["CLM-OLD-0001"]
