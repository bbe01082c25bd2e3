"""
API tests through the ASGI app.

Uses the client fixture, which routes every request through the test session.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.models.invoice import Invoice


def booking_body(warehouse, **overrides):
    body = {
        "warehouse_id": str(warehouse.id),
        "booking_type": "pallet",
        "pallet_count": 10,
        "start_date": date.today().isoformat(),
        "initial_status": "pending",
    }
    body.update(overrides)
    return body


class TestHealth:
    """Tests for the unauthenticated endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"] == "connected"
        assert data["jobs"] == []

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert "Welcome" in response.json()["message"]


class TestBookingsApi:
    """Tests for booking endpoints and their permissions."""

    @pytest.mark.asyncio
    async def test_requires_token(self, client, warehouse):
        response = await client.post("/api/v1/bookings", json=booking_body(warehouse))

        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_rejects_garbage_token(self, client, warehouse):
        response = await client.post(
            "/api/v1/bookings",
            json=booking_body(warehouse),
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_and_confirm(self, client, warehouse, customer_id, make_token, notifier):
        customer = make_token(customer_id, email="casey@example.com")
        admin = make_token(uuid.uuid4(), role="admin")

        created = await client.post("/api/v1/bookings", json=booking_body(warehouse), headers=customer)
        assert created.status_code == 201
        booking = created.json()
        assert booking["status"] == "pending"
        assert booking["customer_id"] == str(customer_id)
        assert booking["customer_email"] == "casey@example.com"

        path = f"/api/v1/bookings/{booking['id']}/confirm"
        assert (await client.post(path, headers=customer)).status_code == 403

        confirmed = await client.post(path, headers=admin)
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"
        assert confirmed.json()["reserved_zone_id"] is not None
        assert "Booking Confirmed" in notifier.titles()

        again = await client.post(path, headers=admin)
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_bad_request_maps_to_400(self, client, warehouse, customer_id, make_token):
        response = await client.post(
            "/api/v1/bookings",
            json=booking_body(warehouse, booking_type="area-rental", pallet_count=None, area_sq_ft=1000),
            headers=make_token(customer_id),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_other_customers_booking_hidden(self, client, warehouse, customer_id, make_token):
        created = await client.post("/api/v1/bookings", json=booking_body(warehouse), headers=make_token(customer_id))
        booking_id = created.json()["id"]

        stranger = await client.get(f"/api/v1/bookings/{booking_id}", headers=make_token(uuid.uuid4()))
        staff = await client.get(
            f"/api/v1/bookings/{booking_id}", headers=make_token(uuid.uuid4(), role="warehouse_staff")
        )

        assert stranger.status_code == 403
        assert staff.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_booking(self, client, make_token):
        response = await client.get(f"/api/v1/bookings/{uuid.uuid4()}", headers=make_token(uuid.uuid4()))

        assert response.status_code == 404


class TestPricingApi:
    """Tests for quotes and capacity queries."""

    @pytest.mark.asyncio
    async def test_pallet_quote(self, client, customer_id, make_token):
        response = await client.post(
            "/api/v1/pricing/pallet",
            json={"pallet_count": 100},
            headers=make_token(customer_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["final_amount"])) == Decimal("1912.50")
        assert data["rate_source"] == "default"

    @pytest.mark.asyncio
    async def test_area_quote_below_minimum(self, client, customer_id, make_token):
        response = await client.post(
            "/api/v1/pricing/area-rental",
            json={"area_sq_ft": 1000},
            headers=make_token(customer_id),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_capacity_check(self, client, warehouse, make_token):
        response = await client.get(
            "/api/v1/capacity/check",
            params={"warehouse_id": str(warehouse.id), "storage_type": "pallet", "required_amount": 50},
            headers=make_token(uuid.uuid4()),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["available"] is True
        assert data["required"] == 50


class TestBillingAndClaimsApi:
    """Tests for invoice visibility and claim stats."""

    @pytest.mark.asyncio
    async def test_invoice_visible_to_owner_only(self, client, test_db, customer_id, make_token):
        invoice = Invoice(
            invoice_number="INV-API-0001",
            customer_id=customer_id,
            items=[],
            subtotal=Decimal("10.00"),
            tax=Decimal("0.80"),
            total=Decimal("10.80"),
            due_date=date.today() + timedelta(days=30),
            status="pending",
        )
        test_db.add(invoice)
        await test_db.commit()

        owner = await client.get(f"/api/v1/invoices/{invoice.id}", headers=make_token(customer_id))
        stranger = await client.get(f"/api/v1/invoices/{invoice.id}", headers=make_token(uuid.uuid4()))

        assert owner.status_code == 200
        assert owner.json()["invoice_number"] == "INV-API-0001"
        assert stranger.status_code == 403

    @pytest.mark.asyncio
    async def test_claim_stats_for_customer(self, client, customer_id, make_token):
        response = await client.get("/api/v1/claims/stats", headers=make_token(customer_id))

        assert response.status_code == 200
        assert response.json()["total"] == 0
