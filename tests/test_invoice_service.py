"""
Tests for InvoiceService.

Every invoice carries 8% tax and is due 30 days after creation.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from app.core.exceptions import ValidationError, StatePreconditionError, NotFoundError
from app.models.booking import Booking
from app.models.invoice import Invoice, ServiceOrder
from app.models.membership import MembershipTier
from app.services.invoice_service import InvoiceService


async def make_booking(test_db, warehouse, customer_id, status="active", booking_type="pallet", **kwargs):
    values = {"pallet_count": 10} if booking_type == "pallet" else {"area_sq_ft": 40000}
    values.update(kwargs)
    booking = Booking(
        booking_number=f"BK-TEST-{uuid.uuid4().hex[:6]}",
        customer_id=customer_id,
        customer_name="Casey Customer",
        customer_email="casey@example.com",
        warehouse_id=warehouse.id,
        booking_type=booking_type,
        start_date=date.today(),
        total_amount=Decimal("0"),
        status=status,
        **values,
    )
    test_db.add(booking)
    await test_db.commit()
    return booking


class TestBookingInvoice:
    """Tests for the first-month booking invoice."""

    @pytest.mark.asyncio
    async def test_itemised_with_tax_and_due_date(self, test_db, warehouse, customer_id, notifier):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending", pallet_count=100)

        invoice = await InvoiceService(test_db, notifier=notifier).generate_booking_invoice(booking.id)

        assert invoice.invoice_number.startswith("INV-")
        assert invoice.subtotal == Decimal("1912.50")
        assert invoice.tax == Decimal("153.00")
        assert invoice.total == Decimal("2065.50")
        assert invoice.due_date == datetime.now(timezone.utc).date() + timedelta(days=30)
        assert invoice.status == "pending"
        descriptions = [item["description"] for item in invoice.items]
        assert descriptions == ["Pallet In", "Storage (1 month)", "Volume Discount (15%)"]
        assert invoice.items[-1]["total"] == -337.5
        assert notifier.titles() == ["New Invoice"]

    @pytest.mark.asyncio
    async def test_explicit_tier_discount(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending", pallet_count=10)

        invoice = await InvoiceService(test_db).generate_booking_invoice(booking.id, MembershipTier.SILVER)

        # 10 x $5 + 10 x $17.50 = 225, less 5%
        assert invoice.subtotal == Decimal("213.75")
        assert invoice.items[-1]["description"] == "Membership Discount (5%)"

    @pytest.mark.asyncio
    async def test_area_booking_first_month(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending", booking_type="area-rental")

        invoice = await InvoiceService(test_db).generate_booking_invoice(booking.id)

        # 40,000 sq ft at $20/sq ft/yr for one month
        assert invoice.subtotal == Decimal("66666.67")
        assert invoice.tax == Decimal("5333.33")
        assert invoice.total == Decimal("72000.00")
        assert invoice.booking_id == booking.id
        assert [item["description"] for item in invoice.items] == ["Area Rental (1 month)"]

    @pytest.mark.asyncio
    async def test_booking_without_quantity_rejected(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending", pallet_count=None)

        with pytest.raises(ValidationError):
            await InvoiceService(test_db).generate_booking_invoice(booking.id)

    @pytest.mark.asyncio
    async def test_numbers_are_sequential(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending")
        service = InvoiceService(test_db)

        first = await service.generate_booking_invoice(booking.id)
        second = await service.generate_booking_invoice(booking.id)

        assert first.invoice_number.endswith("-0001")
        assert second.invoice_number.endswith("-0002")

    @pytest.mark.asyncio
    async def test_taken_number_is_skipped(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="pending")
        prefix = f"INV-{datetime.now(timezone.utc).strftime('%Y%m')}"
        test_db.add(Invoice(
            invoice_number=f"{prefix}-0002",
            customer_id=uuid.uuid4(),
            items=[],
            subtotal=Decimal("1.00"),
            tax=Decimal("0.08"),
            total=Decimal("1.08"),
            due_date=date.today(),
            status="pending",
        ))
        await test_db.commit()

        invoice = await InvoiceService(test_db).generate_booking_invoice(booking.id)

        assert invoice.invoice_number == f"{prefix}-0003"
        count = await test_db.scalar(select(func.count(Invoice.id)))
        assert count == 2

    @pytest.mark.asyncio
    async def test_unknown_booking(self, test_db):
        with pytest.raises(NotFoundError):
            await InvoiceService(test_db).generate_booking_invoice(uuid.uuid4())


class TestMonthlyInvoice:
    """Tests for recurring storage invoices."""

    @pytest.mark.asyncio
    async def test_monthly_storage(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id)

        invoice = await InvoiceService(test_db).generate_monthly_storage_invoice(booking.id)

        assert invoice.subtotal == Decimal("175.00")
        assert invoice.tax == Decimal("14.00")
        assert invoice.total == Decimal("189.00")
        assert invoice.items[0]["description"] == "Monthly Storage (10 pallets)"

    @pytest.mark.asyncio
    async def test_one_invoice_per_month(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id)
        service = InvoiceService(test_db)

        first = await service.generate_monthly_storage_invoice(booking.id)
        second = await service.generate_monthly_storage_invoice(booking.id)

        assert first.id == second.id
        count = await test_db.scalar(select(func.count(Invoice.id)))
        assert count == 1

    @pytest.mark.asyncio
    async def test_requires_active_booking(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, status="confirmed")

        with pytest.raises(StatePreconditionError):
            await InvoiceService(test_db).generate_monthly_storage_invoice(booking.id)

    @pytest.mark.asyncio
    async def test_batch_skips_already_invoiced(self, test_db, warehouse, customer_id):
        invoiced = await make_booking(test_db, warehouse, customer_id)
        await make_booking(test_db, warehouse, uuid.uuid4(), pallet_count=4)
        await make_booking(test_db, warehouse, customer_id, status="completed")
        service = InvoiceService(test_db)
        await service.generate_monthly_storage_invoice(invoiced.id)

        run = await service.generate_monthly_invoices_for_active_bookings()

        assert run.generated == 1
        assert run.skipped == 1
        assert run.errors == []


class TestAnnualAndServiceInvoices:
    """Tests for area rental and service order invoices."""

    @pytest.mark.asyncio
    async def test_annual_rental(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id, booking_type="area-rental")

        invoice = await InvoiceService(test_db).generate_annual_rental_invoice(booking.id)

        assert invoice.subtotal == Decimal("800000.00")
        assert invoice.tax == Decimal("64000.00")
        assert invoice.items[0]["description"] == "Area Rental (12 months)"

    @pytest.mark.asyncio
    async def test_annual_rental_requires_area_booking(self, test_db, warehouse, customer_id):
        booking = await make_booking(test_db, warehouse, customer_id)

        with pytest.raises(ValidationError):
            await InvoiceService(test_db).generate_annual_rental_invoice(booking.id)

    @pytest.mark.asyncio
    async def test_service_order_with_static_tier_discount(self, test_db, warehouse, customer_id):
        order = ServiceOrder(
            order_number="SO-0001",
            customer_id=customer_id,
            warehouse_id=warehouse.id,
            title="Relabeling",
            items=[{"description": "Labeling", "quantity": 10, "unit_price": 2.5}],
            status="completed",
        )
        test_db.add(order)
        await test_db.commit()

        invoice = await InvoiceService(test_db).generate_service_order_invoice(order.id, MembershipTier.GOLD)

        assert invoice.subtotal == Decimal("22.50")
        assert invoice.tax == Decimal("1.80")
        assert invoice.total == Decimal("24.30")
        assert invoice.service_order_id == order.id
        assert invoice.notes == "Relabeling"

    @pytest.mark.asyncio
    async def test_service_order_must_be_completed(self, test_db, customer_id):
        order = ServiceOrder(order_number="SO-0002", customer_id=customer_id, title="Kitting", status="in-progress")
        test_db.add(order)
        await test_db.commit()

        with pytest.raises(StatePreconditionError):
            await InvoiceService(test_db).generate_service_order_invoice(order.id)
