"""Invoice Service for storage billing.

Invoices are generated for:
- New bookings (first month, itemised from the pricing breakdown)
- Monthly storage of active pallet bookings (recurring, once per month)
- Annual area rentals (12 months up front)
- Completed service orders

Every invoice carries a flat sales tax (Settings.INVOICE_TAX_RATE) and is due
Settings.INVOICE_DUE_DAYS after creation.
"""
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, date, timedelta
from decimal import Decimal
from typing import Optional, Dict, List, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, StatePreconditionError, NotFoundError
from app.database import add_numbered
from app.models.booking import Booking, BookingStatus
from app.models.invoice import Invoice, InvoiceStatus, ServiceOrder, ServiceOrderStatus
from app.models.membership import MembershipTier
from app.models.warehouse import StorageType
from app.services.membership_service import MembershipService, static_discount_percent
from app.services.notification_service import (
    NotificationService,
    NotificationRequest,
    NotificationType,
    NotificationChannel,
    notify_safely,
)
from app.services.pricing_engine import (
    PricingEngine,
    PricingResult,
    PalletPricingInput,
    AreaRentalPricingInput,
    money,
    ZERO,
    HUNDRED,
)


logger = logging.getLogger(__name__)

MONTHLY_STORAGE_LABEL = "Monthly Storage"


def _line(description: str, quantity: int, unit_price: Decimal, total: Decimal) -> Dict[str, Any]:
    # JSON column: amounts stored as plain numbers
    return {
        "description": description,
        "quantity": quantity,
        "unit_price": float(money(unit_price)),
        "total": float(money(total)),
    }


def _format_percent(value: Decimal) -> str:
    return f"{Decimal(value).normalize():f}"


@dataclass
class MonthlyInvoiceRun:
    """Outcome of a batch monthly invoicing run."""
    generated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"generated": self.generated, "skipped": self.skipped, "errors": self.errors}


class InvoiceService:
    """Service for invoice generation."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationService] = None,
        pricing_engine: Optional[PricingEngine] = None,
        membership_service: Optional[MembershipService] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.membership = membership_service or MembershipService(db)
        self.pricing = pricing_engine or PricingEngine(db, membership_service=self.membership)

    @property
    def tax_rate(self) -> Decimal:
        return Decimal(str(settings.INVOICE_TAX_RATE))

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def _get_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def _resolve_tier(
        self,
        customer_id: uuid.UUID,
        membership_tier: Optional[MembershipTier],
    ) -> MembershipTier:
        if membership_tier:
            return MembershipTier(membership_tier)
        return await self.membership.get_customer_tier(customer_id)

    async def generate_invoice_number(self, offset: int = 0) -> str:
        """INV-YYYYMM-NNNN, sequential within the month."""
        prefix = f"INV-{datetime.now(timezone.utc).strftime('%Y%m')}"
        count = await self.db.scalar(
            select(func.count(Invoice.id)).where(Invoice.invoice_number.like(f"{prefix}%"))
        ) or 0
        return f"{prefix}-{count + 1 + offset:04d}"

    def _pricing_lines(self, pricing: PricingResult) -> List[Dict[str, Any]]:
        items = [_line(b.item, b.quantity, b.unit_price, b.total) for b in pricing.breakdown]
        if pricing.volume_discount > 0:
            items.append(_line(
                f"Volume Discount ({_format_percent(pricing.volume_discount_percent)}%)",
                1, -pricing.volume_discount, -pricing.volume_discount,
            ))
        if pricing.membership_discount > 0:
            items.append(_line(
                f"Membership Discount ({_format_percent(pricing.membership_discount_percent)}%)",
                1, -pricing.membership_discount, -pricing.membership_discount,
            ))
        return items

    async def _create_invoice(
        self,
        *,
        customer_id: uuid.UUID,
        customer_name: Optional[str],
        customer_email: Optional[str],
        items: List[Dict[str, Any]],
        subtotal: Decimal,
        booking_id: Optional[uuid.UUID] = None,
        service_order_id: Optional[uuid.UUID] = None,
        warehouse_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        notify: bool = True,
    ) -> Invoice:
        subtotal = money(subtotal)
        tax = money(subtotal * self.tax_rate)
        due_date = datetime.now(timezone.utc).date() + timedelta(days=settings.INVOICE_DUE_DAYS)

        invoice = Invoice(
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            booking_id=booking_id,
            service_order_id=service_order_id,
            warehouse_id=warehouse_id,
            items=items,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            due_date=due_date,
            status=InvoiceStatus.PENDING.value,
            notes=notes,
        )
        await add_numbered(self.db, invoice, "invoice_number", self.generate_invoice_number)
        await self.db.commit()

        logger.info(f"Generated invoice {invoice.invoice_number} for customer {customer_id}: {invoice.total}")

        if notify:
            await notify_safely(self.notifier, NotificationRequest(
                user_id=str(customer_id),
                type=NotificationType.INVOICE,
                channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
                title="New Invoice",
                message=(
                    f"A new invoice #{invoice.invoice_number} has been generated for "
                    f"${invoice.total:.2f}. Due date: {due_date.isoformat()}."
                ),
                template="invoice-created",
                template_data={
                    "invoiceNumber": invoice.invoice_number,
                    "amount": f"${invoice.total:.2f}",
                    "dueDate": due_date.isoformat(),
                    "status": "Pending",
                    "customerName": customer_name,
                },
            ))
        return invoice

    # =========================================================================
    # BOOKING INVOICES
    # =========================================================================

    async def generate_booking_invoice(
        self,
        booking_id: uuid.UUID,
        membership_tier: Optional[MembershipTier] = None,
    ) -> Invoice:
        """
        First-month invoice for a new booking.

        Pallet bookings are itemised with pallet-in, storage and volume
        discount lines; area rentals with one month of rent.
        """
        booking = await self._get_booking(booking_id)
        tier = await self._resolve_tier(booking.customer_id, membership_tier)

        if booking.booking_type == StorageType.PALLET.value and booking.pallet_count:
            pricing = await self.pricing.calculate_pallet_pricing(PalletPricingInput(
                warehouse_id=booking.warehouse_id,
                pallet_count=booking.pallet_count,
                months=1,
                membership_tier=tier,
            ))
        elif booking.booking_type == StorageType.AREA_RENTAL.value and booking.area_sq_ft:
            pricing = await self.pricing.calculate_area_rental_pricing(AreaRentalPricingInput(
                warehouse_id=booking.warehouse_id,
                area_sq_ft=booking.area_sq_ft,
                months=1,
                membership_tier=tier,
            ))
        else:
            raise ValidationError(
                "Booking is missing its pallet count or area",
                {"booking_id": str(booking.id), "booking_type": booking.booking_type},
            )

        return await self._create_invoice(
            customer_id=booking.customer_id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            items=self._pricing_lines(pricing),
            subtotal=pricing.final_amount,
            booking_id=booking.id,
            warehouse_id=booking.warehouse_id,
        )

    async def find_monthly_invoice(self, booking: Booking, today: Optional[date] = None) -> Optional[Invoice]:
        """Monthly storage invoice already issued for this booking this calendar month."""
        today = today or datetime.now(timezone.utc).date()
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.booking_id == booking.id)
            .order_by(Invoice.created_at.desc())
        )
        for invoice in result.scalars().all():
            created = invoice.created_at
            if created is None or (created.year, created.month) != (today.year, today.month):
                continue
            if any(MONTHLY_STORAGE_LABEL in (item.get("description") or "") for item in invoice.items or []):
                return invoice
        return None

    async def generate_monthly_storage_invoice(
        self,
        booking_id: uuid.UUID,
        membership_tier: Optional[MembershipTier] = None,
    ) -> Invoice:
        """
        Recurring storage invoice for an active pallet booking.

        Idempotent per calendar month: a second call in the same month returns
        the invoice already issued.
        """
        booking = await self._get_booking(booking_id)
        if booking.booking_type != StorageType.PALLET.value or not booking.pallet_count:
            raise ValidationError("Booking is not a pallet booking")
        if booking.status != BookingStatus.ACTIVE.value:
            raise StatePreconditionError(
                f"Booking is not active. Current status: {booking.status}",
                {"booking_id": str(booking.id), "current_status": booking.status},
            )

        existing = await self.find_monthly_invoice(booking)
        if existing:
            logger.info(f"Monthly invoice {existing.invoice_number} already issued for booking {booking.booking_number}")
            return existing

        tier = await self._resolve_tier(booking.customer_id, membership_tier)
        plan = await self.pricing.get_monthly_pallet_rate(booking.warehouse_id)
        discount_percent = await self.pricing.membership_discount_percent(tier)

        storage_cost = booking.pallet_count * plan.monthly_rate
        membership_discount = storage_cost * discount_percent / HUNDRED if discount_percent > 0 else ZERO

        items = [_line(
            f"{MONTHLY_STORAGE_LABEL} ({booking.pallet_count} pallets)",
            booking.pallet_count,
            plan.monthly_rate,
            storage_cost,
        )]
        if membership_discount > 0:
            items.append(_line(
                f"Membership Discount ({_format_percent(discount_percent)}%)",
                1, -membership_discount, -membership_discount,
            ))

        return await self._create_invoice(
            customer_id=booking.customer_id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            items=items,
            subtotal=max(ZERO, storage_cost - membership_discount),
            booking_id=booking.id,
            warehouse_id=booking.warehouse_id,
        )

    async def generate_annual_rental_invoice(
        self,
        booking_id: uuid.UUID,
        membership_tier: Optional[MembershipTier] = None,
    ) -> Invoice:
        """Twelve months of area rental, invoiced up front."""
        booking = await self._get_booking(booking_id)
        if booking.booking_type != StorageType.AREA_RENTAL.value or not booking.area_sq_ft:
            raise ValidationError("Booking is not an area rental booking")

        tier = await self._resolve_tier(booking.customer_id, membership_tier)
        pricing = await self.pricing.calculate_area_rental_pricing(AreaRentalPricingInput(
            warehouse_id=booking.warehouse_id,
            area_sq_ft=booking.area_sq_ft,
            months=12,
            membership_tier=tier,
        ))

        return await self._create_invoice(
            customer_id=booking.customer_id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            items=self._pricing_lines(pricing),
            subtotal=pricing.final_amount,
            booking_id=booking.id,
            warehouse_id=booking.warehouse_id,
        )

    async def generate_service_order_invoice(
        self,
        service_order_id: uuid.UUID,
        membership_tier: Optional[MembershipTier] = None,
    ) -> Invoice:
        """Invoice a completed service order; the static tier discount applies."""
        order = await self.db.get(ServiceOrder, service_order_id)
        if not order:
            raise NotFoundError("Service order", service_order_id)
        if order.status != ServiceOrderStatus.COMPLETED.value:
            raise StatePreconditionError("Can only generate invoice for completed service orders")

        items = []
        subtotal = ZERO
        for item in order.items or []:
            quantity = int(item.get("quantity", 1))
            unit_price = Decimal(str(item.get("unit_price", 0)))
            total = unit_price * quantity
            subtotal += total
            items.append(_line(item.get("description", "Service"), quantity, unit_price, total))

        discount_amount = ZERO
        if membership_tier:
            tier = MembershipTier(membership_tier)
            discount_percent = static_discount_percent(tier)
            discount_amount = subtotal * discount_percent / HUNDRED
            if discount_amount > 0:
                items.append(_line(
                    f"Membership Discount ({tier.value} - {_format_percent(discount_percent)}%)",
                    1, -discount_amount, -discount_amount,
                ))

        return await self._create_invoice(
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            items=items,
            subtotal=max(ZERO, subtotal - discount_amount),
            service_order_id=order.id,
            warehouse_id=order.warehouse_id,
            notes=order.title,
        )

    # =========================================================================
    # BATCH
    # =========================================================================

    async def generate_monthly_invoices_for_active_bookings(self) -> MonthlyInvoiceRun:
        """
        Issue this month's storage invoice for every active pallet booking.

        A failure on one booking is recorded and the run continues.
        """
        run = MonthlyInvoiceRun()
        result = await self.db.execute(
            select(Booking.id, Booking.booking_number, Booking.customer_id).where(
                Booking.booking_type == StorageType.PALLET.value,
                Booking.status == BookingStatus.ACTIVE.value,
            )
        )
        bookings = result.all()

        for booking_id, booking_number, customer_id in bookings:
            try:
                booking = await self._get_booking(booking_id)
                if await self.find_monthly_invoice(booking):
                    run.skipped += 1
                    continue
                tier = await self.membership.get_customer_tier(customer_id)
                await self.generate_monthly_storage_invoice(booking_id, membership_tier=tier)
                run.generated += 1
            except Exception as e:
                await self.db.rollback()
                message = f"Failed to generate invoice for booking {booking_number}: {e}"
                logger.error(message)
                run.errors.append(message)

        logger.info(
            f"Monthly invoicing: {run.generated} generated, {run.skipped} skipped, {len(run.errors)} errors"
        )
        return run
