"""
Invoice API Endpoints.

Generation is a staff action; customers may read their own invoices.
"""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, CurrentUser, StaffUser, AdminUser, Notifier
from app.core.exceptions import MarketplaceError, to_http_exception
from app.schemas.billing import InvoiceGenerateRequest, InvoiceResponse, MonthlyInvoiceRunResponse
from app.services.invoice_service import InvoiceService

router = APIRouter()


@router.post("/monthly/run", response_model=MonthlyInvoiceRunResponse, summary="Run Monthly Invoicing")
async def run_monthly_invoicing(db: DB, current_user: AdminUser, notifier: Notifier):
    """Same batch the scheduler runs on the billing day."""
    run = await InvoiceService(db, notifier=notifier).generate_monthly_invoices_for_active_bookings()
    return run.to_dict()


@router.post(
    "/booking/{booking_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice New Pallet Booking"
)
async def generate_booking_invoice(
    booking_id: UUID,
    data: InvoiceGenerateRequest,
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
):
    try:
        return await InvoiceService(db, notifier=notifier).generate_booking_invoice(
            booking_id, data.membership_tier
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/monthly/{booking_id}",
    response_model=InvoiceResponse,
    summary="Invoice Monthly Storage"
)
async def generate_monthly_invoice(
    booking_id: UUID,
    data: InvoiceGenerateRequest,
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
):
    """Returns this month's invoice if one was already issued."""
    try:
        return await InvoiceService(db, notifier=notifier).generate_monthly_storage_invoice(
            booking_id, data.membership_tier
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/annual/{booking_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice Annual Area Rental"
)
async def generate_annual_invoice(
    booking_id: UUID,
    data: InvoiceGenerateRequest,
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
):
    try:
        return await InvoiceService(db, notifier=notifier).generate_annual_rental_invoice(
            booking_id, data.membership_tier
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/service-order/{service_order_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice Completed Service Order"
)
async def generate_service_order_invoice(
    service_order_id: UUID,
    data: InvoiceGenerateRequest,
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
):
    try:
        return await InvoiceService(db, notifier=notifier).generate_service_order_invoice(
            service_order_id, data.membership_tier
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get Invoice")
async def get_invoice(invoice_id: UUID, db: DB, current_user: CurrentUser):
    try:
        invoice = await InvoiceService(db).get_invoice(invoice_id)
    except MarketplaceError as e:
        raise to_http_exception(e)

    if invoice.customer_id != current_user.id and not current_user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this invoice")
    return invoice
