"""
Payment API Endpoints.

Card payments are two-step: pay returns a client secret for checkout, then
confirm settles the payment with the gateway.
"""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, CurrentUser, AdminUser, Notifier, Gateway
from app.core.exceptions import MarketplaceError, to_http_exception
from app.schemas.billing import (
    InvoicePaymentRequest,
    PaymentConfirmRequest,
    RefundRequest,
    PaymentResult,
    PaymentResponse,
    RefundResponse,
    PaymentHistoryResponse,
)
from app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/invoices/{invoice_id}", response_model=PaymentResult, summary="Pay Invoice")
async def pay_invoice(
    invoice_id: UUID,
    data: InvoicePaymentRequest,
    db: DB,
    current_user: CurrentUser,
    gateway: Gateway,
    notifier: Notifier,
):
    try:
        return await PaymentService(db, gateway=gateway, notifier=notifier).process_invoice_payment(
            invoice_id,
            customer_id=current_user.id,
            amount=data.amount,
            use_credit_balance=data.use_credit_balance,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{payment_id}/confirm", response_model=PaymentResponse, summary="Confirm Card Payment")
async def confirm_payment(
    payment_id: UUID,
    data: PaymentConfirmRequest,
    db: DB,
    current_user: CurrentUser,
    gateway: Gateway,
    notifier: Notifier,
):
    service = PaymentService(db, gateway=gateway, notifier=notifier)
    try:
        payment = await service.get_payment(payment_id)
        if payment.customer_id != current_user.id and not current_user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to confirm this payment")
        return await service.confirm_payment(payment_id, data.payment_method_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{payment_id}/refund", response_model=RefundResponse, summary="Refund Payment")
async def refund_payment(
    payment_id: UUID,
    data: RefundRequest,
    db: DB,
    current_user: AdminUser,
    gateway: Gateway,
):
    try:
        return await PaymentService(db, gateway=gateway).process_refund(
            payment_id,
            amount=data.amount,
            reason=data.reason,
            refund_to_credit=data.refund_to_credit,
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.get("/history", response_model=PaymentHistoryResponse, summary="My Payment History")
async def payment_history(db: DB, current_user: CurrentUser, gateway: Gateway):
    service = PaymentService(db, gateway=gateway)
    history = await service.get_payment_history(current_user.id)
    return {**history, "credit_balance": await service.get_credit_balance(current_user.id)}
