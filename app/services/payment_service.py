"""
Payment Service for invoice payments, credit balances and refunds.

Flow:
1. process_invoice_payment() - credit balance first, remainder via the gateway
2. confirm_payment() - after client-side checkout, settle with the gateway
3. process_refund() - back to the card or into the credit balance

A succeeded payment marks its invoice paid, adds to the customer's lifetime
spend (membership tier) and advances the invoice's booking to confirmed.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ValidationError,
    StatePreconditionError,
    AuthorizationError,
    NotFoundError,
    ExternalServiceError,
)
from app.models.booking import Booking, BookingStatus
from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import (
    Payment,
    PaymentStatus,
    PaymentMethod,
    PaymentTransaction,
    TransactionType,
    Refund,
    RefundStatus,
    CustomerCredit,
)
from app.services.booking_service import BookingService
from app.services.membership_service import MembershipService
from app.services.notification_service import (
    NotificationService,
    NotificationRequest,
    NotificationType,
    NotificationChannel,
    notify_safely,
)
from app.services.payment_gateway import PaymentGateway, get_payment_gateway
from app.services.pricing_engine import money, ZERO

logger = logging.getLogger(__name__)


# Gateway intent status -> local payment status
INTENT_STATUS_MAP: Dict[str, str] = {
    "succeeded": PaymentStatus.SUCCEEDED.value,
    "processing": PaymentStatus.PROCESSING.value,
    "requires_action": PaymentStatus.PROCESSING.value,
    "canceled": PaymentStatus.FAILED.value,
    "requires_payment_method": PaymentStatus.FAILED.value,
}

REFUNDABLE_STATUSES = [PaymentStatus.SUCCEEDED.value, PaymentStatus.PARTIALLY_REFUNDED.value]

# Card payments the gateway has not settled yet
CONFIRMABLE_STATUSES = [PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value]


class PaymentService:
    """Invoice payments over credit balance and card."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationService] = None,
        membership_service: Optional[MembershipService] = None,
        booking_service: Optional[BookingService] = None,
    ):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.notifier = notifier
        self.membership = membership_service or MembershipService(db)
        self.bookings = booking_service or BookingService(db, notifier=notifier, membership_service=self.membership)
        self.currency = settings.PAYMENT_CURRENCY

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_payment(self, payment_id: uuid.UUID) -> Payment:
        payment = await self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def get_credit_balance(self, customer_id: uuid.UUID) -> Decimal:
        credit = await self.db.get(CustomerCredit, customer_id)
        if not credit:
            return ZERO
        await self.db.refresh(credit)
        return Decimal(credit.credit_balance)

    # =========================================================================
    # CREDIT BALANCE
    # =========================================================================

    async def _deduct_credit(self, customer_id: uuid.UUID, amount: Decimal) -> None:
        """Atomically take amount from the balance; never goes negative."""
        result = await self.db.execute(
            update(CustomerCredit)
            .where(
                CustomerCredit.customer_id == customer_id,
                CustomerCredit.credit_balance >= amount,
            )
            .values(credit_balance=CustomerCredit.credit_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError(
                "Credit balance is insufficient",
                {"customer_id": str(customer_id), "requested": str(amount)},
            )

    async def _add_credit(self, customer_id: uuid.UUID, amount: Decimal) -> None:
        credit = await self.db.get(CustomerCredit, customer_id)
        if credit is None:
            self.db.add(CustomerCredit(
                customer_id=customer_id,
                credit_balance=amount,
                total_spend=ZERO,
            ))
            await self.db.flush()
            return

        await self.db.execute(
            update(CustomerCredit)
            .where(CustomerCredit.customer_id == customer_id)
            .values(credit_balance=CustomerCredit.credit_balance + amount)
            .execution_options(synchronize_session=False)
        )

    def _transaction(
        self,
        payment: Payment,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
    ) -> None:
        self.db.add(PaymentTransaction(
            customer_id=payment.customer_id,
            payment_id=payment.id,
            invoice_id=payment.invoice_id,
            transaction_type=transaction_type.value,
            amount=amount,
            description=description,
        ))

    # =========================================================================
    # PAY
    # =========================================================================

    async def _check_booking_ready(self, invoice: Invoice) -> Optional[Booking]:
        if not invoice.booking_id:
            return None
        booking = await self.db.get(Booking, invoice.booking_id)
        if booking and booking.status == BookingStatus.PRE_ORDER.value:
            if booking.scheduled_dropoff_datetime is None:
                raise StatePreconditionError(
                    "Time slot has not been set by the warehouse. Please wait for a drop-off time to be assigned."
                )
            if booking.time_slot_confirmed_at is None:
                raise StatePreconditionError(
                    "Time slot has not been confirmed. Please confirm the assigned time slot before paying."
                )
        return booking

    async def process_invoice_payment(
        self,
        invoice_id: uuid.UUID,
        customer_id: uuid.UUID,
        amount: Optional[Decimal] = None,
        use_credit_balance: bool = True,
    ) -> Dict[str, Any]:
        """
        Pay an invoice.

        Returns:
            Dict with the payment, the client secret for card checkout (if any)
            and a summary message.

        Raises:
            ExternalServiceError: gateway failed; the payment is recorded as
            failed and any credit applied is restored
        """
        invoice = await self.db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        if invoice.status == InvoiceStatus.PAID.value:
            raise StatePreconditionError("Invoice is already paid")
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise StatePreconditionError("Invoice has been cancelled")
        if invoice.customer_id != customer_id:
            raise AuthorizationError("Invoice does not belong to this customer")

        booking = await self._check_booking_ready(invoice)

        amount_to_pay = money(amount if amount is not None else invoice.total)
        if amount_to_pay <= 0:
            raise ValidationError("Payment amount must be greater than 0")
        if amount_to_pay > money(invoice.total):
            raise ValidationError(f"Payment amount cannot exceed invoice total of {invoice.total}")

        credit_used = ZERO
        if use_credit_balance:
            balance = await self.get_credit_balance(customer_id)
            credit_used = money(min(balance, amount_to_pay))
            if credit_used > 0:
                await self._deduct_credit(customer_id, credit_used)
        remaining = amount_to_pay - credit_used

        if remaining == 0:
            payment = Payment(
                customer_id=customer_id,
                invoice_id=invoice.id,
                booking_id=invoice.booking_id,
                amount=amount_to_pay,
                currency=self.currency,
                status=PaymentStatus.SUCCEEDED.value,
                payment_method=PaymentMethod.CREDIT_BALANCE.value,
                credit_balance_used=credit_used,
            )
            self.db.add(payment)
            await self.db.flush()
            self._transaction(
                payment, TransactionType.CREDIT_APPLIED, -credit_used,
                f"Credit balance used for invoice {invoice.invoice_number}",
            )
            self._transaction(
                payment, TransactionType.PAYMENT, amount_to_pay,
                f"Payment for invoice {invoice.invoice_number} using credit balance",
            )
            await self._on_payment_succeeded(payment, invoice)
            await self.db.commit()

            logger.info(f"Invoice {invoice.invoice_number} paid from credit balance: {amount_to_pay}")
            await self._notify_payment_received(payment, invoice)
            return {
                "payment": payment,
                "client_secret": None,
                "message": f"Payment processed: ${credit_used:.2f} from credit balance",
            }

        email = invoice.customer_email or (booking.customer_email if booking else None)
        if not email:
            raise ValidationError("Customer email is required for card payments")
        name = invoice.customer_name or (booking.customer_name if booking else None)

        try:
            gateway_customer = await self.gateway.get_or_create_customer(
                email=email,
                name=name,
                metadata={"customer_id": str(customer_id)},
            )
            intent = await self.gateway.create_payment_intent(
                amount=remaining,
                currency=self.currency,
                customer_id=gateway_customer.id,
                metadata={"invoice_id": str(invoice.id), "customer_id": str(customer_id)},
            )
        except ExternalServiceError as e:
            if credit_used > 0:
                await self._add_credit(customer_id, credit_used)
            self.db.add(Payment(
                customer_id=customer_id,
                invoice_id=invoice.id,
                booking_id=invoice.booking_id,
                amount=amount_to_pay,
                currency=self.currency,
                status=PaymentStatus.FAILED.value,
                payment_method=PaymentMethod.CARD.value,
                credit_balance_used=ZERO,
                failure_reason=e.message,
            ))
            await self.db.commit()
            logger.error(f"Card payment for invoice {invoice.invoice_number} failed: {e.message}")
            raise

        payment = Payment(
            customer_id=customer_id,
            invoice_id=invoice.id,
            booking_id=invoice.booking_id,
            amount=amount_to_pay,
            currency=self.currency,
            status=PaymentStatus.PENDING.value,
            payment_method=PaymentMethod.CARD.value,
            gateway_customer_id=gateway_customer.id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            credit_balance_used=credit_used,
        )
        self.db.add(payment)
        await self.db.flush()
        if credit_used > 0:
            self._transaction(
                payment, TransactionType.CREDIT_APPLIED, -credit_used,
                f"Credit balance used for invoice {invoice.invoice_number}",
            )
        await self.db.commit()

        logger.info(
            f"Payment intent {intent.id} created for invoice {invoice.invoice_number}: "
            f"{remaining} by card, {credit_used} from credit"
        )
        if credit_used > 0:
            message = f"Payment processed: ${credit_used:.2f} from credit balance, ${remaining:.2f} via card"
        else:
            message = f"Payment intent created for ${remaining:.2f}"
        return {"payment": payment, "client_secret": intent.client_secret, "message": message}

    async def confirm_payment(
        self,
        payment_id: uuid.UUID,
        payment_method_id: Optional[str] = None,
    ) -> Payment:
        """
        Settle a card payment with the gateway.

        Payments the gateway left processing (e.g. awaiting 3-D Secure) can be
        confirmed again until they succeed or fail.
        """
        payment = await self.get_payment(payment_id)
        if payment.status not in CONFIRMABLE_STATUSES:
            raise StatePreconditionError(f"Payment cannot be confirmed. Current status: {payment.status}")
        if not payment.payment_intent_id:
            raise StatePreconditionError("Payment does not have a payment intent")

        intent = await self.gateway.confirm_payment_intent(payment.payment_intent_id, payment_method_id)
        new_status = INTENT_STATUS_MAP.get(intent.status, PaymentStatus.PROCESSING.value)

        values: Dict[str, Any] = {"status": new_status}
        if intent.charge_id:
            values["charge_id"] = intent.charge_id
        if new_status == PaymentStatus.FAILED.value:
            values["failure_reason"] = f"Gateway status: {intent.status}"

        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status.in_(CONFIRMABLE_STATUSES))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError("Payment was confirmed concurrently")
        await self.db.refresh(payment)

        invoice = None
        if new_status == PaymentStatus.SUCCEEDED.value:
            self._transaction(
                payment, TransactionType.PAYMENT, payment.amount,
                f"Payment confirmed for invoice {payment.invoice_id}",
            )
            invoice = await self.db.get(Invoice, payment.invoice_id) if payment.invoice_id else None
            await self._on_payment_succeeded(payment, invoice)
        elif new_status == PaymentStatus.FAILED.value and payment.credit_balance_used > 0:
            await self._add_credit(payment.customer_id, Decimal(payment.credit_balance_used))

        await self.db.commit()
        logger.info(f"Payment {payment.id} confirmed with status {new_status}")

        if new_status == PaymentStatus.SUCCEEDED.value:
            await self._notify_payment_received(payment, invoice)
        return payment

    async def _on_payment_succeeded(self, payment: Payment, invoice: Optional[Invoice]) -> None:
        """Invoice paid, spend recorded, booking advanced. Does not commit."""
        if invoice and invoice.status != InvoiceStatus.PAID.value:
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_date = datetime.now(timezone.utc).date()

        await self.membership.record_spend(payment.customer_id, Decimal(payment.amount))

        if invoice and invoice.booking_id:
            booking = await self.db.get(Booking, invoice.booking_id)
            if booking and await self.bookings.confirm_from_payment(booking):
                logger.info(f"Booking {booking.booking_number} confirmed by payment {payment.id}")

    async def _notify_payment_received(self, payment: Payment, invoice: Optional[Invoice]) -> None:
        label = invoice.invoice_number if invoice else str(payment.invoice_id)
        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(payment.customer_id),
            type=NotificationType.PAYMENT,
            channels=[NotificationChannel.EMAIL],
            title="Payment Received",
            message=f"We received your payment of ${payment.amount:.2f} for invoice {label}.",
            template="payment-received",
            template_data={"invoiceNumber": label, "amount": f"${payment.amount:.2f}"},
        ))

    # =========================================================================
    # REFUND
    # =========================================================================

    async def process_refund(
        self,
        payment_id: uuid.UUID,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        refund_to_credit: bool = False,
    ) -> Refund:
        """
        Refund part or all of a payment.

        Raises:
            StatePreconditionError: payment not succeeded / partially refunded
            ValidationError: amount not positive or above what is left to refund
        """
        payment = await self.get_payment(payment_id)
        if payment.status not in REFUNDABLE_STATUSES:
            raise StatePreconditionError(f"Cannot refund payment with status: {payment.status}")

        refundable = money(payment.refundable_amount)
        refund_amount = money(amount if amount is not None else refundable)
        if refund_amount <= 0:
            raise ValidationError("Refund amount must be greater than 0")
        if refund_amount > refundable:
            raise ValidationError(
                f"Refund amount cannot exceed refundable amount of {refundable}",
                {"refundable_amount": str(refundable)},
            )

        fully_refunded = refund_amount == refundable
        new_status = PaymentStatus.REFUNDED.value if fully_refunded else PaymentStatus.PARTIALLY_REFUNDED.value
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status.in_(REFUNDABLE_STATUSES),
                Payment.refunded_amount + refund_amount <= Payment.amount,
            )
            .values(
                refunded_amount=Payment.refunded_amount + refund_amount,
                status=new_status,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StatePreconditionError("Payment was refunded concurrently")

        gateway_refund_id = None
        to_credit = refund_to_credit or not payment.charge_id
        if to_credit:
            await self._add_credit(payment.customer_id, refund_amount)
            refund_status = RefundStatus.SUCCEEDED.value
        else:
            gateway_refund = await self.gateway.create_refund(
                charge_id=payment.charge_id,
                amount=refund_amount,
                metadata={"payment_id": str(payment.id), "invoice_id": str(payment.invoice_id)},
            )
            gateway_refund_id = gateway_refund.id
            refund_status = gateway_refund.status

        refund = Refund(
            payment_id=payment.id,
            customer_id=payment.customer_id,
            amount=refund_amount,
            reason=reason,
            status=refund_status,
            refund_to_credit=to_credit,
            gateway_refund_id=gateway_refund_id,
        )
        self.db.add(refund)
        self._transaction(
            payment,
            TransactionType.CREDIT_ADDED if to_credit else TransactionType.REFUND,
            -refund_amount,
            f"Refund of {refund_amount} for payment {payment.id}" + (f": {reason}" if reason else ""),
        )

        await self.db.refresh(payment)
        if fully_refunded and payment.invoice_id:
            invoice = await self.db.get(Invoice, payment.invoice_id)
            if invoice:
                invoice.status = InvoiceStatus.PENDING.value
                invoice.paid_date = None

        await self.db.flush()
        await self.db.commit()
        logger.info(f"Refunded {refund_amount} of payment {payment.id} ({'credit' if to_credit else 'card'})")
        return refund

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def get_payment_history(self, customer_id: uuid.UUID) -> Dict[str, List[Any]]:
        """Payments and transactions for a customer, newest first."""
        payments = (await self.db.execute(
            select(Payment)
            .where(Payment.customer_id == customer_id)
            .order_by(Payment.created_at.desc())
        )).scalars().all()
        transactions = (await self.db.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.customer_id == customer_id)
            .order_by(PaymentTransaction.created_at.desc())
        )).scalars().all()
        return {"payments": list(payments), "transactions": list(transactions)}
