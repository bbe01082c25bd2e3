"""
Payment gateway adapter.

PaymentService talks to a PaymentGateway; production wires in RazorpayGateway,
tests inject a fake. Gateway statuses are normalised to the intent vocabulary
used by PaymentService:

    succeeded | processing | requires_action | requires_payment_method | canceled

Razorpay mapping:
    order   -> payment intent (client completes checkout against the order id)
    payment -> charge
    refund  -> refund
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Dict, Any

import razorpay

from app.config import settings
from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntent:
    id: str
    status: str
    client_secret: Optional[str] = None
    charge_id: Optional[str] = None


@dataclass
class GatewayRefund:
    id: str
    status: str  # "succeeded" or "pending"


@dataclass
class GatewayCustomer:
    id: str
    email: str
    name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal) -> int:
    """Gateways take amounts in the smallest currency unit."""
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class PaymentGateway(ABC):
    """Card payment collaborator."""

    @abstractmethod
    async def get_or_create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayCustomer:
        pass

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        customer_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        pass

    @abstractmethod
    async def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: Optional[str] = None,
    ) -> PaymentIntent:
        pass

    @abstractmethod
    async def create_refund(
        self,
        charge_id: str,
        amount: Decimal,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayRefund:
        pass


class RazorpayGateway(PaymentGateway):
    """
    Razorpay implementation.

    The SDK is synchronous; calls run in a worker thread and are bounded by
    Settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID
        self.client = razorpay.Client(
            auth=(self.key_id, key_secret or settings.RAZORPAY_KEY_SECRET)
        )
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS

    async def _call(self, operation: str, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Razorpay {operation} timed out after {self.timeout}s")
            raise ExternalServiceError(f"Payment gateway timed out during {operation}")
        except Exception as e:
            logger.error(f"Razorpay {operation} failed: {e}")
            raise ExternalServiceError(f"Payment gateway error during {operation}: {e}") from e

    async def get_or_create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayCustomer:
        # fail_existing=0 returns the existing customer for this email
        customer = await self._call(
            "customer creation",
            self.client.customer.create,
            data={
                "name": name or email.split("@")[0],
                "email": email,
                "fail_existing": "0",
                "notes": {k: str(v) for k, v in (metadata or {}).items()},
            },
        )
        return GatewayCustomer(id=customer["id"], email=email, name=name, metadata=metadata or {})

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        customer_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        notes = {k: str(v) for k, v in (metadata or {}).items()}
        notes["gateway_customer_id"] = customer_id
        order = await self._call(
            "order creation",
            self.client.order.create,
            data={
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": notes.get("invoice_id", ""),
                "notes": notes,
            },
        )
        logger.info(f"Created Razorpay order {order['id']} for {amount} {currency}")
        return PaymentIntent(id=order["id"], status="requires_payment_method", client_secret=order["id"])

    async def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: Optional[str] = None,
    ) -> PaymentIntent:
        """Inspect the order's payments; capture an authorized one."""
        result = await self._call("order lookup", self.client.order.payments, intent_id)
        payments = result.get("items", []) if isinstance(result, dict) else result
        if payment_method_id:
            payments = [p for p in payments if p.get("id") == payment_method_id]

        for payment in payments:
            if payment.get("status") == "captured":
                return PaymentIntent(id=intent_id, status="succeeded", charge_id=payment["id"])

        for payment in payments:
            if payment.get("status") == "authorized":
                captured = await self._call(
                    "payment capture",
                    self.client.payment.capture,
                    payment["id"],
                    payment["amount"],
                )
                status = "succeeded" if captured.get("status") == "captured" else "processing"
                return PaymentIntent(id=intent_id, status=status, charge_id=payment["id"])

        if payments and all(p.get("status") == "failed" for p in payments):
            return PaymentIntent(id=intent_id, status="requires_payment_method")
        if payments:
            return PaymentIntent(id=intent_id, status="processing")
        return PaymentIntent(id=intent_id, status="requires_action")

    async def create_refund(
        self,
        charge_id: str,
        amount: Decimal,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayRefund:
        refund = await self._call(
            "refund",
            self.client.payment.refund,
            charge_id,
            {
                "amount": to_minor_units(amount),
                "notes": {k: str(v) for k, v in (metadata or {}).items()},
            },
        )
        logger.info(f"Refund initiated: {refund['id']} for payment {charge_id}")
        status = "succeeded" if refund.get("status") == "processed" else "pending"
        return GatewayRefund(id=refund["id"], status=status)


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway()
    return _gateway
