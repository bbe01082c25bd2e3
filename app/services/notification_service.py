"""
Customer Notification Service

Dispatches booking, invoice, task and approval notifications over:
- Email
- Push Notifications
- SMS

NotificationService only logs; WebhookNotificationService hands each
notification to an HTTP relay when NOTIFICATION_WEBHOOK_URL is configured.

Dispatch is best-effort: callers go through notify_safely(), which bounds
the call with a timeout and logs any failure instead of raising it.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from enum import Enum
from uuid import uuid4

import httpx

from app.config import settings


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


class NotificationType(str, Enum):
    """Types of notifications."""
    BOOKING = "booking"
    INVOICE = "invoice"
    PAYMENT = "payment"
    TASK = "task"
    CLAIM = "claim"


@dataclass
class NotificationRequest:
    """One notification for one user, possibly on several channels."""
    user_id: str
    type: NotificationType
    title: str
    message: str
    channels: List[NotificationChannel] = field(
        default_factory=lambda: [NotificationChannel.EMAIL]
    )
    template: Optional[str] = None
    template_data: Dict[str, Any] = field(default_factory=dict)


class NotificationService:
    """
    Sends notifications to marketplace users.

    In production, this would integrate with:
    - SendGrid/SES for Email
    - Firebase FCM for Push
    - Twilio/MSG91 for SMS
    """

    async def send_notification(self, request: NotificationRequest) -> Dict[str, Any]:
        """
        Send a notification on each requested channel.

        Returns:
            Dict with notification id and per-channel results
        """
        notification_id = str(uuid4())
        results = {}

        logger.info(
            f"[NOTIFICATION] {request.type.value} to {request.user_id}: "
            f"{request.title} ({request.template or 'no template'})"
        )

        for channel in request.channels:
            if channel == NotificationChannel.EMAIL:
                results[channel.value] = await self._send_email(request)
            elif channel == NotificationChannel.PUSH:
                results[channel.value] = await self._send_push_notification(request)
            elif channel == NotificationChannel.SMS:
                results[channel.value] = await self._send_sms(request)

        return {
            "success": all(results.values()),
            "notification_id": notification_id,
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "channels": results,
        }

    async def _send_email(self, request: NotificationRequest) -> bool:
        logger.info(f"[EMAIL] To user {request.user_id}: Subject={request.title}")
        return True

    async def _send_push_notification(self, request: NotificationRequest) -> bool:
        logger.info(f"[PUSH] To user {request.user_id}: {request.message[:50]}...")
        return True

    async def _send_sms(self, request: NotificationRequest) -> bool:
        logger.info(f"[SMS] To user {request.user_id}: {request.message[:50]}...")
        return True


class WebhookNotificationService(NotificationService):
    """
    Delivers every channel by POSTing the notification to a webhook.

    The receiving service (e-mail/SMS/push relay) owns channel fan-out.
    """

    def __init__(self, webhook_url: str, timeout: Optional[float] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS

    def _payload(self, request: NotificationRequest, channel: NotificationChannel) -> Dict[str, Any]:
        return {
            "user_id": str(request.user_id),
            "type": request.type.value,
            "channel": channel.value,
            "title": request.title,
            "message": request.message,
            "template": request.template,
            "template_data": request.template_data,
        }

    async def _post(self, request: NotificationRequest, channel: NotificationChannel) -> bool:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.webhook_url,
                json=self._payload(request, channel),
                timeout=self.timeout,
            )
            response.raise_for_status()
        logger.info(f"[{channel.value.upper()}] Delivered '{request.title}' to {request.user_id} via webhook")
        return True

    async def _send_email(self, request: NotificationRequest) -> bool:
        return await self._post(request, NotificationChannel.EMAIL)

    async def _send_push_notification(self, request: NotificationRequest) -> bool:
        return await self._post(request, NotificationChannel.PUSH)

    async def _send_sms(self, request: NotificationRequest) -> bool:
        return await self._post(request, NotificationChannel.SMS)


def build_notification_service() -> NotificationService:
    """Webhook delivery when NOTIFICATION_WEBHOOK_URL is set, else log-only."""
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationService(settings.NOTIFICATION_WEBHOOK_URL)
    return NotificationService()


async def notify_safely(
    notifier: Optional[NotificationService],
    request: NotificationRequest,
    timeout: Optional[float] = None,
) -> bool:
    """
    Dispatch a notification without letting its failure reach the caller.

    Returns True when the dispatcher accepted the notification.
    """
    if notifier is None:
        return False

    timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
    try:
        await asyncio.wait_for(notifier.send_notification(request), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.error(f"Notification '{request.title}' to {request.user_id} timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Failed to send notification '{request.title}' to {request.user_id}: {e}")
    return False
