"""
Billing Jobs

Background jobs for recurring billing:
- Monthly storage invoices for active pallet bookings

Triggers:
- Monthly cron job (via APScheduler) on MONTHLY_INVOICE_DAY
- POST /api/v1/invoices/monthly/run runs the same batch on demand
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from app.database import get_db_session
from app.services.invoice_service import InvoiceService
from app.services.notification_service import NotificationService, build_notification_service

logger = logging.getLogger(__name__)


async def run_monthly_invoicing_job(notifier: Optional[NotificationService] = None) -> Dict[str, Any]:
    """
    Issue this month's storage invoice for every active pallet booking.

    Bookings already invoiced this month are skipped; one failing booking
    does not stop the batch.
    """
    logger.info("Starting monthly invoicing job...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        service = InvoiceService(session, notifier=notifier or build_notification_service())
        run = await service.generate_monthly_invoices_for_active_bookings()

    results = {
        "started_at": start_time.isoformat(),
        **run.to_dict(),
        "duration_seconds": (datetime.now(timezone.utc) - start_time).total_seconds(),
    }
    logger.info(
        f"Monthly invoicing complete: {results['generated']} generated, "
        f"{results['skipped']} skipped, {len(results['errors'])} errors "
        f"in {results['duration_seconds']:.2f}s"
    )
    return results
