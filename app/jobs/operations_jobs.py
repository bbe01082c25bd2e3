"""
Warehouse Operations Jobs

- Claim escalation: flag claims waiting too long for review
- Task auto-assignment: hand pending tasks to free workers, per warehouse
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from sqlalchemy import select

from app.database import get_db_session
from app.models.warehouse import Warehouse, WarehouseStatus
from app.services.claim_service import ClaimService, EscalationHandler
from app.services.notification_service import NotificationService, build_notification_service
from app.services.task_assignment_service import TaskAssignmentService

logger = logging.getLogger(__name__)


async def escalate_overdue_claims_job(
    days_threshold: Optional[int] = None,
    handler: Optional[EscalationHandler] = None,
) -> Dict[str, Any]:
    """Daily: log every submitted / under-review claim older than the threshold."""
    logger.info("Starting claim escalation job...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        result = await ClaimService(session).escalate_pending_claims(days_threshold, handler=handler)

    logger.info(
        f"Claim escalation complete: {result['escalated']} escalated, "
        f"{len(result['errors'])} errors"
    )
    return {"started_at": start_time.isoformat(), **result}


async def auto_assign_tasks_job(notifier: Optional[NotificationService] = None) -> Dict[str, Any]:
    """
    Assign pending tasks in every active warehouse.

    A failing warehouse is recorded in errors and the rest continue.
    """
    logger.info("Starting task auto-assignment job...")
    start_time = datetime.now(timezone.utc)
    notifier = notifier or build_notification_service()

    results: Dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "warehouses": 0,
        "assigned": 0,
        "errors": [],
    }

    async with get_db_session() as session:
        warehouse_ids = (await session.execute(
            select(Warehouse.id).where(Warehouse.status == WarehouseStatus.ACTIVE.value)
        )).scalars().all()

    for warehouse_id in warehouse_ids:
        results["warehouses"] += 1
        try:
            async with get_db_session() as session:
                outcome = await TaskAssignmentService(session, notifier=notifier).auto_assign_pending_tasks(
                    warehouse_id
                )
            results["assigned"] += outcome["assigned"]
            results["errors"].extend(outcome["errors"])
        except Exception as e:
            message = f"Auto-assignment failed for warehouse {warehouse_id}: {e}"
            logger.error(message)
            results["errors"].append(message)

    logger.info(
        f"Task auto-assignment complete: {results['assigned']} assigned across "
        f"{results['warehouses']} warehouses, {len(results['errors'])} errors"
    )
    return results
