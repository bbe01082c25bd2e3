"""
APScheduler Configuration

Background job scheduler for recurring warehouse work:
- Monthly storage invoicing (cron, MONTHLY_INVOICE_DAY)
- Claim escalation (daily, CLAIM_ESCALATION_HOUR)
- Pending task auto-assignment (every AUTO_ASSIGN_INTERVAL_MINUTES)

Each job opens its own session via get_db_session() and returns a results
dict with an errors list.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone='UTC'
)


async def run_job(job_name: str, job: Callable[[], Awaitable[Dict[str, Any]]]):
    """
    Wrapper called by APScheduler.

    A failing run is logged; the schedule continues with the next trigger.
    """
    try:
        result = await job()
        logger.info(f"Job '{job_name}' completed with {len(result.get('errors', []))} errors")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        from app.jobs.billing_jobs import run_monthly_invoicing_job
        from app.jobs.operations_jobs import escalate_overdue_claims_job, auto_assign_tasks_job

        # Recurring storage invoices on the billing day
        scheduler.add_job(
            run_job,
            'cron',
            day=settings.MONTHLY_INVOICE_DAY,
            hour=settings.MONTHLY_INVOICE_HOUR,
            args=['monthly_invoicing', run_monthly_invoicing_job],
            id='monthly_invoicing',
            name='Monthly Storage Invoicing',
            replace_existing=True,
        )

        # Flag claims waiting too long for review
        scheduler.add_job(
            run_job,
            'cron',
            hour=settings.CLAIM_ESCALATION_HOUR,
            args=['claim_escalation', escalate_overdue_claims_job],
            id='claim_escalation',
            name='Claim Escalation',
            replace_existing=True,
        )

        # Hand pending tasks to workers who freed up
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.AUTO_ASSIGN_INTERVAL_MINUTES,
            args=['task_auto_assignment', auto_assign_tasks_job],
            id='task_auto_assignment',
            name='Task Auto-Assignment',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
