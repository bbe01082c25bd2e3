"""
Background Jobs Module

Handles scheduled tasks for:
- Monthly storage invoicing
- Claim escalation
- Pending task auto-assignment
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from app.jobs.billing_jobs import run_monthly_invoicing_job
from app.jobs.operations_jobs import escalate_overdue_claims_job, auto_assign_tasks_job

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "run_monthly_invoicing_job",
    "escalate_overdue_claims_job",
    "auto_assign_tasks_job",
]
