"""
Warehouse Task API Endpoints.

Tasks are assigned to the least-loaded on-shift worker at creation.
"""
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import DB, StaffUser, Notifier
from app.core.exceptions import MarketplaceError, to_http_exception
from app.schemas.operations import (
    TaskCreate,
    TaskReassign,
    TaskResponse,
    AutoAssignResponse,
    BalanceResponse,
)
from app.services.task_assignment_service import TaskAssignmentService, TaskAssignmentInput

router = APIRouter()


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create And Assign Task"
)
async def create_task(data: TaskCreate, db: DB, current_user: StaffUser, notifier: Notifier):
    try:
        return await TaskAssignmentService(db, notifier=notifier).create_and_assign_task(
            TaskAssignmentInput(**data.model_dump())
        )
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.get("/{task_id}", response_model=TaskResponse, summary="Get Task")
async def get_task(task_id: UUID, db: DB, current_user: StaffUser):
    try:
        return await TaskAssignmentService(db).get_task(task_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/reassign", response_model=TaskResponse, summary="Reassign Task")
async def reassign_task(task_id: UUID, data: TaskReassign, db: DB, current_user: StaffUser, notifier: Notifier):
    try:
        return await TaskAssignmentService(db, notifier=notifier).reassign_task(task_id, data.worker_id)
    except MarketplaceError as e:
        raise to_http_exception(e)


@router.post(
    "/auto-assign",
    response_model=AutoAssignResponse,
    summary="Assign Pending Tasks"
)
async def auto_assign(
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
    warehouse_id: UUID = Query(...),
):
    return await TaskAssignmentService(db, notifier=notifier).auto_assign_pending_tasks(warehouse_id)


@router.post(
    "/balance",
    response_model=BalanceResponse,
    summary="Balance Worker Load"
)
async def balance_workload(
    db: DB,
    current_user: StaffUser,
    notifier: Notifier,
    warehouse_id: UUID = Query(...),
):
    return await TaskAssignmentService(db, notifier=notifier).balance_workload(warehouse_id)
