"""
Task Assignment Engine for warehouse workers.

Picks the least-loaded on-shift worker for a task:
- availability: on shift and fewer than Settings.TASK_MAX_CONCURRENT in-progress tasks
- workload score: in-progress count, +5 at 3 or more, +10 at 5 or more, 999 off shift
- ties on score prefer workers who list the task type as a skill
- workers with no skills listed are generalists
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import StatePreconditionError, NotFoundError, ValidationError
from app.models.task import Task, TaskStatus, TaskType, TaskPriority, Worker
from app.services.notification_service import (
    NotificationService,
    NotificationRequest,
    NotificationType,
    NotificationChannel,
    notify_safely,
)

logger = logging.getLogger(__name__)

OFF_SHIFT_SCORE = 999


@dataclass
class WorkerAvailability:
    worker_id: uuid.UUID  # Worker.user_id
    worker_name: str
    current_tasks: int
    is_on_shift: bool
    skills: List[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.is_on_shift and self.current_tasks < settings.TASK_MAX_CONCURRENT

    @property
    def workload_score(self) -> int:
        return calculate_workload_score(self.current_tasks, self.is_on_shift)

    def can_do(self, task_type: str) -> bool:
        return not self.skills or task_type in self.skills


@dataclass
class TaskAssignmentInput:
    task_type: TaskType
    title: str
    warehouse_id: uuid.UUID
    priority: TaskPriority = TaskPriority.MEDIUM
    description: Optional[str] = None
    booking_id: Optional[uuid.UUID] = None
    zone: Optional[str] = None
    location: Optional[str] = None
    due_date: Optional[Any] = None


def calculate_workload_score(current_task_count: int, is_on_shift: bool) -> int:
    """Lower is better."""
    if not is_on_shift:
        return OFF_SHIFT_SCORE
    score = current_task_count
    if current_task_count >= 5:
        score += 10
    elif current_task_count >= 3:
        score += 5
    return score


def select_best_worker(candidates: List[WorkerAvailability], task_type: str) -> Optional[WorkerAvailability]:
    """Lowest workload score wins; on a tie prefer a skill match."""
    eligible = [w for w in candidates if w.available and w.can_do(task_type)]
    if not eligible:
        return None

    ranked = sorted(eligible, key=lambda w: w.workload_score)
    best_score = ranked[0].workload_score
    tied = [w for w in ranked if w.workload_score == best_score]
    if len(tied) > 1:
        skilled = [w for w in tied if task_type in w.skills]
        if skilled:
            return skilled[0]
    return ranked[0]


class TaskAssignmentService:
    """Create, assign and rebalance warehouse tasks."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier

    async def get_task(self, task_id: uuid.UUID) -> Task:
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    async def _in_progress_counts(self) -> Dict[uuid.UUID, int]:
        result = await self.db.execute(
            select(Task.assigned_to, func.count(Task.id))
            .where(
                Task.status == TaskStatus.IN_PROGRESS.value,
                Task.assigned_to.isnot(None),
            )
            .group_by(Task.assigned_to)
        )
        return {worker_id: count for worker_id, count in result.all()}

    async def _workers(self, warehouse_id: uuid.UUID) -> List[Worker]:
        result = await self.db.execute(
            select(Worker)
            .where(
                Worker.is_active == True,
                or_(Worker.warehouse_id == warehouse_id, Worker.warehouse_id.is_(None)),
            )
            .order_by(Worker.name)
        )
        return list(result.scalars().all())

    async def get_worker_availability(self, warehouse_id: uuid.UUID) -> List[WorkerAvailability]:
        counts = await self._in_progress_counts()
        return [
            WorkerAvailability(
                worker_id=worker.user_id,
                worker_name=worker.name,
                current_tasks=counts.get(worker.user_id, 0),
                is_on_shift=worker.is_on_shift,
                skills=list(worker.skills or []),
            )
            for worker in await self._workers(warehouse_id)
        ]

    async def _notify_assigned(self, task: Task) -> None:
        await notify_safely(self.notifier, NotificationRequest(
            user_id=str(task.assigned_to),
            type=NotificationType.TASK,
            channels=[NotificationChannel.PUSH, NotificationChannel.EMAIL],
            title="New Task Assigned",
            message=(
                f"You have been assigned a new {task.task_type} task: {task.title}. "
                f"Priority: {task.priority}."
            ),
            template="task-assigned",
            template_data={
                "taskTitle": task.title,
                "taskType": task.task_type,
                "priority": task.priority,
                "workerName": task.assigned_to_name,
                "dueDate": task.due_date.isoformat() if task.due_date else None,
            },
        ))

    async def create_and_assign_task(self, data: TaskAssignmentInput) -> Task:
        """Create a task assigned to the best worker, or pending if nobody is free."""
        task_type = TaskType(data.task_type).value
        candidates = await self.get_worker_availability(data.warehouse_id)
        worker = select_best_worker(candidates, task_type)

        task = Task(
            task_type=task_type,
            title=data.title,
            description=data.description,
            priority=TaskPriority(data.priority).value,
            warehouse_id=data.warehouse_id,
            booking_id=data.booking_id,
            zone=data.zone,
            location=data.location,
            due_date=data.due_date,
            status=TaskStatus.ASSIGNED.value if worker else TaskStatus.PENDING.value,
            assigned_to=worker.worker_id if worker else None,
            assigned_to_name=worker.worker_name if worker else None,
        )
        self.db.add(task)
        await self.db.flush()
        await self.db.commit()

        if worker:
            logger.info(f"Task {task.id} ({task_type}) assigned to {worker.worker_name}")
            await self._notify_assigned(task)
        else:
            logger.info(f"Task {task.id} ({task_type}) left pending: no available worker")
        return task

    async def reassign_task(self, task_id: uuid.UUID, worker_id: uuid.UUID, commit: bool = True) -> Task:
        """Hand a task to another worker (by user id); status becomes assigned."""
        task = await self.get_task(task_id)
        if task.status == TaskStatus.COMPLETED.value:
            raise StatePreconditionError("Completed tasks cannot be reassigned")

        worker = (await self.db.execute(
            select(Worker).where(Worker.user_id == worker_id)
        )).scalar_one_or_none()
        if not worker:
            raise NotFoundError("Worker", worker_id)
        if not worker.is_active:
            raise ValidationError(f"Worker {worker.name} is not active")

        task.assigned_to = worker.user_id
        task.assigned_to_name = worker.name
        task.status = TaskStatus.ASSIGNED.value
        await self.db.flush()
        if commit:
            await self.db.commit()
            await self._notify_assigned(task)

        logger.info(f"Task {task.id} reassigned to {worker.name}")
        return task

    async def auto_assign_pending_tasks(self, warehouse_id: uuid.UUID) -> Dict[str, Any]:
        """Assign every pending task in the warehouse that someone can take."""
        result = await self.db.execute(
            select(Task)
            .where(Task.warehouse_id == warehouse_id, Task.status == TaskStatus.PENDING.value)
            .order_by(Task.created_at)
        )
        pending = list(result.scalars().all())

        assigned: List[Task] = []
        errors: List[str] = []
        for task in pending:
            try:
                worker = select_best_worker(await self.get_worker_availability(warehouse_id), task.task_type)
                if not worker:
                    continue
                task.assigned_to = worker.worker_id
                task.assigned_to_name = worker.worker_name
                task.status = TaskStatus.ASSIGNED.value
                await self.db.flush()
                assigned.append(task)
            except Exception as e:
                message = f"Failed to assign task {task.id}: {e}"
                logger.error(message)
                errors.append(message)

        await self.db.commit()
        for task in assigned:
            await self._notify_assigned(task)

        logger.info(f"Auto-assigned {len(assigned)} of {len(pending)} pending tasks in warehouse {warehouse_id}")
        return {"assigned": len(assigned), "errors": errors}

    async def balance_workload(self, warehouse_id: uuid.UUID) -> Dict[str, Any]:
        """
        Move in-progress tasks from overloaded to underloaded workers.

        Overloaded means more than mean + 1 tasks, underloaded fewer than
        mean - 1. Each overloaded worker gives up floor(count - mean) tasks;
        a target stops receiving once it reaches the mean.
        """
        workers = await self._workers(warehouse_id)
        if not workers:
            return {"reassigned": 0, "errors": []}

        workloads = []
        for worker in workers:
            tasks = (await self.db.execute(
                select(Task)
                .where(
                    Task.assigned_to == worker.user_id,
                    Task.status == TaskStatus.IN_PROGRESS.value,
                )
                .order_by(Task.created_at)
            )).scalars().all()
            workloads.append({"worker": worker, "count": len(tasks), "tasks": list(tasks)})

        mean = sum(w["count"] for w in workloads) / len(workloads)
        overloaded = [w for w in workloads if w["count"] > mean + 1]
        underloaded = [w for w in workloads if w["count"] < mean - 1]

        reassigned = 0
        errors: List[str] = []
        for source in overloaded:
            for task in source["tasks"][:int(source["count"] - mean)]:
                if not underloaded:
                    break
                target = underloaded[0]
                try:
                    await self.reassign_task(task.id, target["worker"].user_id, commit=False)
                    target["count"] += 1
                    reassigned += 1
                    if target["count"] >= mean:
                        underloaded.pop(0)
                except Exception as e:
                    message = f"Failed to reassign task {task.id}: {e}"
                    logger.error(message)
                    errors.append(message)

        await self.db.commit()
        logger.info(f"Workload balancing moved {reassigned} tasks in warehouse {warehouse_id}")
        return {"reassigned": reassigned, "errors": errors}
