"""
Tests for the Task Assignment Engine.
"""

import uuid
from typing import List, Optional

import pytest
from sqlalchemy import select

from app.core.exceptions import StatePreconditionError, NotFoundError
from app.models.task import Task, Worker
from app.services.task_assignment_service import (
    TaskAssignmentService,
    TaskAssignmentInput,
    WorkerAvailability,
    calculate_workload_score,
    select_best_worker,
)


async def add_worker(test_db, warehouse, name: str, on_shift: bool = True, skills: Optional[List[str]] = None) -> Worker:
    worker = Worker(
        user_id=uuid.uuid4(),
        name=name,
        warehouse_id=warehouse.id,
        is_on_shift=on_shift,
        skills=skills or [],
    )
    test_db.add(worker)
    await test_db.commit()
    return worker


async def add_tasks(test_db, warehouse, worker: Worker, count: int, status: str = "in-progress") -> List[Task]:
    tasks = [
        Task(
            task_type="picking",
            title=f"Pick order {i}",
            status=status,
            warehouse_id=warehouse.id,
            assigned_to=worker.user_id,
            assigned_to_name=worker.name,
        )
        for i in range(count)
    ]
    test_db.add_all(tasks)
    await test_db.commit()
    return tasks


class TestWorkloadScore:
    """Tests for scoring and selection."""

    @pytest.mark.parametrize("count,on_shift,expected", [
        (0, True, 0),
        (2, True, 2),
        (3, True, 8),
        (5, True, 15),
        (1, False, 999),
    ])
    def test_score(self, count, on_shift, expected):
        assert calculate_workload_score(count, on_shift) == expected

    def test_tie_prefers_skill_match(self):
        generalist = WorkerAvailability(uuid.uuid4(), "Gen", 1, True, [])
        picker = WorkerAvailability(uuid.uuid4(), "Pick", 1, True, ["picking"])

        assert select_best_worker([generalist, picker], "picking") is picker

    def test_lower_score_beats_skill(self):
        idle = WorkerAvailability(uuid.uuid4(), "Idle", 0, True, [])
        picker = WorkerAvailability(uuid.uuid4(), "Pick", 2, True, ["picking"])

        assert select_best_worker([picker, idle], "picking") is idle

    def test_skilled_worker_only_takes_own_types(self):
        receiver = WorkerAvailability(uuid.uuid4(), "Recv", 0, True, ["receiving"])

        assert select_best_worker([receiver], "picking") is None

    def test_full_worker_unavailable(self):
        busy = WorkerAvailability(uuid.uuid4(), "Busy", 5, True, [])

        assert busy.available is False
        assert select_best_worker([busy], "packing") is None


class TestCreateAndAssign:
    """Tests for task creation."""

    @pytest.mark.asyncio
    async def test_assigns_least_loaded(self, test_db, warehouse, notifier):
        busy = await add_worker(test_db, warehouse, "Blake")
        idle = await add_worker(test_db, warehouse, "Jordan")
        await add_tasks(test_db, warehouse, busy, 2)

        task = await TaskAssignmentService(test_db, notifier=notifier).create_and_assign_task(TaskAssignmentInput(
            task_type="putaway",
            title="Put away inbound PO-77",
            warehouse_id=warehouse.id,
            priority="high",
        ))

        assert task.status == "assigned"
        assert task.assigned_to == idle.user_id
        assert task.priority == "high"
        assert notifier.sent[0].user_id == str(idle.user_id)

    @pytest.mark.asyncio
    async def test_pending_when_nobody_on_shift(self, test_db, warehouse, notifier):
        await add_worker(test_db, warehouse, "Off Duty", on_shift=False)

        task = await TaskAssignmentService(test_db, notifier=notifier).create_and_assign_task(TaskAssignmentInput(
            task_type="receiving",
            title="Receive trailer 12",
            warehouse_id=warehouse.id,
        ))

        assert task.status == "pending"
        assert task.assigned_to is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_auto_assign_pending(self, test_db, warehouse):
        off_duty = await add_worker(test_db, warehouse, "Riley", on_shift=False)
        service = TaskAssignmentService(test_db)
        task = await service.create_and_assign_task(TaskAssignmentInput(
            task_type="shipping",
            title="Ship order 9",
            warehouse_id=warehouse.id,
        ))
        off_duty.is_on_shift = True
        await test_db.commit()

        result = await service.auto_assign_pending_tasks(warehouse.id)

        assert result == {"assigned": 1, "errors": []}
        await test_db.refresh(task)
        assert task.assigned_to == off_duty.user_id


class TestReassignAndBalance:
    """Tests for manual reassignment and workload balancing."""

    @pytest.mark.asyncio
    async def test_reassign(self, test_db, warehouse):
        first = await add_worker(test_db, warehouse, "Avery")
        second = await add_worker(test_db, warehouse, "Quinn")
        task = (await add_tasks(test_db, warehouse, first, 1))[0]

        moved = await TaskAssignmentService(test_db).reassign_task(task.id, second.user_id)

        assert moved.assigned_to == second.user_id
        assert moved.assigned_to_name == "Quinn"
        assert moved.status == "assigned"

    @pytest.mark.asyncio
    async def test_completed_tasks_stay_put(self, test_db, warehouse):
        first = await add_worker(test_db, warehouse, "Avery")
        second = await add_worker(test_db, warehouse, "Quinn")
        task = (await add_tasks(test_db, warehouse, first, 1, status="completed"))[0]

        with pytest.raises(StatePreconditionError):
            await TaskAssignmentService(test_db).reassign_task(task.id, second.user_id)

    @pytest.mark.asyncio
    async def test_reassign_to_unknown_worker(self, test_db, warehouse):
        first = await add_worker(test_db, warehouse, "Avery")
        task = (await add_tasks(test_db, warehouse, first, 1))[0]

        with pytest.raises(NotFoundError):
            await TaskAssignmentService(test_db).reassign_task(task.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_balance_moves_to_underloaded(self, test_db, warehouse):
        """6/0/0 in-progress: mean 2, four tasks leave the overloaded worker."""
        loaded = await add_worker(test_db, warehouse, "Alex")
        await add_worker(test_db, warehouse, "Billie")
        await add_worker(test_db, warehouse, "Charlie")
        await add_tasks(test_db, warehouse, loaded, 6)

        result = await TaskAssignmentService(test_db).balance_workload(warehouse.id)

        assert result == {"reassigned": 4, "errors": []}
        remaining = (await test_db.execute(
            select(Task).where(Task.assigned_to == loaded.user_id)
        )).scalars().all()
        assert len(remaining) == 2

    @pytest.mark.asyncio
    async def test_balanced_team_untouched(self, test_db, warehouse):
        first = await add_worker(test_db, warehouse, "Avery")
        second = await add_worker(test_db, warehouse, "Quinn")
        await add_tasks(test_db, warehouse, first, 2)
        await add_tasks(test_db, warehouse, second, 1)

        result = await TaskAssignmentService(test_db).balance_workload(warehouse.id)

        assert result["reassigned"] == 0
