"""Queries over the dependency graph of a task collection.

No cycle detection is done: a task on a cycle simply never becomes
executable because one of its dependencies is never completed.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .models import DeletionCheck, ExecutionCheck, Task, TaskStatus


def find_task(tasks: Sequence[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def can_execute(tasks: Sequence[Task], task_id: str) -> ExecutionCheck:
    """A task may start when every dependency exists and is completed."""
    task = find_task(tasks, task_id)
    if task is None or task.is_completed:
        return ExecutionCheck(can_execute=False)
    if not task.dependencies:
        return ExecutionCheck(can_execute=True)

    by_id: Dict[str, Task] = {item.id: item for item in tasks}
    blocked_by: List[str] = []
    for dependency in task.dependencies:
        target = by_id.get(dependency.task_id)
        if target is None or not target.is_completed:
            blocked_by.append(dependency.task_id)

    return ExecutionCheck(can_execute=not blocked_by, blocked_by=blocked_by)


def dependents_of(tasks: Sequence[Task], task_id: str) -> List[Task]:
    return [task for task in tasks if task.id != task_id and task.depends_on(task_id)]


def can_delete(tasks: Sequence[Task], task_id: str) -> DeletionCheck:
    """A task may be deleted when it is unfinished and nothing depends on it."""
    task = find_task(tasks, task_id)
    if task is None:
        return DeletionCheck(can_delete=False, reason="The specified task cannot be found")
    if task.is_completed:
        return DeletionCheck(can_delete=False, reason="Unable to delete completed tasks")

    dependents = dependents_of(tasks, task_id)
    if dependents:
        described = ", ".join(f'"{item.name}" (ID: {item.id})' for item in dependents)
        return DeletionCheck(
            can_delete=False,
            reason=f"This task cannot be deleted because the following tasks depend on it: {described}",
            blockers=[item.name for item in dependents],
        )
    return DeletionCheck(can_delete=True)


def executable_tasks(tasks: Sequence[Task]) -> List[Task]:
    """Unfinished tasks whose dependencies are all satisfied, oldest first."""
    ready = [
        task for task in tasks
        if task.status is TaskStatus.PENDING and can_execute(tasks, task.id).can_execute
    ]
    ready.sort(key=lambda t: t.created_at)
    return ready
