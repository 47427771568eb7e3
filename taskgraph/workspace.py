"""Task workspace: the public operations over one task store.

Every mutating operation is a read-modify-write of the whole collection:
load all tasks, compute the replacement collection, save it, then announce
the change through the observability hooks. Policy refusals come back as
result objects; I/O and store-format problems raise.
"""

from __future__ import annotations

import copy
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .complexity import ComplexityAssessment, assess_complexity
from .config import resolve_data_dir
from .errors import BatchValidationError
from .graph import can_delete, can_execute, executable_tasks, find_task
from .merge import TaskDefinition, UpdateMode, merge_batch, validate_batch
from .models import (
    COMPLETED_MUTABLE_FIELDS,
    BatchMergeOutcome,
    ClearResult,
    DeletionCheck,
    ExecutionCheck,
    OperationResult,
    RelatedFile,
    Task,
    TaskDependency,
    TaskStatus,
    utcnow,
)
from .related_files import summarize_related_files
from .resolver import resolve_dependencies
from .search import ArchiveSearchBackend, SearchResult, search_tasks
from .store import TaskStore
from .taskgraph_logging import (
    log_batch_merge,
    log_operation,
    log_performance,
    log_status_change,
    log_tasks_cleared,
    notify_tasks_changed,
)

logger = logging.getLogger("taskgraph.workspace")

UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "notes",
    "status",
    "dependencies",
    "completed_at",
    "summary",
    "related_files",
    "analysis_result",
    "implementation_guide",
    "verification_criteria",
})

VERIFICATION_PASS_SCORE = 80


class TaskWorkspace:
    """Manage the task collection stored under one data directory."""

    def __init__(self, data_dir: Path | str, search_backend: Optional[ArchiveSearchBackend] = None):
        self.data_dir = Path(data_dir)
        self.store = TaskStore(self.data_dir)
        self.search_backend = search_backend
        logger.debug(f"Task workspace bound to {self.data_dir}")

    @classmethod
    def for_root(cls, root: Optional[Path | str] = None) -> "TaskWorkspace":
        """Workspace for a project root, honouring the ``DATA_DIR`` rules."""
        return cls(resolve_data_dir(root))

    def _commit(self, tasks: Sequence[Task], reason: str, **extra_fields: Any) -> None:
        self.store.save_all(tasks)
        notify_tasks_changed(reason, task_count=len(tasks), **extra_fields)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all_tasks(self) -> List[Task]:
        return self.store.load_all()

    def get_task_by_id(self, task_id: str) -> Optional[Task]:
        return find_task(self.store.load_all(), task_id)

    def list_tasks(self, status: Optional[str] = None) -> Dict[str, Any]:
        """Tasks grouped by status, optionally filtered to one status."""
        tasks = self.store.load_all()
        grouped: Dict[str, List[Task]] = {state.value: [] for state in TaskStatus}
        for task in tasks:
            grouped[task.status.value].append(task)

        if status and status != "all":
            selected = grouped.get(TaskStatus(status).value, [])
        else:
            selected = tasks

        return {
            "status": status or "all",
            "tasks": selected,
            "counts": {state: len(items) for state, items in grouped.items()},
            "total": len(tasks),
        }

    def get_executable_tasks(self) -> List[Task]:
        return executable_tasks(self.store.load_all())

    # ------------------------------------------------------------------
    # Single-task mutations
    # ------------------------------------------------------------------

    def create_task(
        self,
        name: str,
        description: str,
        notes: Optional[str] = None,
        dependencies: Optional[Iterable[str]] = None,
        related_files: Optional[List[RelatedFile]] = None,
    ) -> Task:
        """Create a pending task; dependency references resolve by id or name."""
        with log_operation("create_task", name=name):
            tasks = self.store.load_all()
            name_to_id = {task.name: task.id for task in tasks}
            known_ids = {task.id for task in tasks}
            now = utcnow()
            task = Task(
                id=str(uuid.uuid4()),
                name=name,
                description=description,
                notes=notes,
                status=TaskStatus.PENDING,
                dependencies=resolve_dependencies(dependencies or [], name_to_id, known_ids),
                created_at=now,
                updated_at=now,
                related_files=related_files,
            )
            tasks.append(task)
            self._commit(tasks, "task_created", task_id=task.id)
            return task

    def update_task(self, task_id: str, **updates: Any) -> OperationResult:
        """Apply a partial update.

        A completed task only accepts ``summary`` and ``related_files``; any
        other field refuses the whole update and leaves the task unchanged.
        The first move to ``completed`` stamps ``completed_at``.
        """
        unknown = sorted(set(updates) - UPDATABLE_FIELDS)
        if unknown:
            return OperationResult(False, f"Unknown task fields: {', '.join(unknown)}")

        tasks = self.store.load_all()
        task = find_task(tasks, task_id)
        if task is None:
            return OperationResult(False, "The specified task cannot be found")

        if task.is_completed:
            restricted = sorted(set(updates) - COMPLETED_MUTABLE_FIELDS)
            if restricted:
                return OperationResult(
                    False,
                    f"Unable to update completed task fields: {', '.join(restricted)}",
                    task,
                )

        for key, value in updates.items():
            if key == "dependencies":
                value = [
                    dep if isinstance(dep, TaskDependency) else TaskDependency(task_id=dep)
                    for dep in value or []
                ]
            elif key == "status":
                value = TaskStatus(value)
            setattr(task, key, value)
        if task.is_completed and task.completed_at is None:
            task.completed_at = utcnow()
        task.touch()

        self._commit(tasks, "task_updated", task_id=task_id, fields=sorted(updates))
        return OperationResult(True, "Task updated", task)

    def update_task_status(self, task_id: str, status: TaskStatus | str) -> OperationResult:
        new_status = TaskStatus(status)
        current = self.get_task_by_id(task_id)
        if current is None:
            return OperationResult(False, "The specified task cannot be found")

        result = self.update_task(task_id, status=new_status)
        if result.success:
            log_status_change(task_id, current.status.value, new_status.value)
        return result

    def update_task_summary(self, task_id: str, summary: str) -> OperationResult:
        return self.update_task(task_id, summary=summary)

    def update_task_content(
        self,
        task_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        dependencies: Optional[List[str]] = None,
        related_files: Optional[List[RelatedFile]] = None,
        implementation_guide: Optional[str] = None,
        verification_criteria: Optional[str] = None,
    ) -> OperationResult:
        """Edit the content of an unfinished task."""
        task = self.get_task_by_id(task_id)
        if task is None:
            return OperationResult(False, "The specified task cannot be found")
        if task.is_completed:
            return OperationResult(False, "Unable to update completed tasks", task)

        if related_files and not all(item.has_valid_line_range() for item in related_files):
            return OperationResult(
                False,
                "Invalid line range: start and end lines must be set together and start must not exceed end",
                task,
            )

        candidates = {
            "name": name,
            "description": description,
            "notes": notes,
            "related_files": related_files,
            "implementation_guide": implementation_guide,
            "verification_criteria": verification_criteria,
        }
        updates = {key: value for key, value in candidates.items() if value is not None}
        if dependencies is not None:
            tasks = self.store.load_all()
            name_to_id = {item.name: item.id for item in tasks}
            known_ids = {item.id for item in tasks}
            updates["dependencies"] = resolve_dependencies(dependencies, name_to_id, known_ids)

        if not updates:
            return OperationResult(True, "No content updates were provided", task)

        result = self.update_task(task_id, **updates)
        if result.success:
            result.message = "Task content has been successfully updated"
        return result

    def update_task_related_files(self, task_id: str, related_files: List[RelatedFile]) -> OperationResult:
        task = self.get_task_by_id(task_id)
        if task is None:
            return OperationResult(False, "The specified task cannot be found")
        if task.is_completed:
            return OperationResult(False, "Unable to update completed tasks", task)

        result = self.update_task(task_id, related_files=related_files)
        if result.success:
            result.message = f"Related files updated, {len(related_files)} files in total"
        return result

    def delete_task(self, task_id: str) -> OperationResult:
        tasks = self.store.load_all()
        check = can_delete(tasks, task_id)
        if not check.can_delete:
            return OperationResult(False, check.reason, find_task(tasks, task_id))

        remaining = [task for task in tasks if task.id != task_id]
        self._commit(remaining, "task_deleted", task_id=task_id)
        return OperationResult(True, "Task deleted successfully")

    # ------------------------------------------------------------------
    # Graph queries
    # ------------------------------------------------------------------

    def can_execute(self, task_id: str) -> ExecutionCheck:
        return can_execute(self.store.load_all(), task_id)

    def can_delete(self, task_id: str) -> DeletionCheck:
        return can_delete(self.store.load_all(), task_id)

    def assess_complexity(self, task_id: str) -> Optional[ComplexityAssessment]:
        task = self.get_task_by_id(task_id)
        if task is None:
            return None
        return assess_complexity(task)

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    @log_performance("batch_merge")
    def batch_merge(
        self,
        definitions: Sequence[TaskDefinition],
        update_mode: UpdateMode | str,
        global_analysis_result: Optional[str] = None,
    ) -> BatchMergeOutcome:
        """Merge a batch into the store under the given update mode."""
        try:
            mode = UpdateMode.parse(update_mode)
            validate_batch(definitions)
        except BatchValidationError as e:
            logger.warning(f"Rejected batch: {e}")
            return BatchMergeOutcome(False, str(e))

        with log_operation("batch_merge", update_mode=mode.value, batch_size=len(definitions)):
            backup_file = None
            prefix = ""
            if mode is UpdateMode.CLEAR_ALL_TASKS:
                cleared = self.clear_all()
                if not cleared.success:
                    return BatchMergeOutcome(False, cleared.message)
                backup_file = cleared.backup_file
                prefix = cleared.message + "\n"

            existing = self.store.load_all()
            effective_mode = UpdateMode.APPEND if mode is UpdateMode.CLEAR_ALL_TASKS else mode
            result = merge_batch(existing, definitions, effective_mode, global_analysis_result)
            self._commit(result.all_tasks, "batch_merged", update_mode=mode.value)
            log_batch_merge(mode.value, len(result.changed), len(result.kept), skipped=result.skipped)

        messages = {
            UpdateMode.APPEND: f"Successfully added {len(result.changed)} new tasks.",
            UpdateMode.OVERWRITE: (
                f"Unfinished tasks were cleared and {len(result.changed)} new tasks were created."
            ),
            UpdateMode.SELECTIVE: f"Selectively updated or created {len(result.changed)} tasks.",
            UpdateMode.CLEAR_ALL_TASKS: f"Created {len(result.changed)} new tasks.",
        }
        message = prefix + messages[mode]
        if result.skipped:
            message += " Completed tasks left untouched: " + ", ".join(result.skipped) + "."
        return BatchMergeOutcome(True, message, result.changed, backup_file)

    def clear_all(self) -> ClearResult:
        """Archive completed tasks to the memory directory and empty the store."""
        with log_operation("clear_all"):
            tasks = self.store.load_all()
            if not tasks:
                return ClearResult(True, "No tasks to be cleared")

            completed = [task for task in tasks if task.is_completed]
            archive_path = self.store.write_archive(completed)
            self._commit([], "tasks_cleared", archive=archive_path.name)
            log_tasks_cleared(len(tasks), len(completed), archive=archive_path.name)

        return ClearResult(
            True,
            f"All tasks have been cleared: {len(tasks)} tasks removed, "
            f"{len(completed)} completed tasks backed up to the memory directory",
            backup_file=archive_path.name,
            removed_count=len(tasks),
            archived_count=len(completed),
        )

    # ------------------------------------------------------------------
    # Execution lifecycle
    # ------------------------------------------------------------------

    def execute_task(self, task_id: str) -> Dict[str, Any]:
        """Move an executable task to ``in_progress`` and gather its context."""
        tasks = self.store.load_all()
        task = find_task(tasks, task_id)
        if task is None:
            return {"success": False, "message": f"No task with ID '{task_id}' was found"}

        if task.is_completed:
            return {
                "success": False,
                "message": f'Task "{task.name}" is already completed. Delete and recreate it to run it again.',
            }
        if task.status is TaskStatus.IN_PROGRESS:
            return {"success": False, "message": f'Task "{task.name}" is already in progress'}

        check = can_execute(tasks, task_id)
        if not check.can_execute:
            return {
                "success": False,
                "message": (
                    f'Task "{task.name}" cannot be executed yet, blocked by unfinished dependencies: '
                    + ", ".join(check.blocked_by)
                ),
                "blocked_by": check.blocked_by,
            }

        started = self.update_task_status(task_id, TaskStatus.IN_PROGRESS)
        if not started.success:
            return {"success": False, "message": started.message}

        by_id = {item.id: item for item in tasks}
        dependency_tasks = [by_id[dep_id] for dep_id in task.dependency_ids() if dep_id in by_id]

        return {
            "success": True,
            "message": f'Task "{task.name}" is now in progress',
            "task": started.task,
            "complexity": assess_complexity(started.task),
            "dependency_tasks": dependency_tasks,
            "related_files": summarize_related_files(task.related_files),
        }

    def verify_task(self, task_id: str, score: int, summary: str) -> OperationResult:
        """Complete an in-progress task when the verification score passes."""
        if not 0 <= score <= 100:
            return OperationResult(False, "Score must be between 0 and 100")

        tasks = self.store.load_all()
        task = find_task(tasks, task_id)
        if task is None:
            return OperationResult(False, "The specified task cannot be found")
        if task.status is not TaskStatus.IN_PROGRESS:
            return OperationResult(
                False,
                f'Task "{task.name}" is {task.status.value}; only in-progress tasks can be verified',
                task,
            )

        if score < VERIFICATION_PASS_SCORE:
            return OperationResult(
                False,
                f"Verification did not pass (score {score} < {VERIFICATION_PASS_SCORE}). "
                f"Fix the issues and verify again: {summary}",
                task,
            )

        old_status = task.status
        task.status = TaskStatus.COMPLETED
        task.completed_at = task.completed_at or utcnow()
        task.summary = summary
        task.touch()
        self._commit(tasks, "task_completed", task_id=task_id)
        log_status_change(task_id, old_status.value, task.status.value, score=score)
        return OperationResult(True, f'Task "{task.name}" has been verified and completed', task)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_tasks(self, query: str, is_id: bool = False, page: int = 1, page_size: int = 5) -> SearchResult:
        return search_tasks(self.store, query, is_id, page, page_size, backend=self.search_backend)

    def get_task_detail(self, task_id: str) -> Optional[Task]:
        """Find a task by id in the live store or the archive snapshots."""
        result = self.search_tasks(task_id, is_id=True, page=1, page_size=1)
        return copy.deepcopy(result.tasks[0]) if result.tasks else None
