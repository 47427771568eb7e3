"""Workflow facade for the task graph.

This module wraps ``TaskWorkspace`` operations into plain result dicts for the
tool layer. Every dict carries ``success`` and ``message``; successful results
also point the agent at the next step with ``next_suggested_action`` and
``workflow_tip``. Unexpected failures are logged with context and returned as
``{"success": False, "error": ...}`` instead of being raised to the client.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .complexity import assess_complexity
from .config import resolve_data_dir
from .merge import TaskDefinition
from .models import RelatedFile, TaskStatus
from .taskgraph_logging import log_error_with_context, log_performance
from .workspace import TaskWorkspace

logger = logging.getLogger("taskgraph.workflow")


def _failure(operation: str, error: Exception, suggestion: str, **context: Any) -> Dict[str, Any]:
    logger.error(f"Failed to {operation.replace('_', ' ')}: {error}")
    log_error_with_context(error, {"operation": operation, **context})
    return {
        "success": False,
        "error": str(error),
        "message": f"Error: {error}",
        "suggestion": suggestion,
    }


class TaskWorkflow:
    """Drives the plan / execute / verify cycle over one workspace."""

    def __init__(self, data_dir: Path | str):
        self.workspace = TaskWorkspace(data_dir)

    @classmethod
    def for_root(cls, root: Optional[Path | str] = None) -> "TaskWorkflow":
        return cls(resolve_data_dir(root))

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @log_performance("split_tasks")
    def split_tasks(
        self,
        tasks: Sequence[Dict[str, Any]],
        update_mode: str = "clearAllTasks",
        global_analysis_result: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Merge a batch of task definitions into the store."""
        try:
            definitions = [TaskDefinition.from_dict(item) for item in tasks]
            outcome = self.workspace.batch_merge(definitions, update_mode, global_analysis_result)
        except Exception as e:
            return _failure(
                "split_tasks",
                e,
                "Check the task definitions and that the data directory is writable",
                update_mode=update_mode,
                batch_size=len(tasks),
            )

        result = outcome.to_dict()
        if not outcome.success:
            result["error"] = outcome.message
            result["next_suggested_action"] = "split_tasks"
            result["workflow_tip"] = "Fix the batch and submit it again; nothing was changed"
            return result

        result["all_tasks"] = [task.to_dict() for task in self.workspace.get_all_tasks()]
        result["next_suggested_action"] = "execute_task"
        result["workflow_tip"] = "Next: pick a task whose dependencies are complete and call execute_task"
        return result

    def list_tasks(self, status: str = "all") -> Dict[str, Any]:
        try:
            listing = self.workspace.list_tasks(status)
            executable = self.workspace.get_executable_tasks()
        except ValueError:
            choices = ", ".join(["all", *(state.value for state in TaskStatus)])
            return {
                "success": False,
                "error": f"Unknown status '{status}'",
                "message": f"Status must be one of: {choices}",
            }
        except Exception as e:
            return _failure("list_tasks", e, "Check that the task store is readable", status=status)

        tasks = listing["tasks"]
        if not tasks:
            message = "No tasks in the system" if listing["total"] == 0 else f"No tasks with status '{status}'"
        else:
            message = f"Found {len(tasks)} tasks"
        return {
            "success": True,
            "message": message,
            "status": listing["status"],
            "tasks": [task.to_dict() for task in tasks],
            "counts": listing["counts"],
            "total": listing["total"],
            "executable_tasks": [{"id": task.id, "name": task.name} for task in executable],
            "next_suggested_action": "execute_task" if listing["counts"]["pending"] else "split_tasks",
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_task(self, task_id: str) -> Dict[str, Any]:
        try:
            outcome = self.workspace.execute_task(task_id)
        except Exception as e:
            return _failure("execute_task", e, "Check that the task store is readable", task_id=task_id)

        if not outcome["success"]:
            outcome["next_suggested_action"] = "list_tasks"
            return outcome

        return {
            "success": True,
            "message": outcome["message"],
            "task": outcome["task"].to_dict(),
            "complexity": outcome["complexity"].to_dict(),
            "dependency_tasks": [
                {"id": task.id, "name": task.name, "summary": task.summary}
                for task in outcome["dependency_tasks"]
            ],
            "related_files": outcome["related_files"],
            "next_suggested_action": "verify_task",
            "workflow_tip": "Implement the task, then call verify_task with a score and summary",
        }

    def verify_task(self, task_id: str, score: int, summary: str) -> Dict[str, Any]:
        try:
            result = self.workspace.verify_task(task_id, score, summary)
        except Exception as e:
            return _failure("verify_task", e, "Check that the task store is writable", task_id=task_id)

        data = result.to_dict()
        data["passed"] = result.success
        if result.success:
            data["next_suggested_action"] = "execute_task"
            data["workflow_tip"] = "Next: continue with the next executable task"
        else:
            data["next_suggested_action"] = "verify_task"
        return data

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def delete_task(self, task_id: str) -> Dict[str, Any]:
        try:
            return self.workspace.delete_task(task_id).to_dict()
        except Exception as e:
            return _failure("delete_task", e, "Check that the task store is writable", task_id=task_id)

    def clear_all_tasks(self, confirm: bool) -> Dict[str, Any]:
        if not confirm:
            return {
                "success": False,
                "message": "Clearing all tasks needs explicit confirmation; call again with confirm=true",
            }
        try:
            return self.workspace.clear_all().to_dict()
        except Exception as e:
            return _failure("clear_all_tasks", e, "Check that the data directory is writable")

    def update_task(
        self,
        task_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        dependencies: Optional[List[str]] = None,
        related_files: Optional[List[Dict[str, Any]]] = None,
        implementation_guide: Optional[str] = None,
        verification_criteria: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            files = [RelatedFile.from_dict(item) for item in related_files] if related_files is not None else None
            result = self.workspace.update_task_content(
                task_id,
                name=name,
                description=description,
                notes=notes,
                dependencies=dependencies,
                related_files=files,
                implementation_guide=implementation_guide,
                verification_criteria=verification_criteria,
            )
        except Exception as e:
            return _failure("update_task", e, "Check the update fields and the task store", task_id=task_id)
        return result.to_dict()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_task(self, query: str, is_id: bool = False, page: int = 1, page_size: int = 5) -> Dict[str, Any]:
        try:
            found = self.workspace.search_tasks(query, is_id=is_id, page=page, page_size=page_size)
        except Exception as e:
            return _failure("query_task", e, "Check that the task store is readable", query=query)

        data = found.to_dict()
        data["success"] = True
        total = found.pagination.total_results
        data["message"] = f"Found {total} matching tasks" if total else "No matching tasks"
        return data

    def get_task_detail(self, task_id: str) -> Dict[str, Any]:
        try:
            task = self.workspace.get_task_detail(task_id)
        except Exception as e:
            return _failure("get_task_detail", e, "Check that the task store is readable", task_id=task_id)

        if task is None:
            return {"success": False, "message": f"No task with ID '{task_id}' was found"}
        return {
            "success": True,
            "message": f'Task "{task.name}"',
            "task": task.to_dict(),
            "complexity": assess_complexity(task).to_dict(),
        }

    def assess_task(self, task_id: str) -> Dict[str, Any]:
        try:
            assessment = self.workspace.assess_complexity(task_id)
            check = self.workspace.can_execute(task_id)
        except Exception as e:
            return _failure("assess_task", e, "Check that the task store is readable", task_id=task_id)

        if assessment is None:
            return {"success": False, "message": f"No task with ID '{task_id}' was found"}
        return {
            "success": True,
            "message": assessment.level.value,
            "complexity": assessment.to_dict(),
            "execution": check.to_dict(),
        }
