"""MCP server exposing the task graph tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from taskgraph import TaskWorkflow
from taskgraph.config import PROJECT_ROOT_ENV, log_settings, resolve_data_dir
from taskgraph.taskgraph_logging import setup_logging

mcp = FastMCP("task-graph")


def _resolve_root(root: Optional[str]) -> Optional[Path]:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    # resolve_data_dir falls back to the registered root provider, then the server directory
    return None


def _workflow(root: Optional[str]) -> TaskWorkflow:
    return TaskWorkflow(resolve_data_dir(_resolve_root(root)))


@mcp.tool()
def split_tasks(
    tasks: List[Dict[str, Any]],
    update_mode: str = "clearAllTasks",
    global_analysis_result: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create or update a batch of tasks.

    Each task needs a unique ``name`` and a ``description``; ``notes``,
    ``dependencies`` (task names or ids), ``relatedFiles``,
    ``implementationGuide`` and ``verificationCriteria`` are optional.
    ``update_mode`` is one of:
    - append: keep all existing tasks and add the batch
    - overwrite: drop unfinished tasks, keep completed ones, add the batch
    - selective: update unfinished tasks matched by name, add the rest
    - clearAllTasks: archive completed tasks, clear the store, add the batch
    """

    return _workflow(root).split_tasks(tasks, update_mode, global_analysis_result)


@mcp.tool()
def list_tasks(status: str = "all", root: Optional[str] = None) -> Dict[str, Any]:
    """List tasks, optionally filtered by status (all, pending, in_progress, completed)."""

    return _workflow(root).list_tasks(status)


@mcp.tool()
def execute_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Start a task whose dependencies are all completed.
    Returns the task, its complexity assessment, its dependency tasks and a
    summary of its related files."""

    return _workflow(root).execute_task(task_id)


@mcp.tool()
def verify_task(task_id: str, score: int, summary: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Verify an in-progress task. A score of 80 or more marks it completed and
    stores the summary; a lower score keeps it in progress."""

    return _workflow(root).verify_task(task_id, score, summary)


@mcp.tool()
def delete_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete an unfinished task that no other task depends on."""

    return _workflow(root).delete_task(task_id)


@mcp.tool()
def clear_all_tasks(confirm: bool, root: Optional[str] = None) -> Dict[str, Any]:
    """Archive completed tasks to the memory directory and remove every task.
    Requires confirm=true."""

    return _workflow(root).clear_all_tasks(confirm)


@mcp.tool()
def update_task(
    task_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    notes: Optional[str] = None,
    dependencies: Optional[List[str]] = None,
    related_files: Optional[List[Dict[str, Any]]] = None,
    implementation_guide: Optional[str] = None,
    verification_criteria: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Edit the content of an unfinished task. Completed tasks cannot be edited."""

    return _workflow(root).update_task(
        task_id,
        name=name,
        description=description,
        notes=notes,
        dependencies=dependencies,
        related_files=related_files,
        implementation_guide=implementation_guide,
        verification_criteria=verification_criteria,
    )


@mcp.tool()
def query_task(
    query: str,
    is_id: bool = False,
    page: int = 1,
    page_size: int = 5,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Search current and archived tasks by keywords (all must match) or by id."""

    return _workflow(root).query_task(query, is_id=is_id, page=page, page_size=page_size)


@mcp.tool()
def get_task_detail(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return the full record of a task, including archived ones."""

    return _workflow(root).get_task_detail(task_id)


@mcp.tool()
def assess_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Report a task's complexity level, recommendations and blocking dependencies."""

    return _workflow(root).assess_task(task_id)


@mcp.resource("taskgraph://tasks")
def resource_tasks() -> str:
    """Plain-text overview of the tasks in the default workspace."""

    listing = _workflow(None).list_tasks()
    if not listing.get("success"):
        return listing.get("message", "Task store unavailable")
    if not listing["tasks"]:
        return "No tasks have been created yet."

    lines = ["Task Graph"]
    for task in listing["tasks"]:
        lines.append(f"- [{task['status']}] {task['name']} ({task['id']})")
    return "\n".join(lines)


def run() -> None:
    level, log_file = log_settings()
    setup_logging(level, log_file)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
