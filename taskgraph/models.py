"""Data models for the task graph.

This module contains the core data structures persisted in the task store:
tasks, their dependency links and related files, plus the small result
records returned by workspace operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import TaskStoreError


def utcnow() -> datetime:
    """Current UTC time at the millisecond precision the store persists."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp as ISO-8601 with a trailing ``Z``."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string, returning None when missing or invalid."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TaskStatus(str, Enum):
    """Stage of a task in the execution workflow."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"  # reserved, never set by the engine


class RelatedFileType(str, Enum):
    """Relationship between a file and a task."""

    TO_MODIFY = "TO_MODIFY"
    REFERENCE = "REFERENCE"
    CREATE = "CREATE"
    DEPENDENCY = "DEPENDENCY"
    OTHER = "OTHER"


# Fields a completed task still accepts through update_task
COMPLETED_MUTABLE_FIELDS = frozenset({"summary", "related_files"})


@dataclass(slots=True)
class TaskDependency:
    """Link to a task that must be completed first."""

    task_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"taskId": self.task_id}

    @classmethod
    def from_dict(cls, data: Any) -> "TaskDependency":
        if isinstance(data, str):
            return cls(task_id=data)
        if not isinstance(data, dict) or not isinstance(data.get("taskId"), str):
            raise TaskStoreError(f"Invalid dependency record: {data!r}")
        return cls(task_id=data["taskId"])


@dataclass(slots=True)
class RelatedFile:
    """A file that a task modifies, creates or reads."""

    path: str
    type: RelatedFileType
    description: Optional[str] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path, "type": self.type.value}
        if self.description is not None:
            data["description"] = self.description
        if self.line_start is not None:
            data["lineStart"] = self.line_start
        if self.line_end is not None:
            data["lineEnd"] = self.line_end
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelatedFile":
        if not isinstance(data, dict) or not isinstance(data.get("path"), str):
            raise TaskStoreError(f"Invalid related file record: {data!r}")
        try:
            file_type = RelatedFileType(data.get("type", RelatedFileType.OTHER.value))
        except ValueError as exc:
            raise TaskStoreError(f"Unknown related file type: {data.get('type')!r}") from exc
        return cls(
            path=data["path"],
            type=file_type,
            description=data.get("description"),
            line_start=data.get("lineStart"),
            line_end=data.get("lineEnd"),
        )

    def has_valid_line_range(self) -> bool:
        """Both ends set, positive and ordered; or neither set."""
        if self.line_start is None and self.line_end is None:
            return True
        if self.line_start is None or self.line_end is None:
            return False
        return 0 < self.line_start <= self.line_end


@dataclass(slots=True)
class Task:
    """A unit of work tracked by the task store."""

    id: str
    name: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    notes: Optional[str] = None
    dependencies: List[TaskDependency] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    summary: Optional[str] = None
    related_files: Optional[List[RelatedFile]] = None
    analysis_result: Optional[str] = None
    implementation_guide: Optional[str] = None
    verification_criteria: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted JSON representation."""
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        optional = {
            "notes": self.notes,
            "completedAt": format_timestamp(self.completed_at) if self.completed_at else None,
            "summary": self.summary,
            "relatedFiles": (
                [item.to_dict() for item in self.related_files]
                if self.related_files is not None
                else None
            ),
            "analysisResult": self.analysis_result,
            "implementationGuide": self.implementation_guide,
            "verificationCriteria": self.verification_criteria,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from the persisted JSON representation, validating its shape."""
        if not isinstance(data, dict):
            raise TaskStoreError(f"Task record must be an object, got {type(data).__name__}")
        for key in ("id", "name", "description"):
            if not isinstance(data.get(key), str):
                raise TaskStoreError(f"Task record is missing string field '{key}'")
        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING.value))
        except ValueError as exc:
            raise TaskStoreError(f"Unknown task status: {data.get('status')!r}") from exc

        raw_files = data.get("relatedFiles")
        now = utcnow()
        return cls(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            status=status,
            notes=data.get("notes"),
            dependencies=[TaskDependency.from_dict(dep) for dep in data.get("dependencies") or []],
            created_at=parse_timestamp(data.get("createdAt")) or now,
            updated_at=parse_timestamp(data.get("updatedAt")) or now,
            completed_at=parse_timestamp(data.get("completedAt")),
            summary=data.get("summary"),
            related_files=(
                [RelatedFile.from_dict(item) for item in raw_files]
                if isinstance(raw_files, list)
                else None
            ),
            analysis_result=data.get("analysisResult"),
            implementation_guide=data.get("implementationGuide"),
            verification_criteria=data.get("verificationCriteria"),
        )

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    def dependency_ids(self) -> List[str]:
        return [dep.task_id for dep in self.dependencies]

    def depends_on(self, task_id: str) -> bool:
        return any(dep.task_id == task_id for dep in self.dependencies)

    def touch(self) -> None:
        self.updated_at = utcnow()


@dataclass(slots=True)
class OperationResult:
    """Outcome of a mutating operation that can be refused by policy."""

    success: bool
    message: str
    task: Optional[Task] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.task is not None:
            data["task"] = self.task.to_dict()
        return data


@dataclass(slots=True)
class BatchMergeOutcome:
    """Outcome of a batch merge: the created or updated tasks."""

    success: bool
    message: str
    tasks: List[Task] = field(default_factory=list)
    backup_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "tasks": [task.to_dict() for task in self.tasks],
            "backup_file": self.backup_file,
        }


@dataclass(slots=True)
class ClearResult:
    """Outcome of clearing the store."""

    success: bool
    message: str
    backup_file: Optional[str] = None
    removed_count: int = 0
    archived_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "backup_file": self.backup_file,
            "removed_count": self.removed_count,
            "archived_count": self.archived_count,
        }


@dataclass(slots=True)
class ExecutionCheck:
    """Answer to "may this task start now?"."""

    can_execute: bool
    blocked_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"can_execute": self.can_execute, "blocked_by": list(self.blocked_by)}


@dataclass(slots=True)
class DeletionCheck:
    """Answer to "may this task be deleted?"."""

    can_delete: bool
    reason: str = ""
    blockers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "can_delete": self.can_delete,
            "reason": self.reason,
            "blockers": list(self.blockers),
        }
