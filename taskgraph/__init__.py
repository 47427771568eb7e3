"""Task graph exports."""

from .errors import BatchValidationError, TaskGraphError, TaskStoreError
from .merge import TaskDefinition, UpdateMode, merge_batch
from .models import RelatedFile, RelatedFileType, Task, TaskDependency, TaskStatus
from .store import TaskStore
from .workflow import TaskWorkflow
from .workspace import TaskWorkspace

__all__ = [
    "BatchValidationError",
    "TaskGraphError",
    "TaskStoreError",
    "TaskDefinition",
    "UpdateMode",
    "merge_batch",
    "RelatedFile",
    "RelatedFileType",
    "Task",
    "TaskDependency",
    "TaskStatus",
    "TaskStore",
    "TaskWorkflow",
    "TaskWorkspace",
]
