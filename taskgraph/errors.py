"""Exception types raised by the task graph core."""

from __future__ import annotations


class TaskGraphError(Exception):
    """Base class for task graph failures."""


class TaskStoreError(TaskGraphError):
    """The task document could not be read or has an invalid shape."""


class BatchValidationError(TaskGraphError):
    """A batch of task definitions is structurally invalid."""
