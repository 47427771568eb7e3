"""Batch merge engine.

Reconciles a batch of task definitions with the current task collection under
one of four update modes and wires up the dependencies the batch declares.
The engine is pure: it receives the existing tasks and returns the tasks to
keep plus the tasks it created or updated; persisting them is the caller's job.

Update modes:

``append``
    Keep every existing task; each definition becomes a new task.
``overwrite``
    Keep only completed tasks; each definition becomes a new task.
``selective``
    Definitions are matched to existing tasks by exact name. A match that is
    not completed is updated in place (same id and creation time). A match that
    is completed is left alone and the definition produces nothing. Unmatched
    definitions become new tasks. Every other existing task is kept, including
    tasks that share a name with the match.
``clearAllTasks``
    Nothing is kept. The workspace archives and clears the store before
    calling the engine, so the batch behaves like ``append`` on an empty store.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .errors import BatchValidationError, TaskStoreError
from .models import RelatedFile, Task, TaskStatus, utcnow
from .resolver import resolve_dependencies


class UpdateMode(str, Enum):
    APPEND = "append"
    OVERWRITE = "overwrite"
    SELECTIVE = "selective"
    CLEAR_ALL_TASKS = "clearAllTasks"

    @classmethod
    def parse(cls, value: "UpdateMode | str") -> "UpdateMode":
        try:
            return cls(value)
        except ValueError as exc:
            choices = ", ".join(mode.value for mode in cls)
            raise BatchValidationError(f"Unknown update mode '{value}'. Expected one of: {choices}") from exc


@dataclass(slots=True)
class TaskDefinition:
    """One entry of a batch, as authored by the planner."""

    name: str
    description: str
    notes: Optional[str] = None
    dependencies: Optional[List[str]] = None  # None: key omitted
    related_files: Optional[List[RelatedFile]] = None
    implementation_guide: Optional[str] = None
    verification_criteria: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskDefinition":
        """Build from tool input, which uses the persisted camelCase keys.

        Raises BatchValidationError when a field has the wrong JSON type.
        """
        if not isinstance(data, dict):
            raise BatchValidationError(f"Task definition must be an object, got {type(data).__name__}")
        label = data.get("name") if isinstance(data.get("name"), str) else "<unnamed>"
        for key in ("name", "description", "notes", "implementationGuide", "verificationCriteria"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise BatchValidationError(f"Task '{label}': '{key}' must be a string")

        raw_dependencies = data.get("dependencies")
        if raw_dependencies is not None and (
            not isinstance(raw_dependencies, list)
            or not all(isinstance(ref, str) for ref in raw_dependencies)
        ):
            raise BatchValidationError(f"Task '{label}': 'dependencies' must be a list of strings")

        raw_files = data.get("relatedFiles")
        if raw_files is not None and not isinstance(raw_files, list):
            raise BatchValidationError(f"Task '{label}': 'relatedFiles' must be a list")
        try:
            related_files = (
                [RelatedFile.from_dict(item) for item in raw_files]
                if raw_files is not None
                else None
            )
        except TaskStoreError as exc:
            raise BatchValidationError(f"Task '{label}': {exc}") from exc

        return cls(
            name=data.get("name") or "",
            description=data.get("description") or "",
            notes=data.get("notes"),
            dependencies=list(raw_dependencies) if raw_dependencies is not None else None,
            related_files=related_files,
            implementation_guide=data.get("implementationGuide"),
            verification_criteria=data.get("verificationCriteria"),
        )


@dataclass(slots=True)
class MergeResult:
    """Tasks to persist after a merge: ``kept`` first, then ``changed``."""

    kept: List[Task] = field(default_factory=list)
    changed: List[Task] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # names matched to completed tasks

    @property
    def all_tasks(self) -> List[Task]:
        return [*self.kept, *self.changed]


def find_duplicate_names(definitions: Sequence[TaskDefinition]) -> List[str]:
    seen: Set[str] = set()
    duplicates: List[str] = []
    for definition in definitions:
        if definition.name in seen and definition.name not in duplicates:
            duplicates.append(definition.name)
        seen.add(definition.name)
    return duplicates


def validate_batch(definitions: Sequence[TaskDefinition]) -> None:
    """Reject structurally invalid batches before anything is computed."""
    if not definitions:
        raise BatchValidationError("Please provide at least one task")
    for index, definition in enumerate(definitions):
        if not definition.name or not definition.name.strip():
            raise BatchValidationError(f"Task #{index + 1} has no name")
        if not definition.description or not definition.description.strip():
            raise BatchValidationError(f"Task '{definition.name}' has no description")
    duplicates = find_duplicate_names(definitions)
    if duplicates:
        raise BatchValidationError(
            "There are duplicate task names in the batch, please make sure that each task name is unique: "
            + ", ".join(duplicates)
        )


def _tasks_to_keep(existing: Sequence[Task], mode: UpdateMode, replaced_ids: Set[str]) -> List[Task]:
    if mode is UpdateMode.APPEND:
        return list(existing)
    if mode is UpdateMode.OVERWRITE:
        return [task for task in existing if task.is_completed]
    if mode is UpdateMode.SELECTIVE:
        return [task for task in existing if task.id not in replaced_ids]
    return []


def _selective_matches(
    existing: Sequence[Task], definitions: Sequence[TaskDefinition]
) -> Dict[str, Task]:
    """Resolve each batch name to the existing task it refers to.

    Names resolve the way dependency references do: when several tasks share
    a name, the last one in store order wins.
    """
    by_name = {task.name: task for task in existing}
    return {
        definition.name: by_name[definition.name]
        for definition in definitions
        if definition.name in by_name
    }


def _new_task(definition: TaskDefinition, analysis_result: Optional[str]) -> Task:
    now = utcnow()
    return Task(
        id=str(uuid.uuid4()),
        name=definition.name,
        description=definition.description,
        notes=definition.notes,
        status=TaskStatus.PENDING,
        dependencies=[],
        created_at=now,
        updated_at=now,
        related_files=copy.deepcopy(definition.related_files),
        analysis_result=analysis_result,
        implementation_guide=definition.implementation_guide,
        verification_criteria=definition.verification_criteria,
    )


def _updated_task(current: Task, definition: TaskDefinition, analysis_result: Optional[str]) -> Task:
    task = copy.deepcopy(current)
    task.name = definition.name
    task.description = definition.description
    task.notes = definition.notes
    task.implementation_guide = definition.implementation_guide
    task.verification_criteria = definition.verification_criteria
    task.analysis_result = analysis_result
    if definition.related_files is not None:
        task.related_files = copy.deepcopy(definition.related_files)
    task.updated_at = utcnow()
    return task


def merge_batch(
    existing: Sequence[Task],
    definitions: Sequence[TaskDefinition],
    mode: UpdateMode | str,
    global_analysis_result: Optional[str] = None,
) -> MergeResult:
    """Compute the next task collection for a batch.

    Raises BatchValidationError before doing any work when the batch is
    structurally invalid. The ``existing`` tasks are never mutated.
    """
    update_mode = UpdateMode.parse(mode)
    validate_batch(definitions)

    matches: Dict[str, Task] = {}
    if update_mode is UpdateMode.SELECTIVE:
        matches = _selective_matches(existing, definitions)
    # only the resolved, unfinished match of a name is replaced
    replaced_ids = {task.id for task in matches.values() if not task.is_completed}
    kept = _tasks_to_keep(existing, update_mode, replaced_ids)

    name_to_id: Dict[str, str] = {}
    if update_mode is UpdateMode.SELECTIVE:
        name_to_id.update((task.name, task.id) for task in existing)
    name_to_id.update((task.name, task.id) for task in kept)
    changed: List[Task] = []
    pairs: List[Tuple[TaskDefinition, Task]] = []
    skipped: List[str] = []

    for definition in definitions:
        current = matches.get(definition.name)
        if current is not None and current.is_completed:
            skipped.append(definition.name)
            continue
        if current is not None:
            task = _updated_task(current, definition, global_analysis_result)
        else:
            task = _new_task(definition, global_analysis_result)
        name_to_id[definition.name] = task.id
        changed.append(task)
        pairs.append((definition, task))

    known_ids = {task.id for task in kept} | {task.id for task in changed}
    for definition, task in pairs:
        if definition.dependencies is not None:
            task.dependencies = resolve_dependencies(definition.dependencies, name_to_id, known_ids)

    return MergeResult(kept=kept, changed=changed, skipped=skipped)
