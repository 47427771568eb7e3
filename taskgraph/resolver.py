"""Turn human-written dependency references into task ids.

A reference is either a task id (UUID text) or a task name. References that do
not resolve are dropped rather than reported, so a batch never fails because of
a stale or misspelled dependency.
"""

from __future__ import annotations

import re
from typing import AbstractSet, Iterable, List, Mapping, Optional

from .models import TaskDependency

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def looks_like_task_id(reference: str) -> bool:
    return bool(UUID_PATTERN.match(reference))


def resolve_dependency(
    reference: str,
    name_to_id: Mapping[str, str],
    known_ids: AbstractSet[str],
) -> Optional[TaskDependency]:
    """Resolve one reference, or return None when it points nowhere.

    UUID-shaped references are only accepted when the id is known; anything
    else is looked up as a name.
    """
    if looks_like_task_id(reference):
        if reference in known_ids:
            return TaskDependency(task_id=reference)
        return None

    task_id = name_to_id.get(reference)
    if task_id is None:
        return None
    return TaskDependency(task_id=task_id)


def resolve_dependencies(
    references: Iterable[str],
    name_to_id: Mapping[str, str],
    known_ids: AbstractSet[str],
) -> List[TaskDependency]:
    """Resolve references in order; duplicates are kept."""
    resolved: List[TaskDependency] = []
    for reference in references:
        dependency = resolve_dependency(reference, name_to_id, known_ids)
        if dependency is not None:
            resolved.append(dependency)
    return resolved
