"""Complexity assessment for a single task."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from .models import Task


class TaskComplexityLevel(str, Enum):
    LOW = "Low complexity"
    MEDIUM = "Medium complexity"
    HIGH = "High complexity"
    VERY_HIGH = "Extremely complex"


_LEVEL_ORDER = [
    TaskComplexityLevel.LOW,
    TaskComplexityLevel.MEDIUM,
    TaskComplexityLevel.HIGH,
    TaskComplexityLevel.VERY_HIGH,
]


@dataclass(frozen=True, slots=True)
class Thresholds:
    medium: int
    high: int
    very_high: int

    def bucket(self, value: int) -> TaskComplexityLevel:
        if value >= self.very_high:
            return TaskComplexityLevel.VERY_HIGH
        if value >= self.high:
            return TaskComplexityLevel.HIGH
        if value >= self.medium:
            return TaskComplexityLevel.MEDIUM
        return TaskComplexityLevel.LOW


DESCRIPTION_LENGTH = Thresholds(medium=500, high=1000, very_high=2000)
DEPENDENCIES_COUNT = Thresholds(medium=2, high=5, very_high=10)
NOTES_LENGTH = Thresholds(medium=200, high=500, very_high=1000)

_BASE_RECOMMENDATIONS: Dict[TaskComplexityLevel, List[str]] = {
    TaskComplexityLevel.LOW: [
        "This task is relatively simple and can be executed directly",
        "Set clear completion criteria so that acceptance has a concrete basis",
    ],
    TaskComplexityLevel.MEDIUM: [
        "This task has some complexity; plan the execution steps in detail",
        "Work in phases and check progress regularly to keep the implementation accurate and complete",
    ],
    TaskComplexityLevel.HIGH: [
        "This task is complex; analyse and plan thoroughly before starting",
        "Consider splitting the task into smaller, independently executable subtasks",
        "Define clear milestones and checkpoints to track progress and quality",
    ],
    TaskComplexityLevel.VERY_HIGH: [
        "⚠️ This task is extremely complex; split it into several independent tasks",
        "Analyse and plan in detail before execution, defining the scope and interface of each subtask",
        "Assess the risks of the task, identify likely obstacles and prepare responses",
        "Define specific testing and verification criteria for the output of each subtask",
    ],
}


@dataclass(slots=True)
class ComplexityAssessment:
    level: TaskComplexityLevel
    description_length: int
    dependencies_count: int
    notes_length: int
    has_notes: bool
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "metrics": {
                "descriptionLength": self.description_length,
                "dependenciesCount": self.dependencies_count,
                "notesLength": self.notes_length,
                "hasNotes": self.has_notes,
            },
            "recommendations": list(self.recommendations),
        }


def assess_complexity(task: Task) -> ComplexityAssessment:
    """Score a task; the overall level is the highest level of any metric."""
    description_length = len(task.description)
    dependencies_count = len(task.dependencies)
    notes_length = len(task.notes) if task.notes else 0

    level = max(
        DESCRIPTION_LENGTH.bucket(description_length),
        DEPENDENCIES_COUNT.bucket(dependencies_count),
        NOTES_LENGTH.bucket(notes_length),
        key=_LEVEL_ORDER.index,
    )

    recommendations = list(_BASE_RECOMMENDATIONS[level])
    if level is TaskComplexityLevel.MEDIUM and dependencies_count > 0:
        recommendations.append("Check the completion status and output quality of every dependency")
    elif level is TaskComplexityLevel.HIGH and dependencies_count > DEPENDENCIES_COUNT.medium:
        recommendations.append(
            "There are many dependencies; draw a dependency diagram to confirm the execution order"
        )
    elif level is TaskComplexityLevel.VERY_HIGH:
        if description_length >= DESCRIPTION_LENGTH.very_high:
            recommendations.append(
                "The description is very long; extract the key points into a structured checklist"
            )
        if dependencies_count >= DEPENDENCIES_COUNT.high:
            recommendations.append(
                "There are too many dependencies; re-evaluate the task boundaries to keep the split reasonable"
            )

    return ComplexityAssessment(
        level=level,
        description_length=description_length,
        dependencies_count=dependencies_count,
        notes_length=notes_length,
        has_notes=bool(task.notes),
        recommendations=recommendations,
    )
