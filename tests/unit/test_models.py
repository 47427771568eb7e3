"""Unit tests for task graph data models.

This module tests the task record, its dependency links and related
files, and their JSON representation.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from taskgraph.errors import TaskStoreError
from taskgraph.models import (
    COMPLETED_MUTABLE_FIELDS,
    ClearResult,
    DeletionCheck,
    ExecutionCheck,
    OperationResult,
    RelatedFile,
    RelatedFileType,
    Task,
    TaskDependency,
    TaskStatus,
    format_timestamp,
    parse_timestamp,
    utcnow,
)


def make_task(**overrides):
    data = {
        "id": "11111111-1111-4111-8111-111111111111",
        "name": "Write parser",
        "description": "Parse the config file",
    }
    data.update(overrides)
    return Task(**data)


class TestTimestamps:
    """Test cases for timestamp helpers."""

    def test_format_timestamp_uses_z_suffix(self):
        """Test that timestamps serialize with millisecond precision and Z."""
        value = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-01-02T03:04:05.678Z"

    def test_parse_timestamp_round_trip(self):
        """Test parsing a formatted timestamp."""
        parsed = parse_timestamp("2024-01-02T03:04:05.678Z")
        assert parsed == datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    def test_parse_timestamp_naive_is_utc(self):
        """Test that timestamps without an offset are treated as UTC."""
        parsed = parse_timestamp("2024-01-02T03:04:05")
        assert parsed.tzinfo is timezone.utc

    @pytest.mark.parametrize("value", [None, "", "not a date", 42])
    def test_parse_timestamp_invalid(self, value):
        """Test that missing or invalid timestamps parse to None."""
        assert parse_timestamp(value) is None

    def test_utcnow_matches_persisted_precision(self):
        """Test that a fresh timestamp survives a format/parse round trip."""
        with patch("taskgraph.models.datetime") as fake_datetime:
            fake_datetime.now.return_value = datetime(2024, 1, 2, 3, 4, 5, 678999, tzinfo=timezone.utc)
            now = utcnow()

        assert now.microsecond == 678000
        assert parse_timestamp(format_timestamp(now)) == now


class TestTaskDependency:
    """Test cases for TaskDependency."""

    def test_to_dict(self):
        assert TaskDependency("abc").to_dict() == {"taskId": "abc"}

    def test_from_dict_accepts_plain_string(self):
        """Test that bare id strings are accepted."""
        assert TaskDependency.from_dict("abc").task_id == "abc"

    def test_from_dict_rejects_bad_shape(self):
        with pytest.raises(TaskStoreError):
            TaskDependency.from_dict({"id": "abc"})


class TestRelatedFile:
    """Test cases for RelatedFile."""

    def test_to_dict_omits_unset_fields(self):
        """Test that optional fields are left out when unset."""
        item = RelatedFile(path="src/app.py", type=RelatedFileType.TO_MODIFY)
        assert item.to_dict() == {"path": "src/app.py", "type": "TO_MODIFY"}

    def test_from_dict_with_line_range(self):
        """Test loading camelCase line range keys."""
        item = RelatedFile.from_dict({
            "path": "src/app.py",
            "type": "REFERENCE",
            "description": "entry point",
            "lineStart": 10,
            "lineEnd": 20,
        })
        assert item.type is RelatedFileType.REFERENCE
        assert item.line_start == 10
        assert item.line_end == 20
        assert item.to_dict()["lineEnd"] == 20

    def test_from_dict_unknown_type(self):
        with pytest.raises(TaskStoreError):
            RelatedFile.from_dict({"path": "a.py", "type": "SOMETHING"})

    @pytest.mark.parametrize(
        "start,end,valid",
        [
            (None, None, True),
            (1, 1, True),
            (5, 10, True),
            (10, 5, False),
            (0, 5, False),
            (5, None, False),
            (None, 5, False),
        ],
    )
    def test_line_range_validation(self, start, end, valid):
        """Test that line ranges need both ends, positive and ordered."""
        item = RelatedFile(path="a.py", type=RelatedFileType.OTHER, line_start=start, line_end=end)
        assert item.has_valid_line_range() is valid


class TestTask:
    """Test cases for Task."""

    def test_defaults(self):
        """Test that a new task is pending without dependencies."""
        task = make_task()
        assert task.status is TaskStatus.PENDING
        assert task.dependencies == []
        assert task.completed_at is None
        assert not task.is_completed

    def test_to_dict_uses_camel_case_and_omits_none(self):
        """Test the persisted representation."""
        task = make_task(
            notes="careful",
            dependencies=[TaskDependency("dep-1")],
            implementation_guide="step by step",
        )
        data = task.to_dict()

        assert data["id"] == task.id
        assert data["status"] == "pending"
        assert data["dependencies"] == [{"taskId": "dep-1"}]
        assert data["implementationGuide"] == "step by step"
        assert data["createdAt"].endswith("Z")
        assert "completedAt" not in data
        assert "summary" not in data
        assert "relatedFiles" not in data

    def test_from_dict_round_trip(self):
        """Test loading a task from its persisted representation."""
        original = make_task(
            status=TaskStatus.COMPLETED,
            completed_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            summary="done",
            related_files=[RelatedFile(path="a.py", type=RelatedFileType.CREATE)],
        )
        loaded = Task.from_dict(original.to_dict())

        assert loaded.id == original.id
        assert loaded.status is TaskStatus.COMPLETED
        assert loaded.completed_at == original.completed_at
        assert loaded.summary == "done"
        assert loaded.related_files[0].type is RelatedFileType.CREATE

    def test_from_dict_defaults_missing_fields(self):
        """Test that missing status and timestamps get defaults."""
        task = Task.from_dict({"id": "x", "name": "n", "description": "d"})
        assert task.status is TaskStatus.PENDING
        assert task.created_at is not None
        assert task.related_files is None

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"name": "n", "description": "d"},
            {"id": "x", "name": 3, "description": "d"},
            {"id": "x", "name": "n", "description": "d", "status": "done"},
            {"id": "x", "name": "n", "description": "d", "dependencies": [{"wrong": 1}]},
        ],
    )
    def test_from_dict_rejects_bad_records(self, data):
        """Test that ill-shaped records raise TaskStoreError."""
        with pytest.raises(TaskStoreError):
            Task.from_dict(data)

    def test_dependency_helpers(self):
        task = make_task(dependencies=[TaskDependency("a"), TaskDependency("b")])
        assert task.dependency_ids() == ["a", "b"]
        assert task.depends_on("b")
        assert not task.depends_on("c")

    def test_touch_refreshes_updated_at(self):
        """Test that touch moves updated_at forward."""
        task = make_task(updated_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        task.touch()
        assert task.updated_at.year > 2000

    def test_completed_mutable_fields(self):
        assert COMPLETED_MUTABLE_FIELDS == {"summary", "related_files"}


class TestResultRecords:
    """Test cases for operation result records."""

    def test_operation_result_includes_task(self):
        result = OperationResult(True, "ok", make_task())
        data = result.to_dict()
        assert data["success"] is True
        assert data["task"]["name"] == "Write parser"

    def test_operation_result_without_task(self):
        assert OperationResult(False, "missing").to_dict() == {"success": False, "message": "missing"}

    def test_clear_result(self):
        data = ClearResult(True, "cleared", "tasks_memory_x.json", 3, 1).to_dict()
        assert data["backup_file"] == "tasks_memory_x.json"
        assert data["removed_count"] == 3
        assert data["archived_count"] == 1

    def test_checks(self):
        assert ExecutionCheck(False, ["a"]).to_dict() == {"can_execute": False, "blocked_by": ["a"]}
        assert DeletionCheck(True).to_dict() == {"can_delete": True, "reason": "", "blockers": []}
