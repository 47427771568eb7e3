"""Unit tests for task search over the store and its archives."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

from taskgraph.models import Task, TaskStatus
from taskgraph.search import (
    MAX_ARCHIVES_TO_READ,
    GrepSearchBackend,
    InProcessSearchBackend,
    paginate,
    search_tasks,
    split_keywords,
    task_matches,
)
from taskgraph.store import ARCHIVE_PREFIX, TaskStore

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def task(task_id, name, offset=0, completed_offset=None, **overrides):
    return Task(
        id=task_id,
        name=name,
        description=overrides.pop("description", f"{name} description"),
        status=TaskStatus.COMPLETED if completed_offset is not None else TaskStatus.PENDING,
        updated_at=BASE + timedelta(hours=offset),
        completed_at=BASE + timedelta(hours=completed_offset) if completed_offset is not None else None,
        **overrides,
    )


def write_archive(store, stamp, tasks):
    store.memory_dir.mkdir(parents=True, exist_ok=True)
    path = store.memory_dir / f"{ARCHIVE_PREFIX}{stamp}.json"
    store._write_document(path, tasks)
    return path


class TestMatching:
    """Test cases for keyword and id matching."""

    def test_split_keywords(self):
        assert split_keywords("  login   page ") == ["login", "page"]

    def test_all_keywords_must_match(self):
        item = task("a", "Login page", notes="uses OAuth")
        assert task_matches(item, "login oauth", is_id=False)
        assert not task_matches(item, "login payment", is_id=False)

    def test_keywords_are_case_insensitive_and_search_summary(self):
        item = task("a", "Build", summary="Deployed to STAGING")
        assert task_matches(item, "staging", is_id=False)

    def test_keywords_search_implementation_guide(self):
        item = task("a", "Build", implementation_guide="use the cache layer")
        assert task_matches(item, "cache", is_id=False)

    def test_empty_query_matches_everything(self):
        assert task_matches(task("a", "Anything"), "   ", is_id=False)

    def test_id_mode_is_exact(self):
        item = task("abc", "Name")
        assert task_matches(item, "abc", is_id=True)
        assert not task_matches(item, "ab", is_id=True)


class TestPaginate:
    """Test cases for pagination."""

    def test_page_is_clamped(self):
        items = [task(str(i), f"T{i}") for i in range(7)]

        result = paginate(items, page=9, page_size=3)

        assert result.pagination.current_page == 3
        assert result.pagination.total_pages == 3
        assert result.pagination.has_more is False
        assert [item.id for item in result.tasks] == ["6"]

    def test_first_page_has_more(self):
        items = [task(str(i), f"T{i}") for i in range(4)]
        result = paginate(items, page=0, page_size=3)
        assert result.pagination.current_page == 1
        assert result.pagination.has_more is True

    def test_empty_results_have_one_page(self):
        result = paginate([], page=1, page_size=5)
        assert result.pagination.total_pages == 1
        assert result.pagination.total_results == 0
        assert result.to_dict()["pagination"]["hasMore"] is False


class TestSearchTasks:
    """Test cases for search_tasks."""

    def test_current_tasks(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([task("a", "Login page"), task("b", "Payment")])

        result = search_tasks(store, "login")

        assert [item.id for item in result.tasks] == ["a"]

    def test_archives_are_searched(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([])
        write_archive(store, "2024-01-01T00-00-00", [task("old", "Login legacy", completed_offset=1)])

        result = search_tasks(store, "login")

        assert [item.id for item in result.tasks] == ["old"]

    def test_current_task_wins_over_archived_copy(self, tmp_path):
        """Test that a task in both places is reported from the live store."""
        store = TaskStore(tmp_path)
        store.save_all([task("a", "Login page", description="current")])
        write_archive(store, "2024-01-01T00-00-00", [task("a", "Login page", description="archived")])

        result = search_tasks(store, "login")

        assert len(result.tasks) == 1
        assert result.tasks[0].description == "current"

    def test_sort_completed_first_then_updated(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([
            task("p1", "Job one", offset=1),
            task("p2", "Job two", offset=5),
            task("c1", "Job three", completed_offset=2),
            task("c2", "Job four", completed_offset=8),
        ])

        result = search_tasks(store, "job", page_size=10)

        assert [item.id for item in result.tasks] == ["c2", "c1", "p2", "p1"]

    def test_id_search(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([task("a", "A")])
        write_archive(store, "2024-01-01T00-00-00", [task("b", "B", completed_offset=0)])

        assert [item.id for item in search_tasks(store, "b", is_id=True).tasks] == ["b"]
        assert search_tasks(store, "zzz", is_id=True).tasks == []

    def test_only_newest_archives_are_read(self, tmp_path):
        """Test that at most MAX_ARCHIVES_TO_READ snapshots are loaded."""
        store = TaskStore(tmp_path)
        store.save_all([])
        for day in range(1, MAX_ARCHIVES_TO_READ + 3):
            write_archive(store, f"2024-01-{day:02d}T00-00-00", [task(f"t{day}", "Widget", completed_offset=day)])

        result = search_tasks(store, "widget", page_size=50)

        ids = {item.id for item in result.tasks}
        assert len(ids) == MAX_ARCHIVES_TO_READ
        assert "t1" not in ids
        assert "t2" not in ids
        assert f"t{MAX_ARCHIVES_TO_READ + 2}" in ids

    def test_newest_archives_follow_numeric_suffix(self, tmp_path):
        """Test that snapshots written in the same second are read newest first."""
        store = TaskStore(tmp_path)
        store.save_all([])
        stamp = "2024-01-01T00-00-00"
        write_archive(store, stamp, [task("t0", "Widget", completed_offset=0)])
        for suffix in range(1, 13):
            write_archive(store, f"{stamp}_{suffix}", [task(f"t{suffix}", "Widget", completed_offset=suffix)])

        result = search_tasks(store, "widget", page_size=50)

        ids = {item.id for item in result.tasks}
        assert ids == {f"t{suffix}" for suffix in range(3, 13)}

    def test_corrupt_archive_is_skipped(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([])
        store.memory_dir.mkdir(parents=True)
        (store.memory_dir / f"{ARCHIVE_PREFIX}bad.json").write_text("{broken widget", encoding="utf-8")
        write_archive(store, "2024-01-01T00-00-00", [task("ok", "Widget", completed_offset=1)])

        result = search_tasks(store, "widget")

        assert [item.id for item in result.tasks] == ["ok"]

    def test_custom_backend(self, tmp_path):
        store = TaskStore(tmp_path)
        store.save_all([])
        backend = MagicMock()
        backend.find_candidates.return_value = []

        search_tasks(store, "alpha beta", backend=backend)

        backend.find_candidates.assert_called_once_with(store.memory_dir, ["alpha", "beta"])


class TestInProcessSearchBackend:
    def test_all_terms_required(self, tmp_path):
        (tmp_path / "a.json").write_text('{"name": "Alpha Beta"}', encoding="utf-8")
        (tmp_path / "b.json").write_text('{"name": "Alpha"}', encoding="utf-8")

        found = InProcessSearchBackend().find_candidates(tmp_path, ["alpha", "BETA"])

        assert [path.name for path in found] == ["a.json"]

    def test_missing_dir(self, tmp_path):
        assert InProcessSearchBackend().find_candidates(tmp_path / "nope", ["x"]) == []


class TestGrepSearchBackend:
    """Test cases for the grep-backed candidate finder."""

    def test_intersects_results_per_term(self, tmp_path):
        outputs = {
            "alpha": f"{tmp_path}/a.json\n{tmp_path}/b.json\n",
            "beta": f"{tmp_path}/b.json\n",
        }

        def fake_run(args, **kwargs):
            term = args[args.index("--") + 1]
            return MagicMock(returncode=0, stdout=outputs[term], stderr="")

        with patch("taskgraph.search.subprocess.run", side_effect=fake_run) as run:
            found = GrepSearchBackend().find_candidates(tmp_path, ["alpha", "beta"])

        assert found == [Path(f"{tmp_path}/b.json")]
        args = run.call_args_list[0].args[0]
        assert args[0] == "grep"
        assert "-F" in args
        assert run.call_args_list[0].kwargs.get("shell") is None

    def test_no_match_exit_code(self, tmp_path):
        with patch("taskgraph.search.subprocess.run", return_value=MagicMock(returncode=1, stdout="", stderr="")):
            assert GrepSearchBackend().find_candidates(tmp_path, ["x"]) == []

    def test_error_exit_code(self, tmp_path):
        with patch("taskgraph.search.subprocess.run", return_value=MagicMock(returncode=2, stdout="", stderr="boom")):
            with pytest.raises(RuntimeError, match="boom"):
                GrepSearchBackend().find_candidates(tmp_path, ["x"])

    def test_available(self):
        with patch("taskgraph.search.shutil.which", return_value=None):
            assert GrepSearchBackend.available() is False
