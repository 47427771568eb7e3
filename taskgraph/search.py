"""Search over current tasks and archived task snapshots.

Archive candidates are located by a pluggable backend. The default scans the
snapshot files in-process; ``GrepSearchBackend`` delegates the scan to ``grep``
for large archives. Either way, matched snapshots are loaded and filtered again
in Python, so the backends only need to be a cheap superset filter.
"""

from __future__ import annotations

import logging
import math
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Protocol, Sequence

from .errors import TaskStoreError
from .models import Task
from .store import TaskStore, archive_sort_key

logger = logging.getLogger("taskgraph.search")

MAX_ARCHIVES_TO_READ = 10


class ArchiveSearchBackend(Protocol):
    def find_candidates(self, archive_dir: Path, terms: Sequence[str]) -> List[Path]:
        """Archive files that may contain every term."""
        ...


class InProcessSearchBackend:
    """Case-insensitive substring scan of each snapshot file."""

    def find_candidates(self, archive_dir: Path, terms: Sequence[str]) -> List[Path]:
        if not archive_dir.exists():
            return []
        lowered = [term.lower() for term in terms]
        matches: List[Path] = []
        for path in archive_dir.glob("*.json"):
            try:
                text = path.read_text(encoding="utf-8").lower()
            except OSError as e:
                logger.warning(f"Skipping unreadable archive {path}: {e}")
                continue
            if all(term in text for term in lowered):
                matches.append(path)
        return matches


class GrepSearchBackend:
    """Find candidate archives with ``grep -ril``, one pass per term."""

    def __init__(self, executable: str = "grep"):
        self.executable = executable

    @staticmethod
    def available(executable: str = "grep") -> bool:
        return shutil.which(executable) is not None

    def find_candidates(self, archive_dir: Path, terms: Sequence[str]) -> List[Path]:
        if not archive_dir.exists():
            return []
        candidates: set[Path] | None = None
        for term in terms or [""]:
            completed = subprocess.run(
                [self.executable, "-r", "-i", "-l", "-F", "--include=*.json", "--", term, str(archive_dir)],
                capture_output=True,
                text=True,
                check=False,
            )
            # grep exits 1 when nothing matched
            if completed.returncode not in (0, 1):
                raise RuntimeError(f"grep failed: {completed.stderr.strip()}")
            found = {Path(line) for line in completed.stdout.splitlines() if line.strip()}
            candidates = found if candidates is None else candidates & found
        return sorted(candidates or [])


@dataclass(slots=True)
class Pagination:
    current_page: int
    total_pages: int
    total_results: int
    has_more: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "totalResults": self.total_results,
            "hasMore": self.has_more,
        }


@dataclass(slots=True)
class SearchResult:
    tasks: List[Task] = field(default_factory=list)
    pagination: Pagination = field(default_factory=lambda: Pagination(1, 1, 0, False))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [task.to_dict() for task in self.tasks],
            "pagination": self.pagination.to_dict(),
        }


def split_keywords(query: str) -> List[str]:
    return [keyword for keyword in query.split() if keyword]


def task_matches(task: Task, query: str, is_id: bool) -> bool:
    """Id mode compares ids; keyword mode needs every keyword in some text field."""
    if is_id:
        return task.id == query
    keywords = split_keywords(query)
    if not keywords:
        return True
    haystacks = [
        text.lower()
        for text in (task.name, task.description, task.notes, task.implementation_guide, task.summary)
        if text
    ]
    return all(any(keyword.lower() in text for text in haystacks) for keyword in keywords)


def _sort_key(task: Task) -> tuple:
    # completed tasks first, newest completion first; then newest update first
    if task.completed_at:
        return (0, -task.completed_at.timestamp())
    return (1, -task.updated_at.timestamp())


def paginate(tasks: Sequence[Task], page: int, page_size: int) -> SearchResult:
    page_size = max(1, page_size)
    total_results = len(tasks)
    total_pages = max(1, math.ceil(total_results / page_size))
    safe_page = max(1, min(page, total_pages))
    start = (safe_page - 1) * page_size
    return SearchResult(
        tasks=list(tasks[start:start + page_size]),
        pagination=Pagination(
            current_page=safe_page,
            total_pages=total_pages,
            total_results=total_results,
            has_more=safe_page < total_pages,
        ),
    )


def search_tasks(
    store: TaskStore,
    query: str,
    is_id: bool = False,
    page: int = 1,
    page_size: int = 5,
    backend: ArchiveSearchBackend | None = None,
) -> SearchResult:
    """Search the live store and the archive snapshots, current tasks first."""
    backend = backend or InProcessSearchBackend()
    current = [task for task in store.load_all() if task_matches(task, query, is_id)]

    terms = [query] if is_id else split_keywords(query)
    archived: List[Task] = []
    candidates = sorted(backend.find_candidates(store.memory_dir, terms), key=archive_sort_key, reverse=True)
    for path in candidates[:MAX_ARCHIVES_TO_READ]:
        try:
            snapshot = store.load_archive(path)
        except (OSError, TaskStoreError) as e:
            logger.warning(f"Skipping archive {path}: {e}")
            continue
        archived.extend(task for task in snapshot if task_matches(task, query, is_id))

    merged: Dict[str, Task] = {task.id: task for task in current}
    for task in archived:
        merged.setdefault(task.id, task)

    ordered = sorted(merged.values(), key=_sort_key)
    return paginate(ordered, page, page_size)
