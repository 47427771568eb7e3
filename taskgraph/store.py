"""File-backed task store.

The whole collection lives in one JSON document, ``{"tasks": [...]}``, that is
read in full and rewritten in full on every mutation. Writes go through a
temporary file and ``os.replace`` so readers never see a half-written document.

There is no locking: two processes running read-modify-write cycles at the same
time can lose one another's updates. A single active writer is assumed.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Tuple

from .config import memory_dir_path, tasks_file_path
from .errors import TaskStoreError
from .models import Task

logger = logging.getLogger("taskgraph.store")

ARCHIVE_PREFIX = "tasks_memory_"


def archive_sort_key(path: Path) -> Tuple[str, int]:
    """Order snapshots by timestamp, then by numeric collision suffix."""
    stem = path.stem
    if stem.startswith(ARCHIVE_PREFIX):
        stem = stem[len(ARCHIVE_PREFIX):]
    stamp, _, suffix = stem.rpartition("_")
    if stamp and suffix.isdigit():
        return stamp, int(suffix)
    return stem, 0


class TaskStore:
    """Load and persist the canonical task collection of one workspace."""

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)
        self.tasks_path = tasks_file_path(self.data_dir)
        self.memory_dir = memory_dir_path(self.data_dir)

    def _ensure_store(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if not self.tasks_path.exists():
            self._write_document(self.tasks_path, [])
            logger.info(f"Created empty task store at {self.tasks_path}")

    def load_all(self) -> List[Task]:
        """Read every task, creating an empty store on first access."""
        self._ensure_store()
        return self._read_document(self.tasks_path)

    def save_all(self, tasks: Iterable[Task]) -> None:
        """Atomically replace the stored collection."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._write_document(self.tasks_path, list(tasks))

    # ------------------------------------------------------------------
    # Archive snapshots
    # ------------------------------------------------------------------

    def write_archive(self, tasks: Iterable[Task]) -> Path:
        """Write a timestamped snapshot to the memory directory."""
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        path = self.memory_dir / f"{ARCHIVE_PREFIX}{stamp}.json"
        suffix = 1
        while path.exists():
            path = self.memory_dir / f"{ARCHIVE_PREFIX}{stamp}_{suffix}.json"
            suffix += 1
        self._write_document(path, list(tasks))
        return path

    def list_archives(self) -> List[Path]:
        """Archive snapshots, newest first."""
        if not self.memory_dir.exists():
            return []
        return sorted(self.memory_dir.glob("*.json"), key=archive_sort_key, reverse=True)

    def load_archive(self, path: Path | str) -> List[Task]:
        return self._read_document(Path(path))

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    @staticmethod
    def _read_document(path: Path) -> List[Task]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise TaskStoreError(f"Task document {path} is not valid JSON: {exc}") from exc

        if not isinstance(raw, dict) or not isinstance(raw.get("tasks", []), list):
            raise TaskStoreError(f"Task document {path} must be an object with a 'tasks' list")

        tasks: List[Task] = []
        for index, item in enumerate(raw.get("tasks", [])):
            try:
                tasks.append(Task.from_dict(item))
            except TaskStoreError as exc:
                raise TaskStoreError(f"{path}: task #{index}: {exc}") from exc
        return tasks

    @staticmethod
    def _write_document(path: Path, tasks: List[Task]) -> None:
        payload = {"tasks": [task.to_dict() for task in tasks]}
        tmp_path = path.with_name(f"{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
