"""Data directory resolution.

The task store never discovers its own location. A host (the MCP server)
may register a root provider returning the client's workspace root URIs;
``resolve_data_dir`` combines that root with the ``DATA_DIR`` environment
variable and hands the store a plain path.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import unquote, urlparse

logger = logging.getLogger("taskgraph.config")

DATA_DIR_ENV = "DATA_DIR"
PROJECT_ROOT_ENV = "TASKGRAPH_PROJECT_ROOT"
LOG_LEVEL_ENV = "TASKGRAPH_LOG_LEVEL"
LOG_FILE_ENV = "TASKGRAPH_LOG_FILE"

TASKS_FILE_NAME = "tasks.json"
MEMORY_DIR_NAME = "memory"

PROJECT_ROOT = Path(__file__).resolve().parent.parent

RootProvider = Callable[[], Iterable[str]]

_root_provider: Optional[RootProvider] = None


def set_root_provider(provider: RootProvider) -> None:
    """Register the callable that lists the client's root URIs."""
    global _root_provider
    _root_provider = provider


def reset_root_provider() -> None:
    global _root_provider
    _root_provider = None


def root_from_uri(uri: str) -> Optional[Path]:
    """Turn a ``file://`` URI into a path; other schemes yield None."""
    if not uri.startswith("file://"):
        return None
    parsed = urlparse(uri)
    return Path(unquote(parsed.path))


def provided_root() -> Optional[Path]:
    """First ``file://`` root reported by the registered provider, if any."""
    if _root_provider is None:
        return None
    try:
        uris = list(_root_provider())
    except Exception as e:
        logger.error(f"Failed to get roots: {e}")
        return None
    for uri in uris:
        path = root_from_uri(uri)
        if path is not None:
            return path
    return None


def resolve_data_dir(root: Optional[Path | str] = None) -> Path:
    """Return the directory holding ``tasks.json`` and the ``memory`` archive.

    ``root`` defaults to the provider's root. An absolute ``DATA_DIR`` keeps one
    sub-directory per root (named after the root's last folder); a relative one
    is placed inside the root. Without ``DATA_DIR`` the store lives in
    ``<root>/data``. When no root is known the project directory stands in.
    """
    root_path = Path(root).expanduser() if root else provided_root()
    data_dir = os.getenv(DATA_DIR_ENV)

    if data_dir:
        configured = Path(data_dir).expanduser()
        if configured.is_absolute():
            return configured / root_path.name if root_path else configured
        return (root_path or PROJECT_ROOT) / configured

    return (root_path or PROJECT_ROOT) / "data"


def tasks_file_path(data_dir: Path) -> Path:
    return data_dir / TASKS_FILE_NAME


def memory_dir_path(data_dir: Path) -> Path:
    return data_dir / MEMORY_DIR_NAME


def log_settings() -> tuple[str, Optional[Path]]:
    """Log level and optional JSON log file from the environment."""
    level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    log_file = os.getenv(LOG_FILE_ENV)
    return level, Path(log_file).expanduser() if log_file else None
