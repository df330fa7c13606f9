"""Discovery files advertising running sessions to external agents.

One JSON document per listening port, ``<data-dir>/<port>.json``::

    {"workspaceFolders": ["/abs/project"], "port": 51234,
     "ideName": "EditorBridge", "authToken": "...", "pid": 4242}
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from editorbridge._utils import (
    atomic_write_text,
    canonical_project_root,
    get_data_dir,
    get_ide_name,
    is_pid_alive,
)

logger = logging.getLogger(__name__)


class LockfileRegistry:
    """Writes, reads and removes lockfiles in a data directory.

    Args:
        data_dir: Target directory (default: :func:`get_data_dir`).
        ide_name: Value of ``ideName`` (default: :func:`get_ide_name`).
    """

    def __init__(self, data_dir: Path | None = None, ide_name: str | None = None) -> None:
        self.data_dir = data_dir or get_data_dir()
        self.ide_name = ide_name or get_ide_name()

    def path_for(self, port: int) -> Path:
        return self.data_dir / f"{port}.json"

    def write(self, project_root: str, port: int, token: str) -> Path:
        """Atomically write the lockfile for ``port``."""
        path = self.path_for(port)
        info = {
            "workspaceFolders": [project_root],
            "port": port,
            "ideName": self.ide_name,
            "authToken": token,
            "pid": os.getpid(),
        }
        atomic_write_text(path, json.dumps(info, indent=2))
        logger.debug(f"Lockfile written: {path}")
        return path

    def remove(self, port: int) -> bool:
        """Delete the lockfile for ``port``; a missing file is not an error."""
        path = self.path_for(port)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            logger.debug(f"Failed to remove lockfile {path}")
            return False
        logger.debug(f"Lockfile removed: {path}")
        return True

    def remove_project(self, project_root: str) -> int:
        """Remove this process's lockfiles for ``project_root``.

        Lockfiles written by other processes are left alone.
        """
        removed = 0
        for info in self.find(project_root):
            port = info.get("port")
            if info.get("pid") == os.getpid() and isinstance(port, int) and self.remove(port):
                removed += 1
        return removed

    def read(self, port: int) -> dict[str, Any] | None:
        return _load(self.path_for(port))

    def list(self) -> list[dict[str, Any]]:
        """All parseable lockfiles, sorted by port."""
        if not self.data_dir.is_dir():
            return []
        entries = []
        for path in sorted(self.data_dir.glob("*.json")):
            info = _load(path)
            if info is not None:
                entries.append(info)
        return sorted(entries, key=lambda i: i.get("port") or 0)

    def find(self, project_root: str) -> list[dict[str, Any]]:
        """Lockfiles advertising ``project_root`` as a workspace folder."""
        root = canonical_project_root(project_root)
        return [
            info
            for info in self.list()
            if root in (info.get("workspaceFolders") or [])
        ]

    def prune_stale(self) -> int:
        """Remove lockfiles whose owning process is gone. Returns the count."""
        removed = 0
        for info in self.list():
            pid = info.get("pid")
            port = info.get("port")
            if isinstance(pid, int) and isinstance(port, int) and not is_pid_alive(pid):
                if self.remove(port):
                    removed += 1
        if removed:
            logger.info(f"Pruned {removed} stale lockfile(s)")
        return removed


def _load(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None
