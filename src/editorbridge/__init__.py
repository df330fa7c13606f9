"""editorbridge: expose a running editor session to an external agent.

Each project gets a loopback WebSocket server advertised through a
lockfile. An agent reads the lockfile, connects, authenticates with the
token it found there, and then receives live selection and visibility
notifications and may issue requests.

Quick Start (embedding)::

    from editorbridge import InMemoryEditor, SessionTable

    editor = InMemoryEditor()
    table = SessionTable()
    port = table.start("/path/to/project", editor=editor)

    editor.open("file:///path/to/project/main.py", "print('hi')\\n")
    table.get("/path/to/project").selection_changed()

    table.stop_all()

The functions in this module inspect and stop sessions owned by *other*
processes through their lockfiles; the CLI is built on them.
"""

from __future__ import annotations

import logging
import os
import signal
import time
from pathlib import Path
from typing import Any

from editorbridge._types import (
    AlreadyRunning,
    BridgeError,
    InvalidRequest,
    ProtocolError,
    RequestError,
    SelectionSnapshot,
    SelectionState,
)
from editorbridge._utils import canonical_project_root, health_check, is_pid_alive
from editorbridge._version import __version__
from editorbridge.debug_log import DebugSink
from editorbridge.dispatch import RequestContext, RequestDispatcher
from editorbridge.editor import EditorState, InMemoryEditor
from editorbridge.lockfile import LockfileRegistry
from editorbridge.protocol import Notification, Request, Response
from editorbridge.server import ProtocolServer
from editorbridge.sessions import SessionTable

__all__ = [
    "AlreadyRunning",
    "BridgeError",
    "DebugSink",
    "EditorState",
    "InMemoryEditor",
    "InvalidRequest",
    "LockfileRegistry",
    "Notification",
    "ProtocolError",
    "ProtocolServer",
    "Request",
    "RequestContext",
    "RequestDispatcher",
    "RequestError",
    "Response",
    "SelectionSnapshot",
    "SelectionState",
    "SessionTable",
    "__version__",
    "debug_log_path",
    "server_status",
    "stop_server",
]

logger = logging.getLogger(__name__)


def _live_entries(project_root: str, registry: LockfileRegistry) -> list[dict[str, Any]]:
    return [
        info
        for info in registry.find(project_root)
        if isinstance(info.get("pid"), int) and is_pid_alive(info["pid"])
    ]


def server_status(
    project_root: str, registry: LockfileRegistry | None = None
) -> dict[str, Any] | None:
    """Describe the live session advertised for ``project_root``.

    Returns None if no lockfile with a live owner exists. ``connected`` is
    None when the server did not answer its health check.
    """
    registry = registry or LockfileRegistry()
    entries = _live_entries(project_root, registry)
    if not entries:
        return None
    info = entries[-1]
    root = canonical_project_root(project_root)
    health = health_check(info["port"])
    return {
        "project": root,
        "project_name": Path(root).name or root,
        "port": info.get("port"),
        "pid": info.get("pid"),
        "ide_name": info.get("ideName"),
        "connected": health.get("connected") if health else None,
    }


def stop_server(
    project_root: str,
    registry: LockfileRegistry | None = None,
    timeout: float = 5.0,
) -> bool:
    """Stop the process serving ``project_root``.

    Sends SIGTERM to each live owner and waits for its lockfile to go
    away. Stale lockfiles are removed. Returns True if a live server was
    stopped; False means it was already stopped.
    """
    registry = registry or LockfileRegistry()
    stopped = False
    for info in registry.find(project_root):
        pid = info.get("pid")
        port = info.get("port")
        if not isinstance(port, int):
            continue
        if not isinstance(pid, int) or not is_pid_alive(pid):
            registry.remove(port)
            continue
        if pid == os.getpid():
            # Sessions in this process are stopped through their SessionTable
            continue
        logger.debug(f"Sending SIGTERM to editorbridge pid={pid} (port {port})")
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError:
            registry.remove(port)
            continue
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if registry.read(port) is None or not is_pid_alive(pid):
                break
            time.sleep(0.1)
        registry.remove(port)
        stopped = True
    return stopped


def debug_log_path(
    project_root: str, registry: LockfileRegistry | None = None
) -> Path | None:
    """Location of the mirrored debug log of the session for ``project_root``."""
    registry = registry or LockfileRegistry()
    entries = registry.find(project_root)
    if not entries:
        return None
    port = entries[-1].get("port")
    if not isinstance(port, int):
        return None
    return registry.data_dir / "logs" / f"{port}.log"
