"""Process-wide table of running sessions, keyed by canonical project root.

The table is an explicit object owned by whoever embeds editorbridge (the
host editor integration or the standalone server) and passed to what needs
it. Lifecycle per project: table entry → server bind → lockfile write;
teardown removes the lockfile first, then stops the server.
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any

from editorbridge._types import AlreadyRunning
from editorbridge._utils import canonical_project_root
from editorbridge.debug_log import DebugSink
from editorbridge.dispatch import RequestDispatcher
from editorbridge.editor import EditorState
from editorbridge.lockfile import LockfileRegistry
from editorbridge.server import ProtocolServer

logger = logging.getLogger(__name__)


class SessionTable:
    """At most one :class:`ProtocolServer` per project.

    Every table stops its sessions at interpreter exit; ``with SessionTable()
    as table:`` stops them when the block ends instead.

    Args:
        registry: Lockfile registry (default: the configured data dir).
        mirror_debug_log: Mirror each session's debug sink to
            ``<data-dir>/logs/<port>.log``.
        server_options: Extra keyword arguments for every
            :class:`ProtocolServer` (e.g. ``debounce_delay``).
    """

    def __init__(
        self,
        registry: LockfileRegistry | None = None,
        mirror_debug_log: bool = True,
        **server_options: Any,
    ) -> None:
        self.registry = registry or LockfileRegistry()
        self.mirror_debug_log = mirror_debug_log
        self.server_options = server_options
        self._sessions: dict[str, ProtocolServer] = {}
        self._lock = threading.Lock()
        # Sessions never outlive the process; no lockfile is left behind
        atexit.register(self.stop_all)

    def __enter__(self) -> SessionTable:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop_all()

    def start(
        self,
        project_root: str,
        editor: EditorState | None = None,
        dispatcher: RequestDispatcher | None = None,
    ) -> int:
        """Start serving ``project_root`` and advertise it. Returns the port.

        Raises:
            AlreadyRunning: a session for this project exists; it is left
                untouched and no new port is bound.
        """
        root = canonical_project_root(project_root)
        with self._lock:
            existing = self._sessions.get(root)
            if existing is not None:
                raise AlreadyRunning(root, existing.port or 0)

            server = ProtocolServer(
                root,
                editor=editor,
                dispatcher=dispatcher,
                **self.server_options,
            )
            self._sessions[root] = server
            try:
                port = server.start()
                if self.mirror_debug_log:
                    server.debug_sink.path = self.registry.data_dir / "logs" / f"{port}.log"
                self.registry.write(root, port, server.token)
            except BaseException:
                self._sessions.pop(root, None)
                server.stop()
                raise

        logger.info(f"Session started for {root} on port {port}")
        return port

    def stop(self, project_root: str) -> bool:
        """Stop the session for ``project_root``.

        Returns False when there was none; stopping twice is not an error.
        """
        root = canonical_project_root(project_root)
        with self._lock:
            server = self._sessions.pop(root, None)
        if server is None:
            logger.debug(f"No session for {root}; nothing to stop")
            return False
        if server.port is not None:
            self.registry.remove(server.port)
        server.stop()
        if self.mirror_debug_log:
            server.debug_sink.close(keep_file=False)
        logger.info(f"Session stopped for {root}")
        return True

    def stop_all(self) -> int:
        """Stop every session (process shutdown). Returns how many stopped."""
        with self._lock:
            roots = list(self._sessions)
        return sum(1 for root in roots if self.stop(root))

    def get(self, project_root: str) -> ProtocolServer | None:
        with self._lock:
            return self._sessions.get(canonical_project_root(project_root))

    def status(self, project_root: str) -> dict[str, Any] | None:
        """Status of one session, or None when not running."""
        server = self.get(project_root)
        return server.status() if server is not None else None

    def sessions(self) -> list[dict[str, Any]]:
        with self._lock:
            servers = list(self._sessions.values())
        return [s.status() for s in servers]

    def debug_sink(self, project_root: str) -> DebugSink | None:
        server = self.get(project_root)
        return server.debug_sink if server is not None else None

    def __contains__(self, project_root: object) -> bool:
        if not isinstance(project_root, str):
            return False
        return self.get(project_root) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
