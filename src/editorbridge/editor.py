"""Editor collaborator interface.

The session layer never touches editor internals directly; it asks an
:class:`EditorState` for visible files and selections. Hosts embedding
editorbridge provide their own implementation. :class:`InMemoryEditor` is
a self-contained one used by the standalone server and the tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

from editorbridge._types import Position, Range, SelectionSnapshot, SelectionState


class EditorState(Protocol):
    """What the session layer needs to know about the editor."""

    def visible_files(self, project_root: str) -> list[str]: ...

    def selection_snapshot(self, project_root: str) -> SelectionSnapshot | None: ...

    def current_selection(self, project_root: str) -> SelectionState | None: ...


def offset_to_position(text: str, offset: int) -> Position:
    """Convert a character offset into a zero-based line/character pair."""
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line=line, character=offset - line_start)


@dataclass
class _Buffer:
    uri: str
    text: str
    start: int = 0
    end: int = 0


class InMemoryEditor:
    """Editor state held in plain Python objects.

    Buffers are keyed by uri; the most recently opened or selected buffer
    is the active one. Every buffer belongs to the single project the
    editor was created for, unless no project was given.
    """

    def __init__(self, project_root: str | None = None) -> None:
        self.project_root = project_root
        self._buffers: dict[str, _Buffer] = {}
        self._active: str | None = None
        self._lock = threading.Lock()

    def open(self, uri: str, text: str = "") -> None:
        with self._lock:
            self._buffers[uri] = _Buffer(uri=uri, text=text)
            self._active = uri

    def close(self, uri: str) -> None:
        with self._lock:
            self._buffers.pop(uri, None)
            if self._active == uri:
                self._active = next(reversed(self._buffers), None)

    def select(self, uri: str, start: int, end: int | None = None) -> None:
        """Move the cursor (``end`` omitted) or select ``[start, end)``."""
        with self._lock:
            buf = self._buffers[uri]
            buf.start = start
            buf.end = start if end is None else end
            self._active = uri

    # --- EditorState ---

    def _owns(self, project_root: str) -> bool:
        return self.project_root is None or self.project_root == project_root

    def visible_files(self, project_root: str) -> list[str]:
        if not self._owns(project_root):
            return []
        with self._lock:
            return list(self._buffers)

    def selection_snapshot(self, project_root: str) -> SelectionSnapshot | None:
        if not self._owns(project_root):
            return None
        with self._lock:
            buf = self._buffers.get(self._active) if self._active else None
            if buf is None:
                return None
            return SelectionSnapshot(
                uri=buf.uri,
                has_selection=buf.start != buf.end,
                start=buf.start,
                end=buf.end,
            )

    def current_selection(self, project_root: str) -> SelectionState | None:
        if not self._owns(project_root):
            return None
        with self._lock:
            buf = self._buffers.get(self._active) if self._active else None
            if buf is None:
                return None
            lo, hi = sorted((buf.start, buf.end))
            rng = Range(
                start=offset_to_position(buf.text, lo),
                end=offset_to_position(buf.text, hi),
                text=buf.text[lo:hi],
            )
            return SelectionState(uri=buf.uri, selections=[rng])
