"""Bounded, human-readable record of every frame a session handles.

Purely observational: nothing here may raise into the protocol path.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from editorbridge._types import DebugEntry, Direction

logger = logging.getLogger(__name__)

MAX_DEBUG_LINES = 1000
_FLUSH_DELAY = 1.0


class DebugSink:
    """Append-only log keeping the most recent ``max_lines`` lines.

    Eviction is FIFO by line: an entry whose text spans several lines
    counts once per line.

    Args:
        max_lines: Line budget.
        path: Optional file mirrored with the current contents (debounced,
            at most one write per second).
    """

    def __init__(self, max_lines: int = MAX_DEBUG_LINES, path: Path | None = None) -> None:
        self.max_lines = max_lines
        self.path = path
        self._lines: deque[str] = deque()
        self._lock = threading.Lock()
        self._flush_timer: threading.Timer | None = None
        self._closed = False

    def record(self, direction: Direction, project: str, text: str) -> None:
        try:
            entry = DebugEntry(
                timestamp=datetime.now(timezone.utc),
                direction=direction,
                project=project,
                text=text,
            )
            with self._lock:
                self._lines.extend(entry.format().splitlines() or [""])
                while len(self._lines) > self.max_lines:
                    self._lines.popleft()
            self._schedule_flush()
        except Exception:
            logger.debug("Failed to record debug entry", exc_info=True)

    def inbound(self, project: str, text: str) -> None:
        self.record(Direction.INBOUND, project, text)

    def outbound(self, project: str, text: str) -> None:
        self.record(Direction.OUTBOUND, project, text)

    def event(self, project: str, text: str) -> None:
        self.record(Direction.EVENT, project, text)

    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)

    def text(self) -> str:
        return "\n".join(self.lines())

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    # --- File mirror ---

    def _schedule_flush(self) -> None:
        """Schedule a debounced write of the mirror file."""
        if self.path is None:
            return
        with self._lock:
            if self._closed:
                return
            if self._flush_timer is not None:
                self._flush_timer.cancel()
            self._flush_timer = threading.Timer(_FLUSH_DELAY, self.flush)
            self._flush_timer.daemon = True
            self._flush_timer.start()

    def flush(self) -> None:
        """Write the current contents to ``path`` now."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self.text() + "\n", encoding="utf-8")
        except OSError:
            logger.debug(f"Failed to write debug log to {self.path}")

    def close(self, keep_file: bool = True) -> None:
        """Cancel any pending write and stop mirroring.

        The mirror is flushed once, or deleted when ``keep_file`` is False.
        Entries recorded afterwards stay in memory only.
        """
        with self._lock:
            self._closed = True
            timer, self._flush_timer = self._flush_timer, None
        if timer is not None:
            timer.cancel()
        if keep_file:
            self.flush()
        elif self.path is not None:
            try:
                self.path.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Failed to remove debug log {self.path}")
