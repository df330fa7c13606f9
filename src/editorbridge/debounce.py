"""Coalesces bursts of selection changes into one ``selectionDidChange``.

Every signal takes a cheap snapshot. Unchanged snapshots are ignored;
changed ones re-arm a single-shot timer. When the timer fires the
*current* selection is read fresh, so only the final state of a burst is
ever sent.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from editorbridge._types import SelectionSnapshot
from editorbridge._utils import get_debounce_seconds
from editorbridge.editor import EditorState
from editorbridge.notifications import NotificationSender, selection_changed

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class SelectionDebouncer:
    """Per-session debouncer for selection notifications.

    Args:
        project_root: Project the signals belong to.
        editor: Source of snapshots and current selection state.
        sender: Used to deliver the notification when the timer fires.
        delay: Quiescence window in seconds (default: ``EDITORBRIDGE_DEBOUNCE_MS``
            or 50 ms).
        timer_factory: Builds a startable, cancellable timer. Defaults to a
            daemon :class:`threading.Timer`.
    """

    def __init__(
        self,
        project_root: str,
        editor: EditorState,
        sender: NotificationSender,
        delay: float | None = None,
        timer_factory: TimerFactory = _thread_timer,
    ) -> None:
        self.project_root = project_root
        self.editor = editor
        self.sender = sender
        self.delay = get_debounce_seconds() if delay is None else delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._last: SelectionSnapshot | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def last_snapshot(self) -> SelectionSnapshot | None:
        return self._last

    def signal(self) -> bool:
        """Record a selection-related UI event.

        Returns True if the timer was (re)armed.
        """
        snapshot = self.editor.selection_snapshot(self.project_root)
        with self._lock:
            if snapshot == self._last:
                return False
            self._last = snapshot
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()
        return True

    def cancel(self) -> None:
        """Drop any pending notification."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            # Superseded or cancelled after the timer thread already woke up
            if generation != self._generation:
                return
            self._timer = None
        try:
            state = self.editor.current_selection(self.project_root)
        except Exception:
            logger.exception(f"Failed to read selection for {self.project_root}")
            return
        if state is None:
            logger.debug(f"No selection context for {self.project_root}; dropped")
            return
        self.sender.send(self.project_root, selection_changed(state))
