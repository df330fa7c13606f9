"""Outbound frames: notification builders and the sender.

All frames for a connection go through :meth:`NotificationSender.deliver`,
which holds the connection's send lock, so frames leave in the order they
were handed over.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import Future

from editorbridge._types import Connection, SelectionState
from editorbridge.debug_log import DebugSink
from editorbridge.protocol import Notification, Response, encode

logger = logging.getLogger(__name__)

PLUGIN_METADATA = "pluginMetadata"
VISIBLE_FILES_DID_CHANGE = "visibleFilesDidChange"
SELECTION_DID_CHANGE = "selectionDidChange"


def plugin_metadata(version: str) -> Notification:
    return Notification(PLUGIN_METADATA, {"version": version})


def visible_files_changed(uris: list[str]) -> Notification:
    return Notification(VISIBLE_FILES_DID_CHANGE, {"uris": list(uris)})


def selection_changed(state: SelectionState) -> Notification:
    return Notification(SELECTION_DID_CHANGE, state.to_dict())


class NotificationSender:
    """Pushes frames to whichever peer is attached to a project.

    Args:
        resolve: Returns the active connection for a project id, or None.
        debug_sink: Every frame is mirrored here before transmission.
    """

    def __init__(
        self,
        resolve: Callable[[str], Connection | None],
        debug_sink: DebugSink,
    ) -> None:
        self._resolve = resolve
        self.debug_sink = debug_sink

    def send(self, project_id: str, notification: Notification) -> bool:
        """Send a notification from any thread.

        Returns False (not an error) when no peer is connected; the
        notification is dropped.
        """
        text = encode(notification)
        self.debug_sink.outbound(project_id, text)
        conn = self._resolve(project_id)
        if conn is None:
            return False
        self._schedule(project_id, conn, text)
        return True

    async def respond(self, project_id: str, conn: Connection, response: Response) -> None:
        """Send a response on the connection's own loop.

        A result that cannot be serialized is replaced by a 500 error for the
        same id, so the request is still answered exactly once.
        """
        try:
            text = encode(response)
        except (TypeError, ValueError, RecursionError) as e:
            logger.warning(f"Response {response.id!r} for {project_id} is not serializable: {e}")
            self.debug_sink.event(project_id, f"unserializable response {response.id!r}: {e!r}")
            text = encode(Response.failure(response.id, 500, f"Internal error: {e}"))
        self.debug_sink.outbound(project_id, text)
        await self.deliver(conn, text)

    async def notify(self, project_id: str, conn: Connection, notification: Notification) -> None:
        """Send a notification to a specific connection on its own loop."""
        text = encode(notification)
        self.debug_sink.outbound(project_id, text)
        await self.deliver(conn, text)

    @staticmethod
    async def deliver(conn: Connection, text: str) -> None:
        async with conn.send_lock:
            await conn.ws.send_text(text)

    def _schedule(self, project_id: str, conn: Connection, text: str) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        try:
            if running is conn.loop:
                task = conn.loop.create_task(self.deliver(conn, text))
                task.add_done_callback(lambda t: self._on_done(project_id, t))
            else:
                fut = asyncio.run_coroutine_threadsafe(self.deliver(conn, text), conn.loop)
                fut.add_done_callback(lambda f: self._on_done(project_id, f))
        except RuntimeError:
            # Loop already closed: the peer is gone
            self.debug_sink.event(project_id, "send dropped: connection loop closed")

    def _on_done(self, project_id: str, fut: Future | asyncio.Future) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.debug(f"Notification send failed for {project_id}: {exc}")
            self.debug_sink.event(project_id, f"send failed: {exc!r}")
