"""Protocol server: Starlette + WebSocket endpoint for one project session.

Runs uvicorn in a background daemon thread on a loopback socket bound to an
OS-assigned port. At most one peer is attached at a time; a new connection
replaces the previous one, which is closed.

Endpoints:
    WS   /         → request/response/notification channel
    GET  /health   → health check (project, port, connected)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
import threading
import time
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from editorbridge._types import (
    BridgeError,
    Connection,
    InvalidRequest,
    ProtocolError,
    SessionInfo,
)
from editorbridge._utils import LOOPBACK_HOST, env_flag, generate_token
from editorbridge._version import __version__
from editorbridge.debounce import SelectionDebouncer
from editorbridge.debug_log import DebugSink
from editorbridge.dispatch import RequestContext, RequestDispatcher
from editorbridge.editor import EditorState, InMemoryEditor
from editorbridge.notifications import (
    NotificationSender,
    plugin_metadata,
    visible_files_changed,
)
from editorbridge.protocol import Notification, Response, decode_request

logger = logging.getLogger(__name__)

_START_TIMEOUT = 5.0
_CLOSE_TIMEOUT = 1.0


class ProtocolServer:
    """WebSocket server owning one session's socket and peer slot.

    Args:
        project_root: Canonical project root this session serves.
        editor: Editor collaborator (default: an empty :class:`InMemoryEditor`).
        token: Auth token (default: a fresh random 32-character token).
        host: Host to bind to (default: 127.0.0.1).
        dispatcher: Request router (default: built-in methods, auth gating
            from ``EDITORBRIDGE_REQUIRE_AUTH``).
        debug_sink: Frame log (default: in-memory only).
        debounce_delay: Selection debounce window in seconds.
        version: Reported in ``pluginMetadata``.
    """

    def __init__(
        self,
        project_root: str,
        editor: EditorState | None = None,
        token: str | None = None,
        host: str = LOOPBACK_HOST,
        dispatcher: RequestDispatcher | None = None,
        debug_sink: DebugSink | None = None,
        debounce_delay: float | None = None,
        version: str = __version__,
    ) -> None:
        self.session = SessionInfo(
            project_root=project_root,
            token=token or generate_token(),
            pid=os.getpid(),
        )
        self.host = host
        self.version = version
        self.editor: EditorState = editor or InMemoryEditor(project_root)
        self.debug_sink = debug_sink or DebugSink()
        self.dispatcher = dispatcher or RequestDispatcher(
            require_auth=env_flag("EDITORBRIDGE_REQUIRE_AUTH")
        )
        self.sender = NotificationSender(self._resolve_connection, self.debug_sink)
        self.debouncer = SelectionDebouncer(
            project_root, self.editor, self.sender, delay=debounce_delay
        )

        self._connection: Connection | None = None
        self._lock = threading.Lock()
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

        self._app = self._build_app()

    @property
    def project_root(self) -> str:
        return self.session.project_root

    @property
    def port(self) -> int | None:
        return self.session.port

    @property
    def token(self) -> str:
        return self.session.token

    @property
    def app(self) -> Starlette:
        return self._app

    def _build_app(self) -> Starlette:
        routes = [
            Route("/health", self._health),
            WebSocketRoute("/", self._ws_endpoint),
        ]
        return Starlette(routes=routes)

    # --- Connection slot ---

    def _resolve_connection(self, project_id: str) -> Connection | None:
        if project_id != self.project_root:
            return None
        with self._lock:
            return self._connection

    @property
    def connection(self) -> Connection | None:
        with self._lock:
            return self._connection

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    def _attach(self, conn: Connection) -> Connection | None:
        """Make ``conn`` the active peer; return the one it replaces."""
        with self._lock:
            previous, self._connection = self._connection, conn
        return previous

    def _detach(self, conn: Connection) -> bool:
        """Clear the slot if ``conn`` still holds it."""
        with self._lock:
            if self._connection is conn:
                self._connection = None
                return True
        return False

    async def _close_connection(self, conn: Connection, code: int = 1000) -> None:
        """Close a peer that may live on another event loop."""
        try:
            if conn.loop is asyncio.get_running_loop():
                await conn.ws.close(code=code)
            else:
                fut = asyncio.run_coroutine_threadsafe(conn.ws.close(code=code), conn.loop)
                await asyncio.wait_for(asyncio.wrap_future(fut), timeout=_CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug(f"Closing replaced connection failed: {e!r}")

    def _close_from_thread(self, conn: Connection, code: int = 1001) -> None:
        try:
            fut = asyncio.run_coroutine_threadsafe(conn.ws.close(code=code), conn.loop)
            fut.result(timeout=_CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug(f"Closing connection on stop failed: {e!r}")

    # --- HTTP ---

    async def _health(self, request: Request) -> JSONResponse:
        """Health check endpoint. No auth required; never discloses the token."""
        return JSONResponse(
            {
                "status": "ok",
                "project": self.project_root,
                "port": self.port,
                "connected": self.is_connected,
                "version": self.version,
            }
        )

    # --- WebSocket ---

    async def _ws_endpoint(self, ws: WebSocket) -> None:
        """Handle a peer connection for its whole lifetime."""
        project = self.project_root
        await ws.accept()
        conn = Connection(ws=ws, loop=asyncio.get_running_loop(), send_lock=asyncio.Lock())
        previous = self._attach(conn)
        if previous is not None:
            logger.debug(f"Replacing existing connection for {project}")
            self.debug_sink.event(project, "connection replaced by a new peer")
            await self._close_connection(previous)
        logger.debug(f"Peer connected to {project}")
        self.debug_sink.event(project, "peer connected")

        try:
            await self.sender.notify(project, conn, plugin_metadata(self.version))
            await self.sender.notify(
                project, conn, visible_files_changed(self._visible_files())
            )
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    raw = message.get("bytes") or b""
                    text = raw.decode("utf-8", errors="replace")
                try:
                    await self._handle_frame(conn, text)
                except WebSocketDisconnect:
                    raise
                except Exception as e:
                    # One bad frame never ends the session
                    logger.exception(f"Failed to handle frame for {project}")
                    self.debug_sink.event(project, f"frame handling failed: {e!r}")
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.debug(f"WebSocket connection for {project} closed: {e!r}")
            self.debug_sink.event(project, f"transport error: {e!r}")
        finally:
            if self._detach(conn):
                logger.debug(f"Peer disconnected from {project}")
                self.debug_sink.event(project, "peer disconnected")

    async def _handle_frame(self, conn: Connection, text: str) -> None:
        """Decode, dispatch and answer one inbound frame."""
        project = self.project_root
        self.debug_sink.inbound(project, text)
        try:
            request = decode_request(text)
        except InvalidRequest as e:
            logger.debug(f"Rejecting invalid request {e.request_id!r} for {project}: {e}")
            self.debug_sink.event(project, f"invalid request: {e}")
            await self.sender.respond(
                project, conn, Response.failure(e.request_id, 400, f"Invalid request: {e}")
            )
            return
        except ProtocolError as e:
            logger.debug(f"Dropping malformed frame for {project}: {e}")
            self.debug_sink.event(project, f"dropped malformed frame: {e}")
            return
        ctx = RequestContext(session=self.session, connection=conn)
        response = await self.dispatcher.dispatch(request, ctx)
        await self.sender.respond(project, conn, response)

    def _visible_files(self) -> list[str]:
        try:
            return self.editor.visible_files(self.project_root)
        except Exception:
            logger.exception(f"Failed to list visible files for {self.project_root}")
            return []

    # --- Editor-facing API ---

    def selection_changed(self) -> bool:
        """Signal a local cursor/selection movement (debounced)."""
        return self.debouncer.signal()

    def visible_files_changed(self) -> bool:
        """Push the current visible files to the peer, if any."""
        return self.send(visible_files_changed(self._visible_files()))

    def send(self, notification: Notification) -> bool:
        return self.sender.send(self.project_root, notification)

    def status(self) -> dict[str, Any]:
        conn = self.connection
        return {
            "project": self.project_root,
            "project_name": self.session.project_name,
            "port": self.port,
            "pid": self.session.pid,
            "connected": conn is not None,
            "authenticated": bool(conn and conn.authenticated),
            "created_at": self.session.created_at.isoformat(),
        }

    # --- Lifecycle ---

    def start(self) -> int:
        """Bind a loopback port, serve in a daemon thread, return the port."""
        if self.is_running and self.port is not None:
            return self.port

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind((self.host, 0))
        self._socket = sock
        self.session.port = sock.getsockname()[1]

        config = uvicorn.Config(
            app=self._app,
            host=self.host,
            port=self.session.port,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=1,
        )
        self._server = uvicorn.Server(config)
        server = self._server

        def _run() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                loop.run_until_complete(server.serve(sockets=[sock]))
            except Exception:
                logger.exception(f"Server for {self.project_root} crashed")
            finally:
                loop.close()

        self._thread = threading.Thread(
            target=_run, name=f"editorbridge-{self.session.port}", daemon=True
        )
        self._thread.start()
        self._wait_for_server()
        logger.debug(f"Serving {self.project_root} on {self.host}:{self.session.port}")
        return self.session.port

    def _wait_for_server(self, timeout: float = _START_TIMEOUT) -> None:
        """Wait for uvicorn to report it is accepting connections."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._server is not None and self._server.started:
                return
            if self._thread is None or not self._thread.is_alive():
                break
            time.sleep(0.02)
        self.stop()
        raise BridgeError(f"Server for {self.project_root} failed to start")

    def stop(self) -> None:
        """Stop serving; idempotent. In-flight frames are not drained."""
        self.debouncer.cancel()
        with self._lock:
            conn, self._connection = self._connection, None
        if conn is not None:
            self._close_from_thread(conn)
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=3)
            if self._thread.is_alive() and self._server is not None:
                self._server.force_exit = True
                self._thread.join(timeout=1)
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._server = None
        self.debug_sink.close()
        logger.debug(f"Server for {self.project_root} stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def run_standalone(project_root: str, require_auth: bool | None = None) -> None:
    """Serve one project in the foreground until SIGINT/SIGTERM.

    Editor state is an empty :class:`InMemoryEditor`: the peer can
    authenticate, ping and use the file handlers.
    """
    import sys

    from editorbridge._utils import canonical_project_root
    from editorbridge.files import register_file_handlers
    from editorbridge.sessions import SessionTable

    root = canonical_project_root(project_root)
    table = SessionTable()
    table.registry.prune_stale()

    dispatcher = RequestDispatcher(
        require_auth=env_flag("EDITORBRIDGE_REQUIRE_AUTH")
        if require_auth is None
        else require_auth
    )
    register_file_handlers(dispatcher)

    stop_event = threading.Event()

    def _shutdown(signum: int, frame: Any) -> None:
        logger.debug(f"Received signal {signum}, shutting down...")
        stop_event.set()

    # On Windows, only SIGINT and SIGBREAK are supported.
    if sys.platform == "win32":
        signal.signal(signal.SIGBREAK, _shutdown)  # type: ignore[attr-defined]
    else:
        signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    port = table.start(root, dispatcher=dispatcher)
    print(f"editorbridge: {root} on ws://{LOOPBACK_HOST}:{port}", file=sys.stderr)

    stop_event.wait()
    table.stop_all()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="editorbridge session server")
    parser.add_argument("project", help="Project root to serve")
    parser.add_argument(
        "--require-auth", action="store_true", default=None, help="Gate requests on authenticate"
    )
    args = parser.parse_args()
    run_standalone(args.project, require_auth=args.require_auth)
