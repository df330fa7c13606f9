"""Type definitions for the editorbridge session layer.

Defines the core data structures shared by the server, dispatcher and
debouncer: session metadata, the active peer connection, selection
snapshots and payloads, debug log entries, and the error hierarchy.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class Direction(str, Enum):
    """Direction of a frame recorded in the debug sink."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    EVENT = "event"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BridgeError(Exception):
    """Base class for editorbridge errors."""


class AlreadyRunning(BridgeError):
    """A session for the project is already running."""

    def __init__(self, project_root: str, port: int) -> None:
        super().__init__(f"Session already running for {project_root} on port {port}")
        self.project_root = project_root
        self.port = port


class ProtocolError(BridgeError):
    """An inbound frame could not be decoded into a request."""


class InvalidRequest(ProtocolError):
    """A frame carried an ``id`` but no usable method; answered with 400."""

    def __init__(self, request_id: Any, message: str) -> None:
        super().__init__(message)
        self.request_id = request_id


class RequestError(BridgeError):
    """A handler failure reported to the peer as a structured error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# ---------------------------------------------------------------------------
# Session + connection
# ---------------------------------------------------------------------------


@dataclass
class SessionInfo:
    """Credentials and identity of one project-scoped session."""

    project_root: str
    token: str
    pid: int
    port: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def project_name(self) -> str:
        return Path(self.project_root).name or self.project_root


@dataclass(eq=False)
class Connection:
    """The single peer currently attached to a session.

    ``loop`` is the event loop the WebSocket lives on; every send is
    scheduled there and serialized by ``send_lock``.
    """

    ws: Any
    loop: asyncio.AbstractEventLoop
    send_lock: asyncio.Lock
    authenticated: bool = False
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionSnapshot:
    """Cheap selection fingerprint used only for change detection."""

    uri: str
    has_selection: bool
    start: int
    end: int


@dataclass(frozen=True)
class Position:
    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position
    text: str = ""

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "text": self.text,
            "isEmpty": self.is_empty,
        }


@dataclass
class SelectionState:
    """Selection payload as sent in ``selectionDidChange``."""

    uri: str
    selections: list[Range] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "selections": [r.to_dict() for r in self.selections],
        }


# ---------------------------------------------------------------------------
# Debug log
# ---------------------------------------------------------------------------


@dataclass
class DebugEntry:
    """One record in the debug sink."""

    timestamp: datetime
    direction: Direction
    project: str
    text: str

    def format(self) -> str:
        ts = self.timestamp.strftime("%H:%M:%S.%f")[:-3]
        return f"[{ts}] {self.direction.value:<8s} {self.project}: {self.text}"
