"""Wire codec for the editorbridge WebSocket protocol.

Frames are JSON text messages:

    inbound       {"clientRequest": {"id": ..., "<method>": {...}}}
    response      {"serverResponse": {"id": ..., "<method>": {...}}}
    error         {"serverResponse": {"id": ..., "error": {"code": int, "message": str}}}
    notification  {"serverNotification": {"<event>": {...}}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from editorbridge._types import InvalidRequest, ProtocolError

CLIENT_REQUEST = "clientRequest"
SERVER_RESPONSE = "serverResponse"
SERVER_NOTIFICATION = "serverNotification"


@dataclass
class Request:
    id: Any
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_frame(self) -> dict[str, Any]:
        return {CLIENT_REQUEST: {"id": self.id, self.method: self.params}}


@dataclass
class Response:
    """A correlated reply: either ``result`` under ``method`` or ``error``."""

    id: Any
    method: str | None = None
    result: dict[str, Any] | None = None
    error_code: int | None = None
    error_message: str | None = None

    @classmethod
    def failure(cls, id: Any, code: int, message: str) -> Response:
        return cls(id=id, error_code=code, error_message=message)

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def to_frame(self) -> dict[str, Any]:
        body: dict[str, Any] = {"id": self.id}
        if self.is_error:
            body["error"] = {"code": self.error_code, "message": self.error_message}
        else:
            body[self.method or ""] = self.result if self.result is not None else {}
        return {SERVER_RESPONSE: body}

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> Response:
        body = _unwrap(frame, SERVER_RESPONSE)
        if "id" not in body:
            raise ProtocolError("serverResponse is missing 'id'")
        if "error" in body:
            err = body["error"] or {}
            return cls.failure(body["id"], err.get("code"), err.get("message"))
        method, result = _single_method(body, exclude=("id",))
        return cls(id=body["id"], method=method, result=result)


@dataclass
class Notification:
    method: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_frame(self) -> dict[str, Any]:
        return {SERVER_NOTIFICATION: {self.method: self.payload}}

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> Notification:
        body = _unwrap(frame, SERVER_NOTIFICATION)
        method, payload = _single_method(body)
        return cls(method=method, payload=payload)


# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------


def encode(message: Request | Response | Notification) -> str:
    return json.dumps(message.to_frame(), separators=(",", ":"))


def decode_request(text: str | bytes) -> Request:
    """Parse an inbound frame into a :class:`Request`.

    Raises:
        InvalidRequest: the frame has an ``id`` but not exactly one method
            key with object parameters.
        ProtocolError: invalid JSON, or no ``clientRequest`` wrapper with an
            ``id``.
    """
    frame = _loads(text)
    body = _unwrap(frame, CLIENT_REQUEST)
    if "id" not in body:
        raise ProtocolError("clientRequest is missing 'id'")
    try:
        method, params = _single_method(body, exclude=("id",))
    except ProtocolError as e:
        raise InvalidRequest(body["id"], str(e)) from e
    return Request(id=body["id"], method=method, params=params)


def decode_server_message(text: str | bytes) -> Response | Notification:
    """Parse an outbound frame (used by clients and tests)."""
    frame = _loads(text)
    if SERVER_RESPONSE in frame:
        return Response.from_frame(frame)
    return Notification.from_frame(frame)


def _loads(text: str | bytes) -> dict[str, Any]:
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    try:
        frame = json.loads(text)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the decoder can follow
        raise ProtocolError(f"Invalid JSON: {e!r}") from e
    if not isinstance(frame, dict):
        raise ProtocolError("Frame is not a JSON object")
    return frame


def _unwrap(frame: dict[str, Any], key: str) -> dict[str, Any]:
    body = frame.get(key)
    if not isinstance(body, dict):
        raise ProtocolError(f"Frame has no '{key}' object")
    return body


def _single_method(
    body: dict[str, Any], exclude: tuple[str, ...] = ()
) -> tuple[str, dict[str, Any]]:
    keys = [k for k in body if k not in exclude]
    if len(keys) != 1:
        raise ProtocolError(f"Expected exactly one method, got {len(keys)}")
    method = keys[0]
    params = body[method]
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ProtocolError(f"Parameters for '{method}' must be an object")
    return method, params
