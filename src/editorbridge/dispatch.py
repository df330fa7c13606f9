"""Request routing: one decoded request in, exactly one response out.

Handlers are plain callables registered by method name. They receive the
request parameters and a :class:`RequestContext`, and return a result dict
(or an awaitable of one). Raising :class:`RequestError` produces a
structured error response; anything else becomes a 500.
"""

from __future__ import annotations

import inspect
import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from editorbridge._types import Connection, RequestError, SessionInfo
from editorbridge.protocol import Request, Response

logger = logging.getLogger(__name__)

UNKNOWN_METHOD = (400, "Unknown request method")
NOT_AUTHENTICATED = (401, "Not authenticated")
INTERNAL_ERROR = 500


@dataclass
class RequestContext:
    """What a handler may inspect about the session and its peer."""

    session: SessionInfo
    connection: Connection | None = None

    @property
    def project_root(self) -> str:
        return self.session.project_root


Handler = Callable[[dict[str, Any], RequestContext], Union[dict[str, Any], Awaitable[dict[str, Any]]]]


def tokens_match(expected: str, provided: Any) -> bool:
    """Constant-time token comparison; non-string input never matches."""
    if not isinstance(provided, str) or not expected:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def handle_authenticate(params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    ok = tokens_match(ctx.session.token, params.get("authToken"))
    if ctx.connection is not None:
        ctx.connection.authenticated = ok
    if not ok:
        logger.debug(f"Authentication failed for {ctx.project_root}")
    return {"authenticated": ok}


def handle_ping(params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    return {"message": params.get("message", "")}


class RequestDispatcher:
    """Routes requests to handlers by method name.

    Args:
        require_auth: Reject every method except ``authenticate`` until the
            connection has authenticated.
    """

    def __init__(self, require_auth: bool = False) -> None:
        self.require_auth = require_auth
        self._handlers: dict[str, Handler] = {}
        self.register("authenticate", handle_authenticate)
        self.register("ping", handle_ping)

    def register(self, method: str, handler: Handler) -> None:
        self._handlers[method] = handler

    def unregister(self, method: str) -> None:
        self._handlers.pop(method, None)

    @property
    def methods(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, request: Request, ctx: RequestContext) -> Response:
        handler = self._handlers.get(request.method)
        if handler is None:
            return Response.failure(request.id, *UNKNOWN_METHOD)

        if (
            self.require_auth
            and request.method != "authenticate"
            and not (ctx.connection is not None and ctx.connection.authenticated)
        ):
            return Response.failure(request.id, *NOT_AUTHENTICATED)

        try:
            result = handler(request.params, ctx)
            if inspect.isawaitable(result):
                result = await result
        except RequestError as e:
            return Response.failure(request.id, e.code, e.message)
        except Exception as e:
            logger.exception(f"Handler for {request.method!r} failed")
            return Response.failure(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        return Response(id=request.id, method=request.method, result=result or {})
