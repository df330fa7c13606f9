"""Tests for editorbridge.dispatch.

Tests cover:
- authenticate: matching, mismatching and malformed tokens
- ping echo
- Unknown methods yield a 400 error
- Custom handlers (sync, async, RequestError, crashes)
- Optional auth gating
"""

import asyncio

import pytest

from editorbridge._types import Connection, RequestError, SessionInfo
from editorbridge.dispatch import RequestContext, RequestDispatcher, tokens_match
from editorbridge.protocol import Request

_TOKEN = "A" * 16 + "b" * 16


@pytest.fixture
def ctx():
    session = SessionInfo(project_root="/proj", token=_TOKEN, pid=1)
    conn = Connection(ws=None, loop=None, send_lock=None)
    return RequestContext(session=session, connection=conn)


def _run(dispatcher, request, ctx):
    return asyncio.run(dispatcher.dispatch(request, ctx))


class TestTokensMatch:
    def test_equal(self):
        assert tokens_match(_TOKEN, _TOKEN)

    def test_different(self):
        assert not tokens_match(_TOKEN, "x" * 32)

    def test_non_string(self):
        assert not tokens_match(_TOKEN, None)
        assert not tokens_match(_TOKEN, 12345)

    def test_non_ascii(self):
        assert not tokens_match(_TOKEN, "ü" * 32)


class TestAuthenticate:
    def test_correct_token(self, ctx):
        resp = _run(
            RequestDispatcher(), Request(1, "authenticate", {"authToken": _TOKEN}), ctx
        )
        assert resp.id == 1
        assert resp.result == {"authenticated": True}
        assert ctx.connection.authenticated

    def test_wrong_token(self, ctx):
        resp = _run(
            RequestDispatcher(), Request(2, "authenticate", {"authToken": "nope"}), ctx
        )
        assert not resp.is_error
        assert resp.result == {"authenticated": False}
        assert not ctx.connection.authenticated

    def test_missing_token_never_errors(self, ctx):
        resp = _run(RequestDispatcher(), Request(3, "authenticate", {}), ctx)
        assert resp.result == {"authenticated": False}

    def test_failed_attempt_clears_flag(self, ctx):
        dispatcher = RequestDispatcher()
        _run(dispatcher, Request(1, "authenticate", {"authToken": _TOKEN}), ctx)
        _run(dispatcher, Request(2, "authenticate", {"authToken": "bad"}), ctx)
        assert not ctx.connection.authenticated


class TestPing:
    def test_echo(self, ctx):
        resp = _run(RequestDispatcher(), Request("p", "ping", {"message": "hello"}), ctx)
        assert resp.method == "ping"
        assert resp.result == {"message": "hello"}


class TestUnknownMethod:
    def test_returns_400(self, ctx):
        resp = _run(RequestDispatcher(), Request(9, "foo", {}), ctx)
        assert resp.id == 9
        assert resp.error_code == 400
        assert resp.error_message == "Unknown request method"
        assert resp.result is None


class TestCustomHandlers:
    def test_register_sync(self, ctx):
        dispatcher = RequestDispatcher()
        dispatcher.register("echoRoot", lambda params, c: {"root": c.project_root})
        resp = _run(dispatcher, Request(1, "echoRoot", {}), ctx)
        assert resp.result == {"root": "/proj"}
        assert "echoRoot" in dispatcher.methods

    def test_register_async(self, ctx):
        async def handler(params, c):
            await asyncio.sleep(0)
            return {"n": params["n"] * 2}

        dispatcher = RequestDispatcher()
        dispatcher.register("double", handler)
        resp = _run(dispatcher, Request(1, "double", {"n": 4}), ctx)
        assert resp.result == {"n": 8}

    def test_request_error_becomes_error_response(self, ctx):
        def handler(params, c):
            raise RequestError(404, "File not found")

        dispatcher = RequestDispatcher()
        dispatcher.register("readFile", handler)
        resp = _run(dispatcher, Request(1, "readFile", {}), ctx)
        assert resp.error_code == 404
        assert resp.error_message == "File not found"

    def test_crash_becomes_500(self, ctx):
        def handler(params, c):
            raise ValueError("boom")

        dispatcher = RequestDispatcher()
        dispatcher.register("explode", handler)
        resp = _run(dispatcher, Request(1, "explode", {}), ctx)
        assert resp.error_code == 500
        assert "boom" in resp.error_message

    def test_unregister(self, ctx):
        dispatcher = RequestDispatcher()
        dispatcher.unregister("ping")
        resp = _run(dispatcher, Request(1, "ping", {}), ctx)
        assert resp.error_code == 400


class TestAuthGating:
    def test_off_by_default(self, ctx):
        resp = _run(RequestDispatcher(), Request(1, "ping", {"message": "x"}), ctx)
        assert not resp.is_error

    def test_rejects_before_authenticate(self, ctx):
        resp = _run(
            RequestDispatcher(require_auth=True), Request(1, "ping", {"message": "x"}), ctx
        )
        assert resp.error_code == 401

    def test_allows_after_authenticate(self, ctx):
        dispatcher = RequestDispatcher(require_auth=True)
        _run(dispatcher, Request(1, "authenticate", {"authToken": _TOKEN}), ctx)
        resp = _run(dispatcher, Request(2, "ping", {"message": "x"}), ctx)
        assert resp.result == {"message": "x"}

    def test_unknown_method_still_400(self, ctx):
        resp = _run(RequestDispatcher(require_auth=True), Request(1, "foo", {}), ctx)
        assert resp.error_code == 400
