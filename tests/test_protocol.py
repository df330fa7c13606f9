"""Tests for editorbridge.protocol.

Tests cover:
- Decoding valid client requests
- Rejecting malformed frames
- Response / notification frame shapes
- Encode-then-decode preserving id, method and payload
"""

import json

import pytest

from editorbridge._types import InvalidRequest, ProtocolError
from editorbridge.protocol import (
    Notification,
    Response,
    decode_request,
    decode_server_message,
    encode,
)


class TestDecodeRequest:
    def test_decodes_ping(self):
        req = decode_request('{"clientRequest": {"id": "r1", "ping": {"message": "hi"}}}')
        assert req.id == "r1"
        assert req.method == "ping"
        assert req.params == {"message": "hi"}

    def test_id_is_opaque(self):
        req = decode_request('{"clientRequest": {"id": 17, "authenticate": {}}}')
        assert req.id == 17
        assert req.method == "authenticate"

    def test_null_params_become_empty(self):
        req = decode_request('{"clientRequest": {"id": 1, "ping": null}}')
        assert req.params == {}

    def test_accepts_bytes(self):
        req = decode_request(b'{"clientRequest": {"id": 1, "ping": {}}}')
        assert req.method == "ping"

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[]",
            '{"id": 1, "ping": {}}',
            '{"clientRequest": "x"}',
            '{"clientRequest": {"ping": {}}}',
            '{"clientRequest": {"id": 1}}',
            '{"clientRequest": {"id": 1, "ping": {}, "foo": {}}}',
            '{"clientRequest": {"id": 1, "ping": [1, 2]}}',
        ],
    )
    def test_malformed_frames_raise(self, text):
        with pytest.raises(ProtocolError):
            decode_request(text)

    def test_deeply_nested_frame_raises_protocol_error(self):
        text = "[" * 200_000 + "]" * 200_000
        with pytest.raises(ProtocolError):
            decode_request(text)

    @pytest.mark.parametrize(
        "text",
        [
            '{"clientRequest": {"id": 1, "ping": "hi"}}',
            '{"clientRequest": {"id": 1}}',
            '{"clientRequest": {"id": 1, "ping": {}, "foo": {}}}',
        ],
    )
    def test_bad_method_with_id_keeps_id(self, text):
        with pytest.raises(InvalidRequest) as exc:
            decode_request(text)
        assert exc.value.request_id == 1

    def test_missing_id_is_not_invalid_request(self):
        with pytest.raises(ProtocolError) as exc:
            decode_request('{"clientRequest": {"ping": {}}}')
        assert not isinstance(exc.value, InvalidRequest)


class TestFrames:
    def test_success_response_shape(self):
        resp = Response(id="a", method="ping", result={"message": "x"})
        assert json.loads(encode(resp)) == {
            "serverResponse": {"id": "a", "ping": {"message": "x"}}
        }

    def test_error_response_has_no_result(self):
        resp = Response.failure("a", 400, "Unknown request method")
        frame = json.loads(encode(resp))
        assert frame == {
            "serverResponse": {
                "id": "a",
                "error": {"code": 400, "message": "Unknown request method"},
            }
        }

    def test_notification_shape(self):
        note = Notification("pluginMetadata", {"version": "1.0"})
        assert json.loads(encode(note)) == {
            "serverNotification": {"pluginMetadata": {"version": "1.0"}}
        }


class TestRoundTrip:
    def test_response(self):
        resp = Response(id=42, method="authenticate", result={"authenticated": True})
        assert decode_server_message(encode(resp)) == resp

    def test_error_response(self):
        resp = Response.failure("x-1", 400, "Unknown request method")
        decoded = decode_server_message(encode(resp))
        assert decoded == resp
        assert decoded.is_error

    def test_notification(self):
        note = Notification("visibleFilesDidChange", {"uris": ["file:///a.py"]})
        assert decode_server_message(encode(note)) == note
