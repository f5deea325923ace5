"""Tests for request context extraction."""

import pytest

from learnhub.core.middleware import chat_session_id_from_path, trace_id_from_headers


class TestTraceId:
    def test_explicit_header_wins(self):
        headers = {
            "X-Trace-ID": "abc",
            "traceparent": "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
        }

        assert trace_id_from_headers(headers) == "abc"

    def test_w3c_traceparent(self):
        headers = {
            "traceparent": "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"
        }

        assert trace_id_from_headers(headers) == "4bf92f3577b34da6a3ce929d0e0e4736"

    @pytest.mark.parametrize("value", ["", "garbage", "00-abc"])
    def test_malformed_traceparent(self, value: str):
        assert trace_id_from_headers({"traceparent": value}) is None

    def test_no_headers(self):
        assert trace_id_from_headers({}) is None


class TestChatSessionPath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/v1/chat/stream/s-1", "s-1"),
            ("/v1/chat/sessions/s-2", "s-2"),
            ("/v1/chat/sessions/s-3/tool-results", "s-3"),
            ("/v1/chat/history", None),
            ("/v1/enrollments", None),
        ],
    )
    def test_extracts_session_id(self, path: str, expected: str | None):
        assert chat_session_id_from_path(path) == expected


def test_request_id_echoed_on_errors(client):
    response = client.get("/v1/enrollments", headers={"X-Request-ID": "req-42"})

    assert response.status_code == 401
    assert response.headers["X-Request-ID"] == "req-42"
    assert response.json()["request_id"] == "req-42"
