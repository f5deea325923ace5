"""Tests for log event processors."""

from learnhub.core.context import clear_context, set_request_id, set_session_id
from learnhub.core.logging import add_context_processor, filter_sensitive_data


def test_masks_sensitive_keys():
    event = filter_sensitive_data(
        None,
        "info",
        {
            "event": "agent_request",
            "api_key": "sk-1234567890",
            "headers": {"x-api-key": "abc", "accept": "text/event-stream"},
            "session_id": "s-1",
        },
    )

    assert event["api_key"] == "sk*********90"
    assert event["headers"]["x-api-key"] == "***"
    assert event["headers"]["accept"] == "text/event-stream"
    assert event["session_id"] == "s-1"


def test_context_added_without_overriding():
    set_request_id("req-1")
    set_session_id("s-9")
    try:
        event = add_context_processor(
            None, "info", {"event": "x", "session_id": "explicit"}
        )
    finally:
        clear_context()

    assert event["request_id"] == "req-1"
    assert event["session_id"] == "explicit"
