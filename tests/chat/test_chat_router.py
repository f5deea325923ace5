"""Tests for the chat endpoints and SSE forwarding."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from learnhub.chat.models import ChatSession
from learnhub.chat.relay import SessionRelay
from learnhub.chat.router import SSE_DONE_FRAME, relay_event_stream
from learnhub.chat.service import AgentNotConfiguredError, ChatSessionNotFoundError
from learnhub.main import app


class ReplayingRelay(SessionRelay):
    """Relay that publishes a fixed script as soon as someone subscribes."""

    def __init__(self, script: list[dict]):
        super().__init__()
        self.script = script

    def subscribe(self, session_id, callback):
        unsubscribe = super().subscribe(session_id, callback)
        for message in self.script:
            self.publish(session_id, message)
        return unsubscribe


async def drain(stream) -> list[str]:
    return [frame async for frame in stream]


@pytest.fixture
def restore_state():
    names = ("relay", "chat_search_service", "chat_session_service")
    saved = {name: getattr(app.state, name, None) for name in names}
    yield
    for name, value in saved.items():
        setattr(app.state, name, value)


# ==============================================================================
# SSE generator
# ==============================================================================


class TestRelayEventStream:
    @pytest.mark.asyncio
    async def test_forwards_chunks_and_closes_on_done(self):
        relay = ReplayingRelay(
            [
                {"type": "chunk", "data": "hello"},
                {"type": "chunk", "data": "world"},
                {"type": "done"},
                {"type": "chunk", "data": "ignored"},
            ]
        )

        frames = await drain(relay_event_stream(relay, "s1", timeout=5, poll_interval=1))

        assert frames == [
            'data: {"type":"connected","sessionId":"s1"}\n\n',
            'data: {"type":"chunk","data":"hello"}\n\n',
            'data: {"type":"chunk","data":"world"}\n\n',
            SSE_DONE_FRAME,
        ]
        assert relay.channel_count == 0

    @pytest.mark.asyncio
    async def test_error_is_forwarded_then_closes(self):
        relay = ReplayingRelay([{"type": "error", "error": "upstream failed"}])

        frames = await drain(relay_event_stream(relay, "s1", timeout=5, poll_interval=1))

        assert frames[-1] == 'data: {"type":"error","error":"upstream failed"}\n\n'
        assert len(frames) == 2
        assert not relay.has_subscribers("s1")

    @pytest.mark.asyncio
    async def test_times_out_without_messages(self):
        relay = SessionRelay()

        frames = await drain(
            relay_event_stream(relay, "s1", timeout=0.05, poll_interval=0.01)
        )

        assert frames[0].startswith("data: ")
        assert all(frame == ": keep-alive\n\n" for frame in frames[1:])
        assert relay.channel_count == 0

    @pytest.mark.asyncio
    async def test_stops_when_client_disconnects(self):
        relay = SessionRelay()
        is_disconnected = AsyncMock(return_value=True)

        frames = await drain(
            relay_event_stream(
                relay, "s1", timeout=5, poll_interval=0.01,
                is_disconnected=is_disconnected,
            )
        )

        assert len(frames) == 1
        is_disconnected.assert_awaited()
        assert relay.channel_count == 0

    @pytest.mark.asyncio
    async def test_early_close_unsubscribes(self):
        relay = SessionRelay()
        stream = relay_event_stream(relay, "s1", timeout=5, poll_interval=1)

        await stream.__anext__()
        assert relay.has_subscribers("s1")
        await stream.aclose()

        assert not relay.has_subscribers("s1")


# ==============================================================================
# HTTP endpoints
# ==============================================================================


class TestStreamEndpoint:
    def test_requires_token(self, client: TestClient):
        response = client.get("/v1/chat/stream/s1")
        assert response.status_code == 401

    def test_rejects_wrong_token(self, client: TestClient):
        response = client.get("/v1/chat/stream/s1", params={"token": "nope"})
        assert response.status_code == 403
        assert response.json()["error"] is True

    def test_streams_events(self, client: TestClient, api_token: str, restore_state):
        app.state.relay = ReplayingRelay(
            [{"type": "chunk", "data": "hi"}, {"type": "done"}]
        )

        response = client.get("/v1/chat/stream/s1", params={"token": api_token})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.text == (
            'data: {"type":"connected","sessionId":"s1"}\n\n'
            'data: {"type":"chunk","data":"hi"}\n\n'
            "data: [DONE]\n\n"
        )


class TestStartSearch:
    def test_requires_bearer_token(self, client: TestClient):
        response = client.post(
            "/v1/chat/start-search",
            json={"query": "q", "user": {"id": "u1", "email": "a@b.co"}},
        )
        assert response.status_code == 401

    def test_returns_session_id(
        self, client: TestClient, auth_headers: dict, restore_state
    ):
        chat_session = ChatSession(user_id="u1", initial_query="python devs in Berlin")
        search = Mock()
        search.start_search = AsyncMock(return_value=chat_session)
        app.state.chat_search_service = search

        response = client.post(
            "/v1/chat/start-search",
            headers=auth_headers,
            json={
                "query": "python devs in Berlin",
                "user": {"id": "u1", "email": "sam@example.com"},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["session_id"] == str(chat_session.id)
        kwargs = search.start_search.call_args.kwargs
        assert kwargs["user_id"] == "u1"
        assert kwargs["user_email"] == "sam@example.com"

    def test_validates_user(self, client: TestClient, auth_headers: dict, restore_state):
        app.state.chat_search_service = Mock()

        response = client.post(
            "/v1/chat/start-search",
            headers=auth_headers,
            json={"query": "python devs"},
        )

        assert response.status_code == 422

    def test_agent_not_configured(
        self, client: TestClient, auth_headers: dict, restore_state
    ):
        search = Mock()
        search.start_search = AsyncMock(side_effect=AgentNotConfiguredError())
        app.state.chat_search_service = search

        response = client.post(
            "/v1/chat/start-search",
            headers=auth_headers,
            json={"query": "q", "user": {"id": "u1", "email": "sam@example.com"}},
        )

        assert response.status_code == 503


class TestSessionEndpoints:
    def test_get_session(self, client: TestClient, auth_headers: dict, restore_state):
        chat_session = ChatSession(
            user_id="u1",
            initial_query="q",
            tool_results={"all_profiles": [], "timestamp": "2026-01-01T00:00:00"},
        )
        sessions = Mock()
        sessions.get_session = AsyncMock(return_value=chat_session)
        app.state.chat_session_service = sessions

        response = client.get(
            f"/v1/chat/sessions/{chat_session.id}", headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()["session"]
        assert body["session_id"] == str(chat_session.id)
        assert body["tool_results"]["all_profiles"] == []

    def test_missing_session_is_404(
        self, client: TestClient, auth_headers: dict, restore_state
    ):
        sessions = Mock()
        sessions.get_session = AsyncMock(return_value=None)
        app.state.chat_session_service = sessions

        response = client.get(f"/v1/chat/sessions/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404

    def test_update_history(self, client: TestClient, auth_headers: dict, restore_state):
        sessions = Mock()
        sessions.update_conversation = AsyncMock()
        app.state.chat_session_service = sessions
        session_id = uuid4()

        response = client.put(
            f"/v1/chat/sessions/{session_id}",
            headers=auth_headers,
            json={
                "conversation_history": [
                    {"role": "user", "content": "hi"},
                    {
                        "role": "assistant",
                        "content": "hello",
                        "timestamp": datetime(2026, 1, 1, tzinfo=UTC).isoformat(),
                    },
                ]
            },
        )

        assert response.status_code == 200
        called_id, history = sessions.update_conversation.call_args.args
        assert called_id == session_id
        assert [turn["role"] for turn in history] == ["user", "assistant"]

    def test_delete_missing_session(
        self, client: TestClient, auth_headers: dict, restore_state
    ):
        sessions = Mock()
        sessions.delete_session = AsyncMock(side_effect=ChatSessionNotFoundError())
        app.state.chat_session_service = sessions

        response = client.delete(f"/v1/chat/sessions/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404

    def test_service_unavailable(self, client: TestClient, auth_headers: dict, restore_state):
        app.state.chat_session_service = None

        response = client.get("/v1/chat/history", params={"user_id": "u1"}, headers=auth_headers)

        assert response.status_code == 503
