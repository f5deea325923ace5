"""Tests for the analytics endpoints."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from learnhub.analytics.emitter import AnalyticsEmitter
from learnhub.analytics.models import EventType
from learnhub.main import app


@pytest.fixture
def restore_state():
    names = ("redis", "analytics_emitter")
    saved = {name: getattr(app.state, name, None) for name in names}
    yield
    for name, value in saved.items():
        setattr(app.state, name, value)


def fake_redis(counts: dict[str, int]) -> Mock:
    def mget(keys):
        values = []
        for key in keys:
            count = counts.get(key.rsplit(":", 1)[1])
            values.append(str(count) if count is not None else None)
        return values

    client = Mock()
    client.mget = AsyncMock(side_effect=mget)
    return client


class TestTrackEvent:
    def test_accepts_event(self, client, auth_headers, restore_state):
        emitter = AnalyticsEmitter(queue_size=10)
        app.state.analytics_emitter = emitter

        response = client.post(
            "/v1/analytics/events",
            json={
                "organization_id": str(uuid4()),
                "event_type": EventType.LESSON_STARTED.value,
                "event_name": "Lesson Started",
            },
            headers=auth_headers,
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": 1, "dropped": 0}
        assert emitter.queue_length == 1

    def test_batch_reports_drops(self, client, auth_headers, restore_state):
        app.state.analytics_emitter = AnalyticsEmitter(queue_size=1)
        event = {
            "organization_id": str(uuid4()),
            "event_type": EventType.LESSON_STARTED.value,
            "event_name": "Lesson Started",
        }

        response = client.post(
            "/v1/analytics/events/batch",
            json={"events": [event, event, event]},
            headers=auth_headers,
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": 1, "dropped": 2}

    def test_requires_token(self, client):
        response = client.post("/v1/analytics/events", json={})

        assert response.status_code == 401


class TestCounters:
    def test_reads_hour(self, client, auth_headers, restore_state):
        app.state.redis = fake_redis({"lesson_completed": 4, "course_completed": 1})

        response = client.get(
            "/v1/analytics/counters",
            params={"hour": "2026-03-10T12"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["hour"] == "2026-03-10T12"
        assert body["counts"]["lesson_completed"] == 4
        assert body["counts"]["quiz_passed"] == 0
        assert body["total"] == 5
        keys = app.state.redis.mget.await_args.args[0]
        assert "analytics:2026-03-10T12:course_completed" in keys

    def test_rejects_bad_hour(self, client, auth_headers, restore_state):
        app.state.redis = fake_redis({})

        response = client.get(
            "/v1/analytics/counters",
            params={"hour": "yesterday"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    def test_unavailable_without_redis(self, client, auth_headers, restore_state):
        app.state.redis = None

        response = client.get("/v1/analytics/counters", headers=auth_headers)

        assert response.status_code == 503
