"""Shared test fixtures.

Environment is set before the application module is imported so the cached
settings pick it up.
"""

import os
import tempfile


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("API_AUTH_TOKEN", "test-integration-token")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="learnhub-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from learnhub.main import app  # noqa: E402


API_TOKEN = os.environ["API_AUTH_TOKEN"]


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan, so no Cassandra or Redis is needed."""
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture
def api_token() -> str:
    return API_TOKEN
