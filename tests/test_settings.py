"""Tests for settings parsing."""

import pytest
from pydantic import ValidationError

from learnhub.config.settings import Settings


def test_comma_separated_lists(monkeypatch):
    monkeypatch.setenv("CASSANDRA_HOSTS", "cass-1, cass-2")
    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example.com"]')

    settings = Settings(_env_file=None)

    assert settings.cassandra_hosts == ["cass-1", "cass-2"]
    assert settings.cors_origins == ["https://app.example.com"]


def test_agent_base_url_trailing_slash(monkeypatch):
    monkeypatch.setenv("AGENT_API_BASE_URL", "https://agents.example.com/")

    assert Settings(_env_file=None).agent_api_base_url == "https://agents.example.com"


def test_agent_api_configured_needs_key_and_agent(monkeypatch):
    monkeypatch.setenv("AGENT_API_KEY", "k")
    monkeypatch.delenv("SOURCING_AGENT_ID", raising=False)
    assert Settings(_env_file=None).agent_api_configured is False

    monkeypatch.setenv("SOURCING_AGENT_ID", "agent-1")
    assert Settings(_env_file=None).agent_api_configured is True


def test_production_requires_api_token(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.delenv("API_AUTH_TOKEN", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_update_attempts_must_be_positive(monkeypatch):
    monkeypatch.setenv("PROGRESS_MAX_UPDATE_ATTEMPTS", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
