"""Application settings loaded from the environment and ``.env``."""

import json
from functools import lru_cache
from typing import Annotated, Literal, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


EnvList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """LearnHub API settings.

    Groups: application, integration auth, Redis, Cassandra, logging, CORS,
    agent API, chat streaming, analytics and progress tracking.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="learnhub", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # Shared bearer token for integration routes; also accepted as ?token= on SSE
    api_auth_token: str | None = Field(
        default=None, description="Integration API token (KEEP SECRET!)"
    )

    # Redis (hourly analytics counters only)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = Field(default=10, ge=1)
    redis_socket_timeout: float = Field(default=5.0, gt=0)
    redis_socket_connect_timeout: float = Field(default=5.0, gt=0)
    redis_retry_on_timeout: bool = True
    redis_health_check_interval: int = Field(default=30, ge=0)

    # Cassandra
    cassandra_hosts: EnvList = Field(default=["localhost"])
    cassandra_port: int = 9042
    cassandra_keyspace: str = Field(default="learnhub", pattern=r"^[a-zA-Z_]\w*$")
    cassandra_username: str | None = None
    cassandra_password: str | None = None
    cassandra_protocol_version: int = 4
    cassandra_connect_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    log_format: Literal["json", "console"] = "console"
    log_include_caller_info: bool = True
    log_dir: str = Field(default="logs", description="Directory for rotating log files")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="10MB")
    log_file_backup_count: int = 5
    log_requests: bool = Field(default=True, description="Log request start/finish")
    log_exclude_paths: EnvList = Field(
        default=["/health"],
        description="Path prefixes left out of request logging",
    )

    # CORS
    cors_origins: EnvList = Field(default=["*"])
    cors_allow_credentials: bool = True
    cors_allow_methods: EnvList = Field(default=["*"])
    cors_allow_headers: EnvList = Field(default=["*"])
    cors_max_age: int = 600

    # Agent API (upstream streaming inference)
    agent_api_base_url: str = Field(
        default="https://agent-prod.studio.lyzr.ai",
        description="Base URL of the agent inference API",
    )
    agent_api_key: str | None = Field(
        default=None, description="Sent as x-api-key (KEEP SECRET!)"
    )
    sourcing_agent_id: str | None = Field(
        default=None, description="Agent that answers start-search sessions"
    )
    agent_request_timeout: float = Field(
        default=120.0, gt=0, description="Upstream read timeout in seconds"
    )

    # Chat streaming
    chat_stream_start_delay: float = Field(
        default=0.1,
        ge=0,
        description="Seconds the producer waits so the browser can subscribe first",
    )
    chat_stream_timeout_seconds: float = Field(
        default=300.0, gt=0, description="Max lifetime of one SSE connection"
    )
    chat_stream_poll_interval: float = Field(
        default=15.0,
        gt=0,
        description="Idle seconds between keep-alive frames and disconnect checks",
    )

    # Analytics
    analytics_queue_size: int = Field(default=10000, ge=1)
    analytics_batch_size: int = Field(default=100, ge=1)
    analytics_flush_interval: float = Field(default=1.0, gt=0)

    # Progress tracking
    progress_max_update_attempts: int = Field(
        default=5,
        ge=1,
        description="Conditional enrollment write attempts before giving up",
    )

    @field_validator(
        "cassandra_hosts",
        "cors_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "log_exclude_paths",
        mode="before",
    )
    @classmethod
    def _split_comma_list(cls, value: object) -> object:
        """Accept ``a,b,c`` as well as a JSON list from the environment."""
        if not isinstance(value, str):
            return value
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("agent_api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_production(self) -> Self:
        if self.is_production and not self.api_auth_token:
            raise ValueError("API_AUTH_TOKEN must be set in production")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    @property
    def agent_api_configured(self) -> bool:
        """Both the API key and the sourcing agent id are set."""
        return bool(self.agent_api_key and self.sourcing_agent_id)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
