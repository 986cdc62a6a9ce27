"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ordered_consumer.constants import (
    DEFAULT_ACK_DEADLINE_SECONDS,
    DEFAULT_LOCK_TTL_SECONDS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    DEFAULT_MIN_BACKOFF_SECONDS,
    LockReleaseMode,
)
from ordered_consumer.types.message import SubscriptionPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pub/Sub
    gcloud_project: str = "local-project"
    topic_name: str = "ordered-messages"
    subscription_name: str = "ordered-messages-sub"
    pubsub_emulator_host: str | None = None

    # Subscription policy
    ack_deadline_seconds: int = DEFAULT_ACK_DEADLINE_SECONDS
    min_backoff_seconds: int = DEFAULT_MIN_BACKOFF_SECONDS
    max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS
    ordering_enabled: bool = True

    # Redis lock store
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_socket_timeout_seconds: float = 5.0
    lock_ttl_seconds: int = Field(default=DEFAULT_LOCK_TTL_SECONDS, ge=1)
    lock_release_mode: LockReleaseMode = LockReleaseMode.HOLDER

    # Consumer
    consumer_id: str | None = None
    pull_batch_size: int = 1
    pull_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 1.0

    # Processing
    processor_name: str = "simulated"
    processing_base_delay_seconds: float = 2.0
    processing_jitter_seconds: float = 0.5

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "ordered-consumer"
    metrics_enabled: bool = True
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"

    def subscription_policy(self) -> SubscriptionPolicy:
        """Build the immutable subscription policy for this process."""
        return SubscriptionPolicy(
            ack_deadline_seconds=self.ack_deadline_seconds,
            min_backoff_seconds=self.min_backoff_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
            ordering_enabled=self.ordering_enabled,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
