"""Central environment-driven settings shared by all notification services.

Each service process loads this once at startup. Service-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    kafka_bootstrap_servers: str = "kafka:9092"
    redis_url: str = "redis://redis:6379/0"
    postgres_dsn: str
    api_key: str
    # Empty disables span export.
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    otel_traces_sample_ratio: float = 1.0
    delivery_topic: str = "notifications.delivery"
    # Every delivery record shares one partition key, so the queue keeps a
    # single global FIFO order.
    delivery_partition_key: str = "default-group"
    audit_topic: str = "notifications.audit"
    dlq_topic: str = "notifications.dlq"
    log_ttl_days: int = 30
    log_purge_interval_seconds: int = 3600
    idempotency_ttl_seconds: int = 86400
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
