"""Centralized configuration management for moexfeed.

Type-safe configuration using Pydantic Settings with environment variable
override support. Configuration is hierarchical:
- IssConfig: MOEX ISS endpoint, engine/market and request pacing
- KafkaConfig: broker connection, topic and delivery settings
- CollectorConfig: poll interval and watermark location
- ObservabilityConfig: logging and metrics settings
- FeedConfig: main configuration aggregating all sub-configs

Environment variables follow the pattern: MOEXFEED_{COMPONENT}_{PARAMETER}

Examples:
    MOEXFEED_ISS_ENGINE=currency
    MOEXFEED_ISS_MARKET=selt
    MOEXFEED_KAFKA_BOOTSTRAP_SERVERS=kafka:29092
    MOEXFEED_COLLECTOR_POLL_INTERVAL=5
    MOEXFEED_COLLECTOR_STATE_FILE_PATH=/var/lib/moexfeed/last_trade_id

Usage:
    from moexfeed.common.config import config

    print(config.iss.engine, config.iss.market)
    print(config.kafka.topic)
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IssConfig(BaseSettings):
    """MOEX ISS (Informational & Statistical Server) settings.

    Controls which trade feed is polled and how fast requests may be issued.
    """

    model_config = SettingsConfigDict(env_prefix="MOEXFEED_ISS_", case_sensitive=False, extra="ignore")

    base_url: str = Field(default="https://iss.moex.com", description="ISS base URL")

    engine: str = Field(default="stock", description="Trading engine (e.g., stock, currency, futures)")

    market: str = Field(default="shares", description="Market within the engine (e.g., shares, bonds)")

    page_size: int = Field(
        default=100, description="Maximum trades requested per poll", ge=1, le=5000,
    )

    request_timeout: float = Field(
        default=10.0, description="HTTP request timeout in seconds", gt=0,
    )

    requests_per_second: float = Field(
        default=1.0, description="Rate limit for ISS requests", gt=0,
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL is a valid HTTP(S) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("engine", "market")
    @classmethod
    def validate_path_segment(cls, v: str) -> str:
        """Engine and market are URL path segments."""
        v = v.strip()
        if not v or "/" in v:
            raise ValueError("engine and market must be non-empty and contain no '/'")
        return v


class KafkaConfig(BaseSettings):
    """Kafka producer configuration.

    Controls the broker connection and the destination topic for trades.
    """

    model_config = SettingsConfigDict(env_prefix="MOEXFEED_KAFKA_", case_sensitive=False, extra="ignore")

    bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka bootstrap servers (comma-separated for multiple brokers)",
    )

    topic: str = Field(default="iss_data", description="Destination topic for trades")

    delivery_timeout: float = Field(
        default=30.0, description="Seconds to wait for a broker acknowledgement", gt=0,
    )

    security_protocol: Optional[str] = Field(
        default=None, description="PLAINTEXT, SSL, SASL_PLAINTEXT or SASL_SSL",
    )

    sasl_mechanism: Optional[str] = Field(default=None, description="SASL mechanism (e.g., PLAIN)")

    sasl_username: Optional[str] = Field(default=None, description="SASL username")

    sasl_password: Optional[str] = Field(default=None, description="SASL password")

    @field_validator("bootstrap_servers", "topic")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Ensure bootstrap servers and topic are not empty."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()


class CollectorConfig(BaseSettings):
    """Collection cycle configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MOEXFEED_COLLECTOR_", case_sensitive=False, extra="ignore",
    )

    poll_interval: float = Field(
        default=15.0, description="Seconds between collection cycles", gt=0,
    )

    state_file_path: Path = Field(
        default=Path("./.last_trade_id"),
        description="File holding the last published trade number",
    )


class ObservabilityConfig(BaseSettings):
    """Logging and metrics configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MOEXFEED_OBSERVABILITY_", case_sensitive=False, extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    json_logs: bool = Field(default=False, description="Render logs as JSON lines")

    prometheus_port: int = Field(
        default=9108, description="Prometheus metrics port", ge=1024, le=65535,
    )

    enable_metrics: bool = Field(default=True, description="Expose Prometheus metrics over HTTP")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v


class FeedConfig(BaseSettings):
    """Main moexfeed configuration.

    Aggregates all sub-configurations into a single config object.
    Automatically loads from environment variables with MOEXFEED_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="MOEXFEED_",
        case_sensitive=False,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    environment: Literal["local", "test", "staging", "production"] = Field(
        default="local", description="Deployment environment",
    )

    iss: IssConfig = Field(default_factory=IssConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


# Global singleton instance
# Import this in other modules: from moexfeed.common.config import config
config = FeedConfig()
