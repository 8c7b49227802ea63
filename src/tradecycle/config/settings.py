"""
Configuration system with Pydantic Settings and validation.

All values can be overridden from the environment with the ``TRC_`` prefix and
``__`` as the nested delimiter, e.g. ``TRC_ORCHESTRATOR__CIRCUIT_BREAKER_FAILURE_THRESHOLD=3``.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorConfig(BaseModel):
    """Configuration for the cycle orchestrator."""

    circuit_breaker_failure_threshold: int = Field(5, gt=0)
    min_candles: int = Field(50, ge=0, description="Minimum candles needed to continue a cycle")
    persist_snapshots: bool = Field(False)
    artifacts_dir: Path = Field(Path("./artifacts"))


class RunnerConfig(BaseModel):
    """Configuration for recurring cycles."""

    symbols: list[str] = Field(default_factory=lambda: ["BTC", "ETH"])
    timeframe: str = Field("1h")
    cycle_interval_seconds: float = Field(300.0, gt=0)

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v):
        cleaned = [s.strip().upper() for s in v if s.strip()]
        if not cleaned:
            raise ValueError("symbols must contain at least one symbol")
        return cleaned


class ObservabilityConfig(BaseModel):
    """Configuration for observability and monitoring."""

    enable_tracing: bool = Field(False)
    enable_metrics: bool = Field(True)
    log_level: str = Field("INFO")

    otlp_endpoint: str | None = Field(None)
    service_name: str = Field("tradecycle")
    service_version: str = Field("1.0.0")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


class APIConfig(BaseModel):
    """Configuration for the operator API server."""

    host: str = Field("0.0.0.0")
    port: int = Field(8000, gt=0, le=65535)
    enable_cors: bool = Field(True)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="TRC_", env_nested_delimiter="__", case_sensitive=False, extra="ignore"
    )

    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
