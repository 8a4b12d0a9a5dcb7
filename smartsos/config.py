"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (credentials only from the environment, never required)
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()


class InsightConfig(BaseModel):
    """Insight generator configuration. A missing key means canned insights only."""

    openai_api_key: str | None = Field(None, description="OpenAI API key (optional)")
    model_name: str = Field(
        default="openai:gpt-4o-mini", description="Model used for short health insights"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=100, gt=0)

    @field_validator("openai_api_key")
    def blank_key_is_missing(cls, v):
        if not v or v == "your-openai-api-key-here":
            return None
        return v


class MonitoringConfig(BaseModel):
    """Ticker intervals, window sizes and SOS timings."""

    vitals_interval_seconds: float = Field(
        default=2.0, gt=0.0, description="Interval between synthetic vital samples"
    )
    compliance_interval_seconds: float = Field(
        default=10.0, gt=0.0, description="Interval between missed-dose scans"
    )
    history_window: int = Field(default=20, gt=0, description="Samples kept per vital channel")

    sos_countdown_seconds: int = Field(default=10, gt=0)
    test_countdown_seconds: int = Field(default=5, gt=0)
    countdown_tick_seconds: float = Field(
        default=1.0, gt=0.0, description="Interval between countdown decrements"
    )
    insight_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Delay before the post-SOS insight refresh"
    )
    notification_queue_size: int = Field(
        default=100, gt=0, description="Maximum in-app notifications retained"
    )


class MessagingConfig(BaseModel):
    """External messaging relay and geocoding endpoints."""

    telegram_api_base: str = Field(default="https://api.telegram.org")
    geocode_url: str = Field(default="https://nominatim.openstreetmap.org/reverse")
    user_agent: str = Field(default="smartsos-monitor/0.1")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    insight: InsightConfig = Field(default_factory=InsightConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    messaging: MessagingConfig = Field(default_factory=MessagingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    insight_config = InsightConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        model_name=os.getenv("INSIGHT_MODEL", "openai:gpt-4o-mini"),
    )

    monitoring_config = MonitoringConfig(
        vitals_interval_seconds=float(os.getenv("VITALS_INTERVAL_SECONDS", "2.0")),
        compliance_interval_seconds=float(os.getenv("COMPLIANCE_INTERVAL_SECONDS", "10.0")),
        history_window=int(os.getenv("HISTORY_WINDOW", "20")),
    )

    messaging_config = MessagingConfig(
        telegram_api_base=os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org"),
        geocode_url=os.getenv("GEOCODE_URL", "https://nominatim.openstreetmap.org/reverse"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        insight=insight_config,
        monitoring=monitoring_config,
        messaging=messaging_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog over the stdlib logging backend."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, config.level))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
