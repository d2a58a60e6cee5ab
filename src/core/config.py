"""Application settings loaded with Pydantic Settings.

Values are read, highest precedence first, from environment variables, a
``.env`` file in the working directory and the defaults declared below.
Nested sections use ``__`` as the delimiter, e.g.
``MONGO_CONFIG__MAX_RETRIES=5`` or ``LOG_CONFIG__LOG_LEVEL=DEBUG``.

After loading, a few fields left unset are derived from the environment:
the log formatter and trace exporter follow the hosting platform, and
production samples 10% of traces unless told otherwise. MongoDB pool and
timeout options come from a per-environment profile.
"""

import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

type Environment = Literal["development", "test", "production"]

# Driver options for each deployment environment. Explicit overrides on
# MongoConfig take precedence over these values.
MONGO_ENVIRONMENT_PROFILES: dict[str, dict[str, int]] = {
    "development": {
        "maxPoolSize": 10,
        "minPoolSize": 1,
        "connectTimeoutMS": 30000,
        "socketTimeoutMS": 45000,
        "serverSelectionTimeoutMS": 5000,
    },
    "test": {
        "maxPoolSize": 5,
        "minPoolSize": 1,
        "connectTimeoutMS": 10000,
        "socketTimeoutMS": 15000,
        "serverSelectionTimeoutMS": 5000,
    },
    "production": {
        "maxPoolSize": 20,
        "minPoolSize": 5,
        "connectTimeoutMS": 30000,
        "socketTimeoutMS": 60000,
        "serverSelectionTimeoutMS": 10000,
    },
}


class LogConfig(BaseModel):
    """Log output settings (``LOG_CONFIG__*``)."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json", "gcp"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """Tracing settings (``OBSERVABILITY_CONFIG__*``)."""

    enable_tracing: bool = Field(
        default=True,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "gcp", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    gcp_project_id: str | None = Field(
        default=None,
        description="GCP project ID (only for GCP exporter)",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", "gcp_project_id", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class MongoConfig(BaseModel):
    """MongoDB connection and reconnection settings."""

    uri: str = Field(
        default="mongodb://localhost:27017/centivo",
        description="MongoDB connection URI (mongodb:// or mongodb+srv://)",
    )
    test_uri: str = Field(
        default="mongodb://localhost:27017/centivo_test",
        description="MongoDB connection URI used when ENVIRONMENT=test",
    )
    database_name: str | None = Field(
        default=None,
        description="Database name. Taken from the URI path if not specified.",
    )
    users_collection: str = Field(
        default="users",
        min_length=1,
        description="Name of the users collection",
    )
    max_pool_size: int | None = Field(
        default=None,
        ge=1,
        le=500,
        description="Override for the driver's maxPoolSize",
    )
    min_pool_size: int | None = Field(
        default=None,
        ge=0,
        le=500,
        description="Override for the driver's minPoolSize",
    )
    connect_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Override for the driver's connectTimeoutMS",
    )
    socket_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Override for the driver's socketTimeoutMS",
    )
    server_selection_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Override for the driver's serverSelectionTimeoutMS",
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        le=50,
        description="Consecutive reconnection attempts before giving up",
    )
    backoff_base_ms: int = Field(
        default=1000,
        gt=0,
        description="Delay before the first reconnection attempt (milliseconds)",
    )
    backoff_max_ms: int = Field(
        default=30000,
        gt=0,
        description="Upper bound for the reconnection delay (milliseconds)",
    )
    connect_poll_interval_ms: int = Field(
        default=500,
        gt=0,
        description="Poll interval while waiting on an in-flight connection attempt",
    )

    @field_validator("uri", "test_uri", mode="after")
    @classmethod
    def validate_mongo_uri(cls, v: str) -> str:
        """Validate the URI uses a MongoDB scheme."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            msg = "MongoDB URI must start with mongodb:// or mongodb+srv://"
            raise ValueError(msg)
        return v

    def get_uri(self, environment: str) -> str:
        """Get the connection URI for the given environment."""
        if environment == "test":
            return self.test_uri
        return self.uri

    def client_options(self, environment: str) -> dict[str, Any]:
        """Build driver keyword options for the given environment.

        Args:
            environment: The deployment environment.

        Returns:
            dict[str, Any]: Options for AsyncIOMotorClient.
        """
        profile = MONGO_ENVIRONMENT_PROFILES.get(
            environment, MONGO_ENVIRONMENT_PROFILES["development"]
        )
        options: dict[str, Any] = {
            **profile,
            "retryWrites": True,
            "retryReads": True,
        }

        overrides = {
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "connectTimeoutMS": self.connect_timeout_ms,
            "socketTimeoutMS": self.socket_timeout_ms,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        return options


class Settings(BaseSettings):
    """Top-level settings for the service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    # Application settings
    app_name: str = Field(default="Centivo Users API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Environment = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=3000, description="API port")
    docs_url: str | None = Field(default="/docs", description="Swagger UI URL")
    redoc_url: str | None = Field(default="/redoc", description="ReDoc URL")
    openapi_url: str | None = Field(
        default="/openapi.json", description="OpenAPI schema URL"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware",
    )

    # Logging configuration
    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )

    # Observability configuration
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )

    # MongoDB configuration
    mongo_config: MongoConfig = Field(
        default_factory=MongoConfig, description="MongoDB configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Fill in defaults that depend on the runtime environment."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if self.environment == "production":
            if self.observability_config.exporter_type == "console":
                self.observability_config.exporter_type = self._detect_exporter()
            if self.observability_config.trace_sample_rate == 1.0:
                self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json", "gcp"]:
        """Pick gcp on Cloud Run, json in production, console otherwise."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"

        if self.environment == "production":
            return "json"
        return "console"

    def _detect_exporter(self) -> Literal["console", "gcp", "otlp", "none"]:
        """Pick the exporter matching the hosting platform."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        return "otlp"

    @field_validator("docs_url", "redoc_url", "openapi_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        _ = cls
        if v == "":
            return None
        return v

    @property
    def mongo_uri(self) -> str:
        """Connection URI for the current environment."""
        return self.mongo_config.get_uri(self.environment)

    @property
    def mongo_client_options(self) -> dict[str, Any]:
        """Driver options for the current environment."""
        return self.mongo_config.client_options(self.environment)


@lru_cache
def get_settings() -> Settings:
    """Settings for this process, built once."""
    return Settings()
