"""
Configuration management for the entity API server.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development, except
      the schema document path which ``main`` requires
    - Capacity settings are validated before any database is built

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep one from_env() per section
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .store.database import DEFAULT_MAX_DATABASES
from .store.instances import DEFAULT_CAPACITY, DEFAULT_LOW_WATERMARK

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to bind
        api_prefix: Path prefix all entity routes live under
        database_header: Request header naming a non-default database
        max_workers: Worker threads dispatching requests
    """

    host: str = "0.0.0.0"
    port: int = 4567
    api_prefix: str = ""
    database_header: str = "X-Database-Name"
    max_workers: int = 8

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "4567")),
            api_prefix=os.getenv("API_PREFIX", ""),
            database_header=os.getenv("DATABASE_HEADER", "X-Database-Name"),
            max_workers=int(os.getenv("HTTP_MAX_WORKERS", "8")),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Instance store configuration.

    Attributes:
        max_instances: Per-entity capacity unless the entity sets its own
        low_watermark: Count below which the repopulator reseeds
        repopulate_enabled: Whether the repopulation hook is installed
        max_databases: Upper bound on named databases, default included
    """

    max_instances: int = DEFAULT_CAPACITY
    low_watermark: int = DEFAULT_LOW_WATERMARK
    repopulate_enabled: bool = True
    max_databases: int = DEFAULT_MAX_DATABASES

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            max_instances=int(os.getenv("MAX_INSTANCES", str(DEFAULT_CAPACITY))),
            low_watermark=int(os.getenv("LOW_WATERMARK", str(DEFAULT_LOW_WATERMARK))),
            repopulate_enabled=_env_bool("REPOPULATE_ENABLED", "true"),
            max_databases=int(os.getenv("MAX_DATABASES", str(DEFAULT_MAX_DATABASES))),
        )


@dataclass(frozen=True)
class SchemaConfig:
    """Schema document location.

    Attributes:
        path: YAML or JSON schema document
    """

    path: str | None = None

    @classmethod
    def from_env(cls) -> SchemaConfig:
        """Load configuration from environment variables."""
        return cls(path=os.getenv("SCHEMA_PATH") or None)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        http: HTTP server configuration
        store: Instance store configuration
        schema: Schema document configuration
        observability: Logging configuration
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            http=HttpConfig.from_env(),
            store=StoreConfig.from_env(),
            schema=SchemaConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT must be between 1 and 65535, got {self.http.port}")
        if self.http.max_workers < 1:
            raise ValueError("HTTP_MAX_WORKERS must be at least 1")
        if self.store.max_instances < 1:
            raise ValueError("MAX_INSTANCES must be at least 1")
        if self.store.low_watermark < 0:
            raise ValueError("LOW_WATERMARK must not be negative")
        if self.store.low_watermark > self.store.max_instances:
            raise ValueError(
                f"LOW_WATERMARK ({self.store.low_watermark}) must not exceed "
                f"MAX_INSTANCES ({self.store.max_instances})"
            )
        if self.store.max_databases < 1:
            raise ValueError("MAX_DATABASES must be at least 1")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.schema.path and not os.path.exists(self.schema.path):
            logger.warning(f"Schema document does not exist: {self.schema.path}")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "api_prefix": self.http.api_prefix,
                "database_header": self.http.database_header,
                "max_instances": self.store.max_instances,
                "low_watermark": self.store.low_watermark,
                "repopulate_enabled": self.store.repopulate_enabled,
                "max_databases": self.store.max_databases,
                "schema_path": self.schema.path,
                "log_level": self.observability.log_level,
            },
        )
