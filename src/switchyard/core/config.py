"""Configuration management module for the router.

This module handles loading and validating configuration from multiple sources:
- Configuration files (YAML)
- Environment variables
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from switchyard.core.route import HTTP_METHODS

VALID_STRATEGIES = ["mark", "named"]


class RouteConfig(BaseModel):
    """Route configuration."""

    path: str = Field(description="Route pattern")
    target: Any = Field(default=None, description="Handler value, opaque to the router")
    name: str | None = Field(default=None, description="Unique route name")
    methods: list[str] | None = Field(
        default=None, description="Allowed HTTP methods (None = any method)"
    )
    tokens: dict[str, str] = Field(
        default_factory=dict, description="Attribute constraint overrides"
    )
    host: str | None = Field(default=None, description="Host regex (None = any host)")
    port: int | None = Field(default=None, ge=1, le=65535, description="Required port")
    schemes: list[str] | None = Field(
        default=None, description="Allowed URL schemes (None = any scheme)"
    )

    @field_validator("methods")
    @classmethod
    def validate_methods(cls, v: list[str] | None) -> list[str] | None:
        """Validate and upper-case HTTP methods."""
        if v is None:
            return v
        if not v:
            raise ValueError("Http methods array is empty")
        methods = [method.upper() for method in v]
        for method in methods:
            if method not in HTTP_METHODS:
                raise ValueError(f"Invalid HTTP method: {method}. Must be one of {list(HTTP_METHODS)}")
        return methods


class CacheConfig(BaseModel):
    """Compiled route data cache configuration."""

    enabled: bool = Field(default=False, description="Enable the compiled data cache")
    backend: str = Field(default="memory", description="Cache backend (memory, file, redis)")
    key: str = Field(default="router_parsed_data", description="Cache key of the dispatch data")
    directory: str = Field(
        default="tmp/switchyard-cache", description="Directory of the file backend"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis backend connection URL"
    )
    key_prefix: str = Field(default="switchyard:", description="Redis key prefix")
    ttl: int | None = Field(default=None, ge=1, description="Redis entry TTL in seconds")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate cache backend is valid."""
        valid_backends = ["memory", "file", "redis"]
        if v not in valid_backends:
            raise ValueError(f"Invalid cache backend: {v}. Must be one of {valid_backends}")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")
    output: str = Field(default="stdout", description="Log output (stdout, file path, etc.)")
    correlation_id_header: str = Field(
        default="X-Request-ID", description="Header name for correlation ID"
    )
    redact_fields: list[str] = Field(
        default_factory=lambda: ["Authorization", "Cookie", "Set-Cookie"],
        description="Log fields to redact",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        valid_formats = ["json", "text"]
        if v not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = Field(default=True, description="Enable metrics collection")
    endpoint: str = Field(default="/metrics", description="Metrics endpoint path")


class RouterConfig(BaseModel):
    """Main router configuration."""

    environment: str = Field(default="development", description="Environment name")
    strategy: str = Field(default="mark", description="Dispatch strategy (mark or named)")
    chunk_size: int = Field(default=15, ge=1, description="Maximum routes per compiled chunk")
    tokens: dict[str, str] = Field(
        default_factory=dict, description="Default attribute constraints"
    )
    routes: list[RouteConfig] = Field(default_factory=list)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        """Validate dispatch strategy is valid."""
        v_lower = v.lower()
        if v_lower not in VALID_STRATEGIES:
            raise ValueError(f"Invalid strategy: {v}. Must be one of {VALID_STRATEGIES}")
        return v_lower


class ConfigLoader:
    """Loads and validates configuration from multiple sources."""

    def __init__(self, config_path: str | None = None):
        """Initialize the configuration loader.

        Args:
            config_path: Path to configuration file. If None, uses environment variable
                        SWITCHYARD_CONFIG_PATH or defaults to config/router.yaml
        """
        self.config_path = self._resolve_config_path(config_path)

    def _resolve_config_path(self, config_path: str | None) -> Path:
        """Resolve configuration file path."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("SWITCHYARD_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        env = os.getenv("SWITCHYARD_ENV", "development")
        env_specific = Path(f"config/router.{env}.yaml")
        if env_specific.exists():
            return env_specific

        return Path("config/router.yaml")

    def load(self) -> RouterConfig:
        """Load and validate configuration.

        Returns:
            Validated RouterConfig instance

        Raises:
            ValueError: If configuration is invalid
        """
        config_dict = self._load_from_file()
        config_dict = self._override_from_env(config_dict)

        try:
            config = RouterConfig(**config_dict)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

        return config

    def _load_from_file(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            # Missing file means defaults
            return {}

        with open(self.config_path) as f:
            config_dict = yaml.safe_load(f) or {}

        return config_dict

    def _override_from_env(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Override configuration with environment variables.

        Environment variables follow the pattern: SWITCHYARD_<SECTION>_<KEY>
        For example: SWITCHYARD_CACHE_BACKEND=redis
        """
        if strategy := os.getenv("SWITCHYARD_STRATEGY"):
            config_dict["strategy"] = strategy
        if chunk_size := os.getenv("SWITCHYARD_CHUNK_SIZE"):
            config_dict["chunk_size"] = int(chunk_size)

        # Cache config
        if cache_enabled := os.getenv("SWITCHYARD_CACHE_ENABLED"):
            config_dict.setdefault("cache", {})["enabled"] = cache_enabled.lower() == "true"
        if backend := os.getenv("SWITCHYARD_CACHE_BACKEND"):
            config_dict.setdefault("cache", {})["backend"] = backend
        if cache_dir := os.getenv("SWITCHYARD_CACHE_DIR"):
            config_dict.setdefault("cache", {})["directory"] = cache_dir
        if redis_url := os.getenv("SWITCHYARD_CACHE_REDIS_URL"):
            config_dict.setdefault("cache", {})["redis_url"] = redis_url

        # Logging config
        if log_level := os.getenv("SWITCHYARD_LOG_LEVEL"):
            config_dict.setdefault("logging", {})["level"] = log_level
        if log_format := os.getenv("SWITCHYARD_LOG_FORMAT"):
            config_dict.setdefault("logging", {})["format"] = log_format

        # Metrics config
        if metrics_enabled := os.getenv("SWITCHYARD_METRICS_ENABLED"):
            config_dict.setdefault("metrics", {})["enabled"] = metrics_enabled.lower() == "true"

        if env := os.getenv("SWITCHYARD_ENV"):
            config_dict["environment"] = env

        return config_dict


def load_config(config_path: str | None = None) -> RouterConfig:
    """Load configuration (convenience function).

    Args:
        config_path: Optional path to configuration file

    Returns:
        Validated RouterConfig instance
    """
    loader = ConfigLoader(config_path)
    return loader.load()
