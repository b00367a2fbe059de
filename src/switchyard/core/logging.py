"""Logging module for the router.

Provides structured logging with JSON format, correlation IDs, and sensitive data redaction.
"""

import json
import logging
import sys
import uuid
from datetime import UTC, datetime
from typing import Any

from switchyard.core.config import LoggingConfig

# LogRecord attributes that are not user supplied fields
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
        "extra_fields",
    ]
)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def __init__(self) -> None:
        super().__init__()
        self._correlation_id: str | None = None

    def set_correlation_id(self, correlation_id: str) -> None:
        self._correlation_id = correlation_id

    def clear_correlation_id(self) -> None:
        self._correlation_id = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to the log record.

        Args:
            record: The log record to filter

        Returns:
            True to include the record
        """
        record.correlation_id = self._correlation_id or "none"  # type: ignore
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, redact_patterns: list[str] | None = None):
        """Initialize the JSON formatter.

        Args:
            redact_patterns: Field names to redact from logs (case-insensitive substrings)
        """
        super().__init__()
        self.redact_patterns = redact_patterns or []

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "none"),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            log_data.update(self._redact_sensitive_data(extra))

        custom = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        log_data.update(self._redact_sensitive_data(custom))

        return json.dumps(log_data, default=str)

    def _redact_sensitive_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive data from log fields.

        Args:
            data: Dictionary potentially containing sensitive data

        Returns:
            Dictionary with sensitive fields redacted
        """
        redacted: dict[str, Any] = {}
        for key, value in data.items():
            if any(pattern.lower() in key.lower() for pattern in self.redact_patterns):
                redacted[key] = "***REDACTED***"
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive_data(value)
            else:
                redacted[key] = value
        return redacted


class TextFormatter(logging.Formatter):
    """Text formatter for human-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(UTC).isoformat()
        correlation_id = getattr(record, "correlation_id", "none")

        base = (
            f"{timestamp} [{record.levelname}] "
            f"[{correlation_id}] "
            f"{record.name}: {record.getMessage()}"
        )

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class RouterLogger:
    """Router logger with structured events and correlation ID support."""

    def __init__(self, config: LoggingConfig):
        """Initialize the router logger.

        Args:
            config: Logging configuration
        """
        self.config = config
        self.correlation_filter = CorrelationIdFilter()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Configure the `switchyard` logger tree."""
        logger = logging.getLogger("switchyard")
        logger.setLevel(getattr(logging, self.config.level))
        logger.handlers.clear()

        handler: logging.Handler
        if self.config.output == "stdout":
            handler = logging.StreamHandler(sys.stdout)
        elif self.config.output == "stderr":
            handler = logging.StreamHandler(sys.stderr)
        else:
            # Anything else is a file path
            handler = logging.FileHandler(self.config.output)

        formatter: logging.Formatter
        if self.config.format.lower() == "json":
            formatter = JsonFormatter(redact_patterns=self.config.redact_fields)
        else:
            formatter = TextFormatter()

        handler.setFormatter(formatter)
        handler.addFilter(self.correlation_filter)
        logger.addHandler(handler)
        logger.propagate = False

    def set_correlation_id(self, correlation_id: str | None = None) -> str:
        """Set or generate a correlation ID for the current request.

        Args:
            correlation_id: Optional correlation ID. If None, generates a new one.

        Returns:
            The correlation ID that was set
        """
        if correlation_id is None:
            correlation_id = self.generate_correlation_id()
        self.correlation_filter.set_correlation_id(correlation_id)
        return correlation_id

    def clear_correlation_id(self) -> None:
        self.correlation_filter.clear_correlation_id()

    @staticmethod
    def generate_correlation_id() -> str:
        return f"req-{uuid.uuid4().hex[:16]}"

    def get_logger(self, name: str = "switchyard") -> logging.Logger:
        return logging.getLogger(name)

    def log_match(
        self,
        method: str,
        path: str,
        status: str,
        route_name: str | None = None,
        latency_ms: float | None = None,
        allowed_methods: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log the outcome of matching a request.

        Args:
            method: HTTP method
            path: Request path
            status: Match status value (found, not_found, method_not_allowed)
            route_name: Matched route name
            latency_ms: Matching latency in milliseconds
            allowed_methods: Allowed methods on method-not-allowed
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        match_data: dict[str, Any] = {
            "method": method,
            "path": path,
            "status": status,
            "route": route_name,
            "latency_ms": latency_ms,
        }
        if allowed_methods:
            match_data["allowed_methods"] = allowed_methods

        extra_fields: dict[str, Any] = {"event_type": "route_match", "match": match_data}
        extra_fields.update(kwargs)

        log_level = logging.DEBUG if status == "found" else logging.INFO
        message = f"{method} {path} -> {route_name if route_name else status}"

        logger.log(log_level, message, extra={"extra_fields": extra_fields})

    def log_compile(
        self,
        route_count: int,
        chunk_count: int,
        strategy: str,
        duration_ms: float,
        from_cache: bool = False,
        **kwargs: Any,
    ) -> None:
        """Log a dispatch data compilation or cache load.

        Args:
            route_count: Number of routes compiled
            chunk_count: Number of chunks across all method buckets
            strategy: Dispatch strategy name
            duration_ms: Duration in milliseconds
            from_cache: Whether the data came from the cache
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        extra_fields: dict[str, Any] = {
            "event_type": "routes_compiled",
            "compile": {
                "routes": route_count,
                "chunks": chunk_count,
                "strategy": strategy,
                "duration_ms": duration_ms,
                "from_cache": from_cache,
            },
        }
        extra_fields.update(kwargs)

        source = "cache" if from_cache else "collector"
        logger.info(
            f"Loaded {route_count} routes in {chunk_count} chunks from {source} ({duration_ms:.2f}ms)",
            extra={"extra_fields": extra_fields},
        )

    def log_generate_error(self, route_name: str, error: Exception, **kwargs: Any) -> None:
        """Log a failed URL generation.

        Args:
            route_name: Requested route name
            error: Raised error
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        extra_fields: dict[str, Any] = {
            "event_type": "generate_failed",
            "generate": {"route": route_name, "error_type": type(error).__name__},
        }
        extra_fields.update(kwargs)

        logger.warning(f"URL generation failed: {error}", extra={"extra_fields": extra_fields})

    def log_cache_event(self, event: str, key: str, **kwargs: Any) -> None:
        """Log a compiled data cache event.

        Args:
            event: Event type (hit, miss, write, corrupt, clear)
            key: Cache key
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        extra_fields: dict[str, Any] = {
            "event_type": "route_cache",
            "cache": {"event": event, "key": key},
        }
        extra_fields.update(kwargs)

        log_level = logging.WARNING if event == "corrupt" else logging.DEBUG
        logger.log(log_level, f"Route cache {event} for key {key}", extra={"extra_fields": extra_fields})


# Global logger instance (will be initialized by the application)
_router_logger: RouterLogger | None = None


def initialize_logging(config: LoggingConfig) -> RouterLogger:
    """Initialize the global router logger.

    Args:
        config: Logging configuration

    Returns:
        Initialized RouterLogger instance
    """
    global _router_logger
    _router_logger = RouterLogger(config)
    return _router_logger


def get_logger() -> RouterLogger:
    """Get the global router logger.

    Raises:
        RuntimeError: If logging has not been initialized
    """
    if _router_logger is None:
        raise RuntimeError("Logging not initialized. Call initialize_logging() first.")
    return _router_logger
