"""
Monitoring and Observability

Structured logging and Prometheus metrics for the style transfer pipeline.
"""

import logging
import sys
import time
from typing import Optional

import structlog
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from .config import AppSettings, get_settings


# Prometheus Metrics
TRANSFER_COUNT = Counter(
    'stylekit_transfers_total',
    'Total number of style transfer requests',
    ['style', 'path']
)

TRANSFER_DURATION = Histogram(
    'stylekit_transfer_duration_seconds',
    'Style transfer duration in seconds',
    ['style']
)

MODEL_LOAD_DURATION = Histogram(
    'stylekit_model_load_seconds',
    'Time taken to create an inference session',
    ['model']
)

ERROR_COUNT = Counter(
    'stylekit_errors_total',
    'Total number of errors',
    ['error_type', 'component']
)

CACHED_SESSIONS = Gauge(
    'stylekit_cached_sessions',
    'Number of inference sessions held by session caches'
)


def setup_logging(settings: Optional[AppSettings] = None):
    """Configure structured logging."""

    settings = settings or get_settings()

    if settings.monitoring.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

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
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.monitoring.log_level)
    )

    logger = structlog.get_logger()
    logger.info("Logging configured", level=settings.monitoring.log_level)

    return logger


def start_metrics_server(port: int = 9090) -> bool:
    """Expose the Prometheus registry over HTTP."""

    logger = structlog.get_logger()
    try:
        start_http_server(port)
        logger.info("Metrics server started", port=port)
        return True
    except OSError as e:
        logger.error("Failed to start metrics server", port=port, error=str(e))
        return False


def record_transfer(style: str, path: str, duration: float, enabled: Optional[bool] = None):
    """Record the outcome of a single transfer; enabled defaults to the global setting."""
    if enabled is None:
        enabled = get_settings().monitoring.enable_metrics
    if not enabled:
        return
    TRANSFER_COUNT.labels(style=style, path=path).inc()
    TRANSFER_DURATION.labels(style=style).observe(duration)


def record_error(error: BaseException, component: str, enabled: Optional[bool] = None):
    if enabled is None:
        enabled = get_settings().monitoring.enable_metrics
    if not enabled:
        return
    ERROR_COUNT.labels(error_type=type(error).__name__, component=component).inc()


class MetricsContext:
    """Context manager for recording metrics."""

    def __init__(self, operation: str, component: str = 'general', enabled: bool = True):
        self.operation = operation
        self.component = component
        self.enabled = enabled
        self.start_time = None
        self.duration = 0.0
        self.logger = structlog.get_logger()

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug("Operation started", operation=self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time

        if exc_type is None:
            self.logger.debug("Operation completed",
                              operation=self.operation,
                              duration=self.duration)
        else:
            self.logger.error("Operation failed",
                              operation=self.operation,
                              duration=self.duration,
                              error=str(exc_val))
            if self.enabled:
                ERROR_COUNT.labels(error_type=exc_type.__name__, component=self.component).inc()
