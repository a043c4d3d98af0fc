"""Logging configuration and Prometheus metrics shared across the API."""

from __future__ import annotations

import logging
import re
from contextvars import ContextVar

import structlog
from prometheus_client import REGISTRY, Counter, Histogram

_TRACE_ID_CTX: ContextVar[str | None] = ContextVar("trace_id", default=None)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog events through stdlib logging as JSON lines."""

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames)


REQUEST_COUNTER = _get_or_create_metric(
    Counter,
    "niraiva_requests_total",
    "Total HTTP requests processed by the backend",
    ("method", "endpoint", "status"),
)
REQUEST_LATENCY = _get_or_create_metric(
    Histogram,
    "niraiva_request_latency_seconds",
    "Latency of HTTP requests",
    ("method", "endpoint"),
)
CUSTOM_ID_COLLISIONS = _get_or_create_metric(
    Counter,
    "niraiva_custom_id_collisions_total",
    "Custom ID candidates rejected because an active user already held them",
    ("role",),
)
ONBOARDING_OUTCOMES = _get_or_create_metric(
    Counter,
    "niraiva_onboarding_outcomes_total",
    "Onboarding attempts grouped by role and result code",
    ("role", "outcome"),
)


_PATH_PARAM_RE = re.compile(
    r"/(?:[0-9]+|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}|[0-9a-fA-F]{8,})(?=/|$)"
)


def _normalise_path_for_metrics(path: str) -> str:
    """Reduce high-cardinality segments in request paths for metrics labels."""

    if not path:
        return "/"
    return _PATH_PARAM_RE.sub("/:param", path)


__all__ = [
    "configure_logging",
    "REQUEST_COUNTER",
    "REQUEST_LATENCY",
    "CUSTOM_ID_COLLISIONS",
    "ONBOARDING_OUTCOMES",
    "_TRACE_ID_CTX",
    "_normalise_path_for_metrics",
]
