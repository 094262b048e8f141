"""Timing spans and Prometheus metrics for harness operations."""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from prometheus_client import Counter, Gauge, Histogram

logger = structlog.get_logger(__name__)

operation_duration = Histogram(
    "testdb_operation_duration_seconds",
    "Duration of test database operations",
    ["operation", "status"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
operations_total = Counter(
    "testdb_operations_total",
    "Total number of test database operations",
    ["operation", "status"],
)
coordinated_transactions_total = Counter(
    "testdb_coordinated_transactions_total",
    "Multi-engine transactions by mode and outcome",
    ["mode", "outcome"],
)
active_transactions = Gauge(
    "testdb_active_transactions",
    "Number of multi-engine transactions currently in flight",
)


@asynccontextmanager
async def span(name: str, **attributes: Any) -> AsyncIterator[None]:
    """Time a block of engine I/O and record it as an operation metric.

    Args:
        name: Dotted operation name, e.g. ``postgres.worker.connect``
        **attributes: Extra fields attached to the log event
    """
    start_time = time.perf_counter()
    try:
        yield
    except BaseException as e:
        duration = time.perf_counter() - start_time
        operation_duration.labels(operation=name, status="error").observe(duration)
        operations_total.labels(operation=name, status="error").inc()
        logger.error("Operation failed", operation=name, duration=duration, error=str(e), **attributes)
        raise
    else:
        duration = time.perf_counter() - start_time
        operation_duration.labels(operation=name, status="success").observe(duration)
        operations_total.labels(operation=name, status="success").inc()
        logger.debug("Operation completed", operation=name, duration=duration, **attributes)


def record_transaction_outcome(mode: str, success: bool) -> None:
    """Count a finished coordinator call."""
    coordinated_transactions_total.labels(mode=mode, outcome="success" if success else "failure").inc()
