"""Ambient utilities: retries, telemetry and logging setup."""

from .logging import configure_logging
from .retry import async_retry_on_failure, retry_async
from .telemetry import record_transaction_outcome, span

__all__ = [
    "async_retry_on_failure",
    "configure_logging",
    "record_transaction_outcome",
    "retry_async",
    "span",
]
