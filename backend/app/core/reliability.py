"""
Reliability utilities.

Bounded retry for transient database conditions (connection pool
exhaustion, "too many connections") and a circuit breaker for calls to
the directory server.
"""

import time
import asyncio
import logging
from typing import Callable, Any, Optional

from sqlalchemy.exc import TimeoutError as PoolTimeoutError, DBAPIError

from backend.app.core.config import settings
from backend.app.core.exceptions import TransientStorageError

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "too many connections",
    "too many clients",
    "remaining connection slots are reserved",
    "queuepool limit",
)


def is_transient_db_error(exc: BaseException) -> bool:
    """True for pool exhaustion and server-side connection limit errors."""
    if isinstance(exc, PoolTimeoutError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        text = f"{exc.orig!r} {exc}".lower()
        return any(marker in text for marker in _TRANSIENT_MARKERS)
    return False


async def retry_transient(
    func: Callable,
    *args,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    **kwargs
) -> Any:
    """
    Await ``func`` and retry it on transient database errors.

    Retries ``attempts`` times (default ``settings.db_retry_attempts``),
    sleeping ``base_delay * n`` before the n-th retry. Non-transient errors
    propagate immediately.

    Raises:
        TransientStorageError: if every retry hit a transient error
    """
    retries = settings.db_retry_attempts if attempts is None else attempts
    delay = settings.db_retry_base_delay if base_delay is None else base_delay

    for attempt in range(retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            if not is_transient_db_error(exc):
                raise
            if attempt >= retries:
                logger.error("Database still unavailable after %d retries: %s", retries, exc)
                raise TransientStorageError() from exc
            wait = delay * (attempt + 1)
            logger.warning("Transient database error (attempt %d/%d), retrying in %.2fs: %s",
                           attempt + 1, retries + 1, wait, exc)
            await asyncio.sleep(wait)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' consecutive failures occur, the circuit opens
    and rejects calls for 'reset_timeout' seconds, then lets one trial
    call through (HALF_OPEN).
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60, expected_exceptions: tuple = (Exception,)):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.expected_exceptions = expected_exceptions
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except self.expected_exceptions:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold or self.state == "HALF_OPEN":
            if self.state != "OPEN":
                logger.warning("Circuit opened after %d failures", self.failures)
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"
