"""
Retry utilities for the local travel params store.

Network calls are never retried; retries are user-initiated. The only automatic
retry is the compare-and-swap loop of the parameter store, which re-reads the record
when another writer bumped its version in between.
"""
import logging
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


class VersionConflictError(Exception):
    """Stored record version changed between read and write."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected version {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


def store_update_retrying(max_attempts: int = 3) -> Retrying:
    """
    Build a retry controller for compare-and-swap updates.

    Only VersionConflictError is retried. Wait: 10ms -> 20ms -> 40ms (max 100ms).

    Args:
        max_attempts: maximum number of read-modify-write attempts

    Returns:
        tenacity.Retrying usable as ``for attempt in retrying: with attempt: ...``
    """
    return Retrying(
        wait=wait_exponential(multiplier=0.01, min=0.01, max=0.1),
        stop=stop_after_attempt(max_attempts),
        retry=retry_if_exception_type(VersionConflictError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
