"""Retry wrapper for database round-trips.

One attempt of an operation is turned into an explicit outcome (``Ok``,
``Retryable`` or ``Fatal``) and ``query_with_retries`` loops over those
outcomes until it reaches a terminal state.
"""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, Final, Generic, TypeVar, Union

from loguru import logger


T = TypeVar("T")

# Substrings of sqlite3.OperationalError messages raised for connection-level
# trouble rather than for a bad statement.
TRANSIENT_ERROR_MARKERS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "unable to open database file",
    "disk i/o error",
    "timed out",
)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a query is retried."""
    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("Max retries cannot be negative")
        if self.initial_delay_seconds < 0:
            raise ValueError("Initial delay cannot be negative")
        if self.backoff_factor < 1:
            raise ValueError("Backoff factor must be at least 1")


# Submission writes retry briefly; sweep reads wait longer.
WRITE_POLICY: Final[RetryPolicy] = RetryPolicy(max_retries=3, initial_delay_seconds=1.0)
READ_POLICY: Final[RetryPolicy] = RetryPolicy(max_retries=5, initial_delay_seconds=2.0)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Retryable:
    error: BaseException


@dataclass(frozen=True)
class Fatal:
    error: BaseException


Outcome = Union[Ok[T], Retryable, Fatal]


def is_transient_error(error: BaseException) -> bool:
    """Return True if ``error`` is a connection-level failure worth retrying."""
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if isinstance(error, sqlite3.OperationalError):
        message: str = str(error).lower()
        return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)
    return False


def attempt(operation: Callable[[], T]) -> Outcome[T]:
    """Run ``operation`` once and classify the result."""
    try:
        return Ok(operation())
    except Exception as e:
        if is_transient_error(e):
            return Retryable(e)
        return Fatal(e)


def query_with_retries(
    operation: Callable[[], T],
    policy: RetryPolicy = WRITE_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute a database operation, retrying transient failures.

    Args:
        operation: Callable performing one database round-trip.
        policy: Maximum retry count and initial backoff delay.
        sleep: Function used to wait between attempts.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        BaseException: The fatal error, or the last transient error once
            ``policy.max_retries`` retries have been used up.
    """
    delay: float = policy.initial_delay_seconds
    attempt_number: int = 1

    while True:
        outcome: Outcome[T] = attempt(operation)

        if isinstance(outcome, Ok):
            if attempt_number > 1:
                logger.info(f"Database operation succeeded on attempt {attempt_number}")
            return outcome.value

        if isinstance(outcome, Fatal):
            raise outcome.error

        if attempt_number > policy.max_retries:
            logger.error(f"Database operation failed after {attempt_number} attempts: {outcome.error}")
            raise outcome.error

        logger.warning(
            f"Database connection error on attempt {attempt_number}/{policy.max_retries + 1}, "
            f"retrying in {delay:.1f}s: {outcome.error}"
        )
        sleep(delay)
        delay *= policy.backoff_factor
        attempt_number += 1
