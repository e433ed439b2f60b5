"""
Tagged attempt results and the fixed-budget retry runner.

Each LLM attempt reports its outcome as a value: ``Ok`` on success or a
``Failure`` naming its kind. Every kind is retried identically; the kinds
exist so logs and the final error say exactly what went wrong.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, NamedTuple, TypeVar, Union

from loguru import logger

from burner.config import Settings
from burner.errors import MaxRetriesExceeded

T = TypeVar("T")


class FailureKind(str, Enum):
    """Why an attempt failed."""

    SCHEMA = "schema"  # Malformed or out-of-contract model output
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"  # Any other API or connection error


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful attempt."""

    value: T


@dataclass(frozen=True)
class Failure:
    """Failed attempt."""

    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


AttemptResult = Union[Ok[T], Failure]


class RetryPolicy(NamedTuple):
    """Attempt budget and the wait after each failed attempt."""

    max_attempts: int = 3
    backoff_seconds: tuple[float, ...] = (1.0, 2.0, 4.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_attempts=settings.max_attempts, backoff_seconds=settings.backoff_seconds)

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-indexed)."""
        index = min(attempt - 1, len(self.backoff_seconds) - 1)
        return self.backoff_seconds[index]


def run_with_retry(
    attempt: Callable[[int], AttemptResult[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "LLM call",
) -> T:
    """
    Call ``attempt`` until it returns ``Ok`` or the budget is spent.

    Args:
        attempt: Callable receiving the 1-indexed attempt number.
        policy: Attempt budget and backoff sequence.
        sleep: Wait function, injectable for tests.
        operation: Name used in log lines and the final error.

    Returns:
        The value of the first successful attempt.

    Raises:
        MaxRetriesExceeded: If every attempt failed.
    """
    last_failure: Failure | None = None

    for number in range(1, policy.max_attempts + 1):
        result = attempt(number)
        if isinstance(result, Ok):
            if number > 1:
                logger.info(f"[{operation}] Succeeded on attempt {number}/{policy.max_attempts}")
            return result.value

        last_failure = result
        logger.warning(
            f"[{operation}] Attempt {number}/{policy.max_attempts} failed ({result.kind.value}): "
            f"{result.message}"
        )

        # No wait after the last attempt
        if number < policy.max_attempts:
            delay = policy.delay_after(number)
            logger.info(f"[{operation}] Retrying in {delay:.1f}s...")
            sleep(delay)

    raise MaxRetriesExceeded(
        f"{operation} failed after {policy.max_attempts} attempts. "
        f"Last error: {last_failure.message if last_failure else 'unknown'}",
        attempts=policy.max_attempts,
        last_failure=last_failure,
    )
