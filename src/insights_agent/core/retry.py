"""Bounded retry with an injectable backoff and sleep."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return float(attempt * 2)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = linear_backoff
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)


class RetryExhaustedError(Exception):
    """Raised when every attempt allowed by a ``RetryPolicy`` has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def attempt_with_retry(
    action: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    describe: str = "operation",
) -> T:
    """Run ``action`` until it succeeds or ``policy.max_attempts`` is used up.

    Errors outside ``retry_on`` propagate immediately. The policy's sleep runs
    between attempts only, never after the final one.
    """
    attempts = max(1, policy.max_attempts)
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return action()
        except retry_on as exc:
            last_error = exc
            logger.warning("%s attempt %d/%d failed: %s", describe, attempt, attempts, exc)
            if attempt < attempts:
                policy.sleep(policy.backoff(attempt))

    assert last_error is not None
    raise RetryExhaustedError(attempts, last_error) from last_error
