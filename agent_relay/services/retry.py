"""
Retry executor: bounded retries with exponential backoff.

The only place in the service that swallows an error and tries again; every
other layer lets failures propagate unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from agent_relay.core.config import BACKOFF_MULTIPLIER, RETRYABLE_STATUS_CODES
from agent_relay.core.errors import AgentServiceError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = BACKOFF_MULTIPLIER
    retryable_status_codes: frozenset[int] = field(default_factory=lambda: RETRYABLE_STATUS_CODES)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms <= 0:
            raise ValueError("initial_delay_ms must be positive")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


DEFAULT_RETRY_POLICY = RetryPolicy()


def calculate_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Delay in ms to wait after failed attempt `attempt` (1-indexed)."""
    delay_ms = policy.initial_delay_ms * policy.backoff_multiplier ** (attempt - 1)
    return min(delay_ms, policy.max_delay_ms)


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """
    Explicit retryable flag wins; then the status code is checked against the
    policy; classified errors without a status are final; anything else is
    assumed transient.
    """
    if isinstance(error, AgentServiceError):
        if error.retryable:
            return True
        if error.status_code is not None:
            return error.status_code in policy.retryable_status_codes
        return False
    return True


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    logger: logging.Logger | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """
    Await operation() up to policy.max_attempts times.

    Waits calculate_backoff(n) ms between attempt n and n+1. The last error is
    re-raised unchanged once attempts run out or an error is not retryable.
    """
    for attempt in range(1, policy.max_attempts + 1):
        if logger:
            logger.debug("[retry] attempt %d/%d", attempt, policy.max_attempts)
        try:
            return await operation()
        except Exception as e:
            retryable = is_retryable(e, policy)
            if attempt == policy.max_attempts or not retryable:
                if logger:
                    logger.error(
                        "[retry] failed after %d attempt(s) retryable=%s: %s", attempt, retryable, e
                    )
                raise
            delay_ms = calculate_backoff(attempt, policy)
            if logger:
                logger.warning("[retry] attempt %d failed, retrying in %dms: %s", attempt, delay_ms, e)
            await sleep(delay_ms / 1000)
    raise AssertionError("unreachable: max_attempts >= 1")
