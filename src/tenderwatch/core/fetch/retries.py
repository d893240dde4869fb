"""
Retry utilities with tenacity.

Builds the retry loop used for procurement API calls: the caller
supplies which errors are retryable and how long to wait after each,
tenacity drives the attempts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)


DEFAULT_MAX_ATTEMPTS = 5

DelayFunction = Callable[[int, BaseException], float]
SleepFunction = Callable[[float], Awaitable[None]]


class wait_for_error(wait_base):
    """Wait strategy that delegates to a delay function of (attempt, error)."""

    def __init__(self, delay: DelayFunction):
        self.delay = delay

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return 0.0
        error = outcome.exception()
        if error is None:
            return 0.0
        return self.delay(retry_state.attempt_number, error)


def build_retrying(
    delay: DelayFunction,
    retry_on: Callable[[BaseException], bool],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: SleepFunction = asyncio.sleep,
    log: logging.Logger | None = None,
) -> AsyncRetrying:
    """Create an AsyncRetrying loop.

    Usage:
        async for attempt in build_retrying(compute_delay, is_retryable):
            with attempt:
                result = await call()

    Args:
        delay: Seconds to wait given the failed attempt number and its error
        retry_on: Predicate deciding whether an error is retried
        max_attempts: Total attempts including the first
        sleep: Awaitable sleep (injected by tests)
        log: Logger for the before-sleep warning

    Returns:
        Configured AsyncRetrying; the final error is re-raised unchanged
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_for_error(delay),
        retry=retry_if_exception(retry_on),
        before_sleep=before_sleep_log(log or logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
