"""Classification-based retry with exponential backoff for external calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.errors import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[BaseException, int], None]


class RetryPolicy:
    """Retry one fallible async call on transient network failures.

    The delay before retry *k* is ``base_delay * 2 ** (k - 1)`` seconds.  A
    non-retryable failure, or the last failure once ``max_attempts`` is
    reached, is re-raised unchanged so callers can still tell a network
    outage from a logic error.

    ``on_retry(exc, attempt)`` fires before each retry for logging; anything
    it raises is logged and ignored.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        is_retryable: Callable[[BaseException], bool] = is_retryable_error,
        on_retry: RetryObserver | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.is_retryable = is_retryable
        self.on_retry = on_retry
        self._sleep = sleep

    def _notify(self, description: str) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0.0
            logger.warning(
                "%s attempt %d failed. Retrying in %.1fs: %s",
                description,
                state.attempt_number,
                delay,
                exc,
            )
            if self.on_retry is None or exc is None:
                return
            try:
                self.on_retry(exc, state.attempt_number)
            except Exception:
                logger.exception("on_retry observer raised; ignoring")

        return before_sleep

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        description: str = "Operation",
        **kwargs: Any,
    ) -> T:
        """Await ``fn(*args, **kwargs)`` under this policy."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=self._notify(description),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)
