from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and exponential backoff for an awaitable operation."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * self.multiplier ** (attempt - 1)

    def retrying(self, *, label: str = "operation") -> AsyncRetrying:
        attempts = max(1, self.max_attempts)

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                label,
                retry_state.attempt_number,
                attempts,
                error,
                delay,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=self.base_delay_seconds,
                exp_base=self.multiplier,
                min=self.base_delay_seconds,
            ),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
) -> T:
    """Await ``operation`` until it succeeds or the attempt budget is spent.

    Only exceptions matching ``policy.retry_on`` are retried; anything else,
    and the last retryable failure, propagates unchanged.
    """

    retrying = policy.retrying(label=label)
    try:
        return await retrying(operation)
    except policy.retry_on as exc:
        logger.warning(
            "%s failed after %d attempt(s): %s",
            label,
            retrying.statistics.get("attempt_number", 1),
            exc,
        )
        raise
