"""Reusable exponential-backoff retry policy."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..upstream.errors import RetryExhausted

T = TypeVar("T")

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry an async operation with exponential backoff.

    The delay before retry ``n`` (1-based) is ``base_delay * backoff_factor ** (n - 1)``
    plus ``uniform(0, jitter)``.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay before the first retry, in seconds.
        backoff_factor: Multiplier applied per retry.
        jitter: Upper bound of the random delay added to each wait.
        sleep: Awaitable sleep; replaced in tests.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    jitter: float = 0.0
    sleep: Sleep = field(default=asyncio.sleep, compare=False, repr=False)

    @classmethod
    def from_retries(cls, max_retries: int, **kwargs) -> "RetryPolicy":
        return cls(max_attempts=max_retries + 1, **kwargs)

    def delay_for(self, retry: int) -> float:
        delay = self.base_delay * (self.backoff_factor ** (retry - 1))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ) -> Tuple[T, int]:
        """
        Call ``fn`` until it succeeds or attempts run out.

        Args:
            fn: Zero-argument coroutine function.
            retry_on: Exception types that trigger a retry; others propagate at once.

        Returns:
            The result and the number of attempts it took.

        Raises:
            RetryExhausted: When every attempt raised a retryable error.
        """
        attempts = 0
        while True:
            attempts += 1
            try:
                return await fn(), attempts
            except retry_on as e:
                if attempts >= self.max_attempts:
                    raise RetryExhausted(attempts, e) from e
                delay = self.delay_for(attempts)
                logger.warning(
                    "RetryPolicy: attempt %s/%s failed (%s); retrying in %.2fs",
                    attempts,
                    self.max_attempts,
                    e,
                    delay,
                )
                await self.sleep(delay)
