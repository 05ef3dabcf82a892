"""
Retry policy shared by every remote call site.

Wraps tenacity so call sites do not each hand-roll their own
attempt/backoff loop.  A policy with max_attempts=1 calls once and
re-raises, which is what the query path and per-chunk embedding use.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_wait_s: float = 2.0
    max_wait_s: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1)

    def _kwargs(self) -> dict:
        return {
            "stop": stop_after_attempt(max(1, self.max_attempts)),
            "wait": wait_exponential(multiplier=1, min=self.initial_wait_s, max=self.max_wait_s),
            "retry": retry_if_exception_type(self.retry_on),
            "reraise": True,
        }

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run fn under this policy; the last exception is re-raised as-is."""
        return Retrying(**self._kwargs())(fn, *args, **kwargs)

    async def acall(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        return await AsyncRetrying(**self._kwargs())(fn, *args, **kwargs)
