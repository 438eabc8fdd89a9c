from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, TypeVar

from ..logger import logger

T = TypeVar("T")

MAX_RETRY_DELAY_MS = 5000
JITTER_RATIO = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    max_duration_ms: int = 60000
    timeout_ms: int = 30000
    retry_attempts: int = 2
    retry_delay_ms: int = 2000

    def with_overrides(self, **overrides) -> "RetryPolicy":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExhausted(Exception):
    """All attempts failed, or the overall budget ran out."""

    def __init__(self, attempts: int, elapsed_ms: int, last_error: Optional[BaseException]):
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        self.last_error = last_error
        last = _describe(last_error) if last_error else "unknown"
        super().__init__(
            f"Operation failed after {attempts} attempts. "
            f"Last error: {last}. Total time: {elapsed_ms}ms"
        )


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def monotonic_ms() -> float:
    return time.monotonic() * 1000


async def sleep_ms(ms: float) -> None:
    await asyncio.sleep(ms / 1000)


def format_duration(duration_ms: float) -> str:
    if duration_ms < 1000:
        return f"{int(duration_ms)}ms"
    if duration_ms < 60000:
        return f"{duration_ms / 1000:.1f}s"
    return f"{duration_ms / 60000:.1f}m"


class RetryRunner:
    """
    Runs one fallible async operation under a RetryPolicy.

    The clock, sleeper and random source are injectable so tests can drive
    elapsed time without real waiting. A timed-out attempt is abandoned,
    not cancelled on the remote side.
    """

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = sleep_ms,
        rng: Callable[[], float] = random.random,
    ):
        self.policy = policy
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._started_at = 0.0

    def elapsed_ms(self) -> int:
        return int(self._clock() - self._started_at)

    def is_within_limits(self) -> bool:
        return self.elapsed_ms() < self.policy.max_duration_ms

    def should_retry(self, attempt: int) -> bool:
        if attempt >= self.policy.retry_attempts:
            return False
        return self.elapsed_ms() + self.policy.retry_delay_ms < self.policy.max_duration_ms

    def retry_delay_ms(self, attempt: int) -> float:
        base = self.policy.retry_delay_ms * (2 ** (attempt - 1))
        jitter = self._rng() * JITTER_RATIO * base
        return min(base + jitter, MAX_RETRY_DELAY_MS)

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        timeout_s = self.policy.timeout_ms / 1000
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_s)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Operation timed out after {self.policy.timeout_ms}ms") from None

    async def execute(self, operation: Callable[[], Awaitable[T]], on_retry: Optional[Callable[[int], None]] = None) -> T:
        self._started_at = self._clock()
        last_error: Optional[BaseException] = None
        attempt = 0

        for attempt in range(1, self.policy.retry_attempts + 1):
            try:
                if not self.is_within_limits():
                    raise TimeoutError(
                        f"Operation exceeded maximum duration of {self.policy.max_duration_ms}ms"
                    )
                result = await self._attempt(operation)
                logger.info(
                    f"Operation completed in {format_duration(self.elapsed_ms())} (attempt {attempt})",
                    extra={"attempt": attempt, "elapsed_ms": self.elapsed_ms()},
                )
                return result
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Operation failed on attempt {attempt}: {_describe(e)}",
                    extra={"attempt": attempt, "elapsed_ms": self.elapsed_ms()},
                )

                if not self.should_retry(attempt):
                    break

                if on_retry:
                    on_retry(attempt)

                delay = self.retry_delay_ms(attempt)
                logger.info(f"Retrying in {int(delay)}ms", extra={"attempt": attempt, "delay_ms": int(delay)})
                await self._sleep(delay)

        raise RetryExhausted(attempt, self.elapsed_ms(), last_error)
