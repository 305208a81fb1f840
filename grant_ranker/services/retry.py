"""
services/retry.py
──────────────────────────────────────────────────────────────────────────────
Retry-with-back-off as an explicit, testable value.

    policy = RetryPolicy(max_attempts=3, base_delay=2.0, multiplier=1.5)
    text = policy.call(lambda: llm.generate_json(system, user))

Only errors accepted by `is_retryable` are retried; anything else is
re-raised immediately.  When attempts run out the last retryable error is
re-raised unchanged, so callers decide how to surface it.

`sleep` is injectable so tests never wait.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

from grant_ranker.config.settings import Settings
from grant_ranker.domain.exceptions import TransientLLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_llm_error(exc: BaseException) -> bool:
    """Default predicate: retry overload / rate-limit signals only."""
    return isinstance(exc, TransientLLMError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 1.5
    is_retryable: Callable[[BaseException], bool] = is_transient_llm_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.llm_retries,
            base_delay=settings.llm_retry_base_delay,
            multiplier=settings.llm_retry_multiplier,
        )

    def delays(self) -> Iterator[float]:
        """Sleep durations between attempts (max_attempts - 1 values)."""
        delay = self.base_delay
        for _ in range(self.max_attempts - 1):
            yield delay
            delay *= self.multiplier

    def call(
        self,
        fn: Callable[[], T],
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Run fn, retrying retryable failures according to the schedule."""
        delays = self.delays()
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as exc:
                if not self.is_retryable(exc):
                    raise
                delay = next(delays, None)
                if delay is None:
                    logger.error("Giving up after %d attempts: %s", attempt, exc)
                    raise
                logger.warning(
                    "Transient failure (attempt %d/%d) — back-off %.1fs: %s",
                    attempt, self.max_attempts, delay, exc,
                )
                sleep(delay)
                attempt += 1
