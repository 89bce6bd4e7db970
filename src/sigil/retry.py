# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from sigil.config import get_settings
from sigil.errors import AssertionFailedError, ModelTimeoutError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("timeout", "timed out", "rate limit", "rate-limit", "429", "temporarily unavailable")


def is_transient_error(error: BaseException) -> bool:
    """Default retry predicate: rate limits, timeouts and failed assertions."""
    if isinstance(error, (RateLimitError, ModelTimeoutError, TimeoutError, AssertionFailedError)):
        return True
    text = str(error).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


@dataclass
class ExponentialBackoff:
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * self.multiplier ** max(attempt - 1, 0), self.max_delay)
        if self.jitter and delay > 0:
            delay += delay * 0.25 * random.random()
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls) -> ExponentialBackoff:
        settings = get_settings()
        return cls(
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )


class RetryPolicy:
    """
    Runs a callable, retrying transient failures with backoff.

    The last error is re-raised unmodified once attempts are exhausted or a
    non-retriable error is seen. Failed assertions draw on their own budget
    (``max_assertion_retries``) with a fixed delay.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        backoff: ExponentialBackoff | None = None,
        is_retriable: Callable[[BaseException], bool] | None = None,
        max_assertion_attempts: int | None = None,
        assertion_delay: float | None = None,
    ):
        settings = get_settings()
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.max_retries)
        self.backoff = backoff or ExponentialBackoff.from_settings()
        self.is_retriable = is_retriable or is_transient_error
        self.max_assertion_attempts = max(
            1, max_assertion_attempts if max_assertion_attempts is not None else settings.max_assertion_retries
        )
        self.assertion_delay = assertion_delay if assertion_delay is not None else settings.assertion_retry_delay

    def run(self, fn: Callable[[], T], description: str = "call") -> T:
        attempts = 0
        assertion_attempts = 0
        while True:
            try:
                return fn()
            except AssertionFailedError as e:
                assertion_attempts += 1
                if assertion_attempts >= self.max_assertion_attempts:
                    raise
                logger.warning(
                    f"Assertion failed for {description} (attempt {assertion_attempts}/{self.max_assertion_attempts}): {e}"
                )
                time.sleep(self.assertion_delay)
            except Exception as e:
                attempts += 1
                if attempts >= self.max_attempts or not self.is_retriable(e):
                    raise
                delay = self.backoff.delay(attempts)
                logger.warning(
                    f"Transient failure in {description} (attempt {attempts}/{self.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                time.sleep(delay)

    __call__ = run
