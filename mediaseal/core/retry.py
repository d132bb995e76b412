"""Capped exponential backoff for storage and anchor calls.

Only ``TransientFault`` is retried. ``FatalFault``, ``NotFoundError`` and
every other exception propagate on the first occurrence.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from mediaseal.core.faults import TransientFault

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Retry budget for one external call.

    Delay before attempt ``n`` (1-based, n >= 2) is
    ``min(max_delay, base_delay * multiplier ** (n - 2))``.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=4, ge=1)
    base_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=8.0, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))

    def call(
        self,
        fn: Callable[[], T],
        *,
        describe: str = "call",
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Invoke *fn*, retrying ``TransientFault`` up to ``max_attempts``."""
        attempt = 1
        while True:
            try:
                return fn()
            except TransientFault as exc:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s", describe, attempt, exc
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s transient failure (attempt %d/%d), retrying in %.2fs: %s",
                    describe,
                    attempt,
                    self.max_attempts,
                    delay,
                    exc,
                )
                sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0.0, max_delay=0.0)
