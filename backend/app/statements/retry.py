"""Retry a blocking call with jittered exponential backoff."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    total: int  # retries, not counting the first attempt
    base: float  # base backoff seconds
    cap: float  # max backoff seconds
    jitter: bool = True


def retry_call(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    retry_on: Callable[[Exception], bool],
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds or the retry budget is spent.

    Raises the last exception once ``policy.total`` retries have failed, or
    immediately when ``retry_on`` rejects it.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.total or not retry_on(exc):
                raise
            backoff = min(policy.cap, policy.base * (2**attempt))
            if policy.jitter:
                backoff = random.uniform(0, backoff)  # noqa: S311
            logger.warning("attempt %d failed (%s); retrying in %.2fs", attempt + 1, exc, backoff)
        sleep(backoff)
        attempt += 1
