"""Fixed-delay retry with a blocking countdown between attempts."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import structlog

from crx_sync.core.exceptions import CrxSyncError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget of a single operation.

    ``times`` counts retries after the first attempt, so an operation is
    tried at most ``times + 1`` times. ``delay`` is fixed, in seconds.
    """

    times: int = 0
    delay: float = 0.0

    def __post_init__(self):
        if self.times < 0:
            raise ValueError(f"Retry times must not be negative: {self.times}")
        if self.delay < 0:
            raise ValueError(f"Retry delay must not be negative: {self.delay}")

    @property
    def attempts(self) -> int:
        return self.times + 1


def countdown(header: str, seconds: float, sleep: Optional[Callable[[float], None]] = None) -> None:
    """Block for ``seconds`` while reporting the time left once per second."""
    sleep = sleep or time.sleep
    remaining = float(seconds)
    if remaining <= 0:
        return
    logger.info(header, remaining_sec=math.ceil(remaining))
    while remaining > 0:
        step = min(1.0, remaining)
        sleep(step)
        remaining -= step
        if remaining > 0:
            logger.info("Waiting before retry", remaining_sec=math.ceil(remaining))


def retry_with_delay(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str,
    on_wait: Optional[Callable[[str, float], None]] = None,
) -> T:
    """Run ``operation`` until it succeeds or the retry budget is spent.

    Only :class:`CrxSyncError` failures are retried. Each retry is a full
    re-run of the operation. After the last attempt its error is re-raised.

    Args:
        operation: Zero-argument callable performing one attempt
        policy: Retry budget
        label: Operation name used in progress messages (e.g. "upload")
        on_wait: Blocking wait, called with a header and the delay; defaults
            to :func:`countdown`
    """
    wait = on_wait or countdown

    for attempt in range(1, policy.times + 1):
        try:
            return operation()
        except CrxSyncError as e:
            logger.warning(
                f"Cannot {label} package, retrying",
                attempt=attempt,
                retries=policy.times,
                error=str(e),
            )
            wait(f"Retrying {label} ({attempt}/{policy.times}) after delay.", policy.delay)

    # Final attempt, its error propagates
    return operation()
