"""Circuit breaker over quota and rate-limit failures of the summarizer."""

import time
import logging
from enum import Enum
from typing import Callable, Optional

from llm.base_client import QUOTA_ERROR_KINDS, LLMErrorKind

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    """Whether summarization calls are currently permitted."""
    CLOSED = "closed"
    OPEN = "open"


class QuotaBreaker:
    """
    Stops summarization after repeated quota failures.

    After `threshold` consecutive quota or rate-limit failures the breaker
    opens and `is_allowed()` returns False until `cooldown_seconds` have
    passed since the last such failure. Auth and other failures never count.

    One instance is shared by every request in the process. Updates are not
    locked; an extra attempt before tripping is acceptable.
    """

    def __init__(
        self,
        threshold: int = 3,
        cooldown_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize breaker.

        Args:
            threshold: Consecutive quota failures that open the breaker
            cooldown_seconds: Time after the last failure before closing again
            clock: Monotonic time source in seconds
        """
        self.threshold = threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

        self.consecutive_quota_errors = 0
        self.last_quota_error_time: Optional[float] = None
        self.tripped = False

    @property
    def state(self) -> BreakerState:
        return BreakerState.OPEN if self.tripped else BreakerState.CLOSED

    def record_failure(self, kind: LLMErrorKind):
        """Record a failed summarizer call."""
        if kind not in QUOTA_ERROR_KINDS:
            return

        self.consecutive_quota_errors += 1
        self.last_quota_error_time = self._clock()

        if self.consecutive_quota_errors >= self.threshold and not self.tripped:
            self.tripped = True
            logger.warning(
                f"Summarization disabled for {self.cooldown_seconds:.0f}s after "
                f"{self.consecutive_quota_errors} consecutive quota errors"
            )

    def record_success(self):
        """A successful call breaks the run of consecutive failures."""
        if not self.tripped:
            self.consecutive_quota_errors = 0

    def is_allowed(self) -> bool:
        """Whether a summarizer call may be attempted now."""
        if not self.tripped:
            return True

        elapsed = self._clock() - (self.last_quota_error_time or 0.0)
        if elapsed >= self.cooldown_seconds:
            self.tripped = False
            self.consecutive_quota_errors = 0
            logger.info(f"Summarization re-enabled after {elapsed:.0f}s cooldown")
            return True

        return False

    def get_status(self) -> dict:
        """Current breaker state for diagnostics."""
        remaining = 0.0
        if self.tripped and self.last_quota_error_time is not None:
            elapsed = self._clock() - self.last_quota_error_time
            remaining = max(0.0, self.cooldown_seconds - elapsed)

        return {
            "state": self.state.value,
            "consecutive_quota_errors": self.consecutive_quota_errors,
            "threshold": self.threshold,
            "cooldown_seconds": self.cooldown_seconds,
            "cooldown_remaining": remaining,
        }
