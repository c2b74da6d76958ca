from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable

from tenacity import AsyncRetrying
from tenacity import RetryCallState
from tenacity import stop_after_attempt

from report_assist.core.exceptions import GenerationError
from report_assist.core.exceptions import classify

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds


class RetryPolicy:
    """Bounded exponential backoff for provider calls.

    ``attempt`` numbers are 1-based and always refer to the attempt that just
    failed, so the wait before attempt 2 is ``base_delay`` and before attempt 3
    is ``2 * base_delay``. The first attempt is never delayed.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, base_delay: float = DEFAULT_BASE_DELAY):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    @staticmethod
    def should_retry(attempt: int, max_attempts: int, last_error: GenerationError) -> bool:
        return attempt < max_attempts and last_error.retryable

    @staticmethod
    def delay_for(attempt: int, base_delay: float) -> float:
        return base_delay * 2 ** (attempt - 1)

    # -----------------------------------------------------------------
    # tenacity hooks
    # -----------------------------------------------------------------

    def _should_retry_call(self, retry_state: RetryCallState) -> bool:
        """Determines if a retry should occur based on the exception in RetryCallState."""
        if not retry_state.outcome or not retry_state.outcome.failed:
            return False

        exc = retry_state.outcome.exception()
        # CancelledError and friends are re-raised by tenacity untouched
        if not isinstance(exc, Exception):
            return False

        error = classify(exc)
        return self.should_retry(retry_state.attempt_number, self.max_attempts, error)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number, self.base_delay)

    def _log_before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if not isinstance(exc, Exception):
            return
        error = classify(exc)
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Generation attempt %d/%d failed (%s: %s). Retrying in %.2fs",
            retry_state.attempt_number,
            self.max_attempts,
            error.kind.value,
            error.message,
            delay,
        )

    def retrying(self, sleep: Callable[[float], Awaitable[None]] | None = None) -> AsyncRetrying:
        """Build the tenacity controller for one logical call.

        The final failure is re-raised as-is (no ``RetryError`` wrapping).
        """
        return AsyncRetrying(
            sleep=sleep or asyncio.sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=self._should_retry_call,
            before_sleep=self._log_before_sleep,
            reraise=True,
        )

    def __repr__(self) -> str:
        return f"RetryPolicy(max_attempts={self.max_attempts}, base_delay={self.base_delay})"
