"""Retry and circuit-breaker policy for outbound provider calls.

Every attempt goes through the breaker; the retry loop wraps the breaker, so
an open circuit fails the whole call at once instead of being retried.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.errors import CurrencyError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransientUpstreamError(Exception):
    """Retryable failure: transport error, timeout, 408, 429 or 5xx."""


class CircuitOpenError(UpstreamUnavailableError):
    def __init__(self, retry_after: float):
        super().__init__(f"Circuit open; upstream calls suspended for {retry_after:.1f}s")
        self.retry_after = retry_after


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            logger.info("Circuit half-open: allowing a trial upstream call")
            self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    def before_call(self) -> bool:
        """Raise CircuitOpenError if a call may not go out right now.

        Returns True when the caller holds the half-open trial slot.
        """
        state = self.state
        now = self._clock()
        if state == CircuitState.OPEN:
            raise CircuitOpenError(self.reset_timeout - (now - self._opened_at))
        if state == CircuitState.HALF_OPEN:
            # One trial at a time; a trial that never reported back expires.
            if self._trial_at is not None and now - self._trial_at < self.reset_timeout:
                raise CircuitOpenError(self.reset_timeout - (now - self._trial_at))
            self._trial_at = now
            return True
        return False

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit closed after successful trial call")
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_at = None

    def record_failure(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self._trip()
            return
        self._failures += 1
        if self._failures >= self.failure_threshold:
            self._trip()

    def release_trial(self) -> None:
        """Free the half-open trial slot without recording an outcome."""
        self._trial_at = None

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_at = None

    def _trip(self) -> None:
        logger.warning(
            f"Circuit opened after {self._failures} consecutive failures; "
            f"holding for {self.reset_timeout:.0f}s"
        )
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_at = None


class ResiliencePolicy:
    """Retries transient failures with exponential backoff behind a breaker.

    The delay before retry ``n`` (1-based) is ``backoff_seconds * 2 ** (n - 1)``,
    so the default of 2.0 waits 2, 4 and 8 seconds.
    """

    def __init__(
        self,
        breaker: Optional[CircuitBreaker] = None,
        retry_attempts: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.breaker = breaker or CircuitBreaker()
        self.retry_attempts = retry_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def call(self, operation: Callable[[], Awaitable[T]], description: str = "upstream call") -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, exp_base=2),
            retry=retry_if_exception_type(TransientUpstreamError),
            before_sleep=self._log_retry(description),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._guarded(operation)
        except TransientUpstreamError as exc:
            raise UpstreamUnavailableError(
                f"{description} failed after {self.retry_attempts + 1} attempts: {exc}"
            ) from exc

    async def _guarded(self, operation: Callable[[], Awaitable[T]]) -> T:
        trial = self.breaker.before_call()
        try:
            result = await operation()
        except TransientUpstreamError:
            self.breaker.record_failure()
            raise
        except CurrencyError:
            # The provider answered; only transient trouble counts against it.
            self.breaker.record_success()
            raise
        except asyncio.CancelledError:
            if trial:
                self.breaker.release_trial()
            raise
        self.breaker.record_success()
        return result

    @staticmethod
    def _log_retry(description: str) -> Callable[[RetryCallState], None]:
        def log(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"{description} attempt {retry_state.attempt_number} failed ({exc}); "
                f"retrying in {delay:.1f}s"
            )
        return log
