"""Retry and circuit breaker tests."""

import asyncio

import pytest

from app.errors import InvalidCurrencyError, UpstreamUnavailableError
from app.services.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    ResiliencePolicy,
    TransientUpstreamError,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class Recorder:
    def __init__(self):
        self.delays: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)


def failing(counter: list, exc: Exception):
    async def op():
        counter.append(1)
        raise exc
    return op


class TestCircuitBreaker:
    def test_starts_closed(self):
        assert CircuitBreaker().state == CircuitState.CLOSED

    def test_opens_after_threshold(self):
        br = CircuitBreaker(failure_threshold=5)
        for _ in range(4):
            br.record_failure()
        assert br.state == CircuitState.CLOSED
        br.record_failure()
        assert br.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            br.before_call()

    def test_success_resets_count(self):
        br = CircuitBreaker(failure_threshold=3)
        br.record_failure()
        br.record_failure()
        br.record_success()
        br.record_failure()
        br.record_failure()
        assert br.state == CircuitState.CLOSED

    def test_half_open_after_cooldown(self):
        clock = FakeClock()
        br = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=clock)
        br.record_failure()
        clock.now = 29.9
        assert br.state == CircuitState.OPEN
        clock.now = 30
        assert br.state == CircuitState.HALF_OPEN
        assert br.before_call() is True  # trial allowed
        with pytest.raises(CircuitOpenError):
            br.before_call()  # only one trial at a time

    def test_trial_success_closes(self):
        clock = FakeClock()
        br = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=clock)
        br.record_failure()
        clock.now = 31
        br.before_call()
        br.record_success()
        assert br.state == CircuitState.CLOSED
        br.before_call()

    def test_trial_failure_reopens(self):
        clock = FakeClock()
        br = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=clock)
        br.record_failure()
        clock.now = 31
        br.before_call()
        br.record_failure()
        assert br.state == CircuitState.OPEN
        clock.now = 60
        assert br.state == CircuitState.OPEN
        clock.now = 61
        assert br.state == CircuitState.HALF_OPEN

    def test_closed_call_holds_no_trial(self):
        assert CircuitBreaker().before_call() is False

    def test_released_trial_can_be_retaken(self):
        clock = FakeClock()
        br = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=clock)
        br.record_failure()
        clock.now = 31
        br.before_call()
        br.release_trial()
        assert br.state == CircuitState.HALF_OPEN
        assert br.before_call() is True

    def test_open_error_is_upstream_unavailable(self):
        assert issubclass(CircuitOpenError, UpstreamUnavailableError)


class TestResiliencePolicy:
    @pytest.mark.asyncio
    async def test_success_passes_through(self):
        policy = ResiliencePolicy(sleep=Recorder().sleep)

        async def op():
            return 42

        assert await policy.call(op) == 42

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        rec = Recorder()
        policy = ResiliencePolicy(sleep=rec.sleep)
        attempts = []

        async def op():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientUpstreamError("503")
            return "ok"

        assert await policy.call(op) == "ok"
        assert len(attempts) == 3
        assert rec.delays == [2, 4]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_upstream_unavailable(self):
        rec = Recorder()
        policy = ResiliencePolicy(sleep=rec.sleep)
        attempts = []
        with pytest.raises(UpstreamUnavailableError):
            await policy.call(failing(attempts, TransientUpstreamError("boom")))
        assert len(attempts) == 4  # first try + 3 retries
        assert rec.delays == [2, 4, 8]

    @pytest.mark.asyncio
    async def test_invalid_currency_not_retried(self):
        policy = ResiliencePolicy(sleep=Recorder().sleep)
        attempts = []
        with pytest.raises(InvalidCurrencyError):
            await policy.call(failing(attempts, InvalidCurrencyError("XXX")))
        assert len(attempts) == 1
        assert policy.breaker.failures == 0

    @pytest.mark.asyncio
    async def test_breaker_fails_fast_without_calling(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=5, reset_timeout=30, clock=clock)
        policy = ResiliencePolicy(breaker=breaker, sleep=Recorder().sleep)
        attempts = []
        op = failing(attempts, TransientUpstreamError("down"))

        with pytest.raises(UpstreamUnavailableError):
            await policy.call(op)
        assert len(attempts) == 4
        # Fifth consecutive failure trips the breaker mid-way through the retries.
        with pytest.raises(CircuitOpenError):
            await policy.call(op)
        assert len(attempts) == 5
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await policy.call(op)
        assert len(attempts) == 5  # no network attempt while open

        clock.now = 30
        ok_calls = []

        async def healthy():
            ok_calls.append(1)
            return "back"

        assert await policy.call(healthy) == "back"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_frees_slot(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=clock)
        breaker.record_failure()
        clock.now = 31
        policy = ResiliencePolicy(breaker=breaker, sleep=Recorder().sleep)
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.ensure_future(policy.call(slow))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert breaker.state == CircuitState.HALF_OPEN

        async def healthy():
            return "ok"

        assert await policy.call(healthy) == "ok"
        assert breaker.state == CircuitState.CLOSED
