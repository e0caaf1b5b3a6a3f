"""Tests for async_utils.py: RateLimiter, CircuitBreaker, gather_with_errors, gather_bounded."""

import asyncio

import pytest

from deep_research.core.async_utils import (
    CircuitBreaker,
    RateLimiter,
    gather_bounded,
    gather_with_errors,
)
from deep_research.core.exceptions import RateLimitError


# ============================================================
# RateLimiter
# ============================================================

class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_acquire_fast(self):
        rl = RateLimiter(rate=10.0, per=1.0)
        await rl.acquire()  # Should not block

    @pytest.mark.asyncio
    async def test_context_manager(self):
        rl = RateLimiter(rate=10.0)
        async with rl:
            pass

    @pytest.mark.asyncio
    async def test_waits_when_drained(self):
        rl = RateLimiter(rate=20.0, per=1.0)
        for _ in range(20):
            await rl.acquire()

        loop = asyncio.get_running_loop()
        started = loop.time()
        await rl.acquire()

        assert loop.time() - started >= 0.02


# ============================================================
# CircuitBreaker
# ============================================================

class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_closed_state_allows_calls(self):
        cb = CircuitBreaker(failure_threshold=3)
        async with cb:
            pass
        assert cb.state == "closed"

    @pytest.mark.asyncio
    async def test_opens_after_threshold_failures(self):
        cb = CircuitBreaker(failure_threshold=2, recovery_timeout=60.0, name="openalex")
        for _ in range(2):
            with pytest.raises(ValueError):
                async with cb:
                    raise ValueError("fail")

        assert cb.state == "open"
        assert cb.is_open

        with pytest.raises(RateLimitError, match="Circuit breaker is open") as exc_info:
            async with cb:
                pass
        assert exc_info.value.source == "openalex"

    @pytest.mark.asyncio
    async def test_half_open_recovery(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0.01)
        with pytest.raises(ValueError):
            async with cb:
                raise ValueError("fail")
        assert cb.state == "open"

        await asyncio.sleep(0.02)
        async with cb:
            pass

        assert cb.state == "closed"

    @pytest.mark.asyncio
    async def test_cancellation_is_not_a_failure(self):
        cb = CircuitBreaker(failure_threshold=1)
        with pytest.raises(asyncio.CancelledError):
            async with cb:
                raise asyncio.CancelledError()

        assert cb.state == "closed"


# ============================================================
# gather_with_errors / gather_bounded
# ============================================================

class TestGatherWithErrors:
    @pytest.mark.asyncio
    async def test_keeps_order(self):
        async def delayed(value, delay):
            await asyncio.sleep(delay)
            return value

        results = await gather_with_errors(delayed("slow", 0.02), delayed("fast", 0))

        assert results == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_with_exceptions_returned(self):
        async def ok():
            return 1

        async def fail():
            raise ValueError("boom")

        results = await gather_with_errors(ok(), fail(), ok(), return_exceptions=True)

        assert results[0] == 1
        assert isinstance(results[1], ValueError)
        assert results[2] == 1

    @pytest.mark.asyncio
    async def test_without_return_exceptions_raises(self):
        async def fail():
            raise ValueError("boom")

        with pytest.raises(ExceptionGroup):
            await gather_with_errors(fail())

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await gather_with_errors() == []


class TestGatherBounded:
    @pytest.mark.asyncio
    async def test_limits_concurrency(self):
        running = 0
        peak = 0

        async def work(i):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return i

        results = await gather_bounded([work(i) for i in range(8)], limit=3)

        assert results == list(range(8))
        assert peak == 3

    @pytest.mark.asyncio
    async def test_errors_are_returned(self):
        async def fail():
            raise RuntimeError("x")

        results = await gather_bounded([fail()], limit=0)

        assert isinstance(results[0], RuntimeError)
