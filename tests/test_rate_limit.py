"""Tests for the pipeline capacity limiter."""
import asyncio

import pytest

from invoice_renamer.core.rate_limit import CapacityLimiter, create_pipeline_limiter


class TestCapacityLimiter:
    """Test CapacityLimiter functionality."""

    def test_capacity_limiter_init(self):
        limiter = CapacityLimiter(5)
        assert limiter.total_tokens == 5
        assert not limiter.unlimited

    def test_unlimited(self):
        limiter = create_pipeline_limiter(None)
        assert limiter.unlimited

    @pytest.mark.parametrize("tokens", [0, -1])
    def test_invalid_capacity(self, tokens):
        with pytest.raises(ValueError):
            CapacityLimiter(tokens)

    @pytest.mark.asyncio
    async def test_capacity_limiter_context_manager(self):
        limiter = CapacityLimiter(2)
        initial_available = limiter.available_tokens

        async with limiter:
            assert limiter.available_tokens == initial_available - 1
            assert limiter.borrowed_tokens == 1

        assert limiter.available_tokens == initial_available
        assert limiter.borrowed_tokens == 0

    @pytest.mark.asyncio
    async def test_capacity_limiter_concurrent_access(self):
        limiter = CapacityLimiter(2)
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            async with limiter:
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.02)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))
        assert peak == 2

    @pytest.mark.asyncio
    async def test_unlimited_runs_everything_at_once(self):
        limiter = CapacityLimiter()
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            async with limiter:
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.02)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(10)))
        assert peak == 10
