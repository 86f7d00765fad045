"""Concurrency limiting for async pipeline stages."""
import math

import anyio


class CapacityLimiter:
    """Async capacity limiter backed by ``anyio.CapacityLimiter``.

    ``total_tokens=None`` means unlimited, which is how batches run unless a
    cap is configured.
    """

    def __init__(self, total_tokens: int | None = None):
        """Initialize capacity limiter with total capacity."""
        if total_tokens is not None and total_tokens < 1:
            raise ValueError("total_tokens must be a positive integer or None")
        self.total_tokens = total_tokens
        self._limiter = anyio.CapacityLimiter(math.inf if total_tokens is None else total_tokens)

    async def __aenter__(self):
        """Async context manager entry."""
        await self._limiter.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self._limiter.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def unlimited(self) -> bool:
        return self.total_tokens is None

    @property
    def available_tokens(self) -> float:
        """Get available tokens/capacity."""
        return self._limiter.available_tokens

    @property
    def borrowed_tokens(self) -> int:
        """Get borrowed tokens/capacity."""
        return self._limiter.borrowed_tokens


def create_pipeline_limiter(max_concurrency: int | None = None) -> CapacityLimiter:
    """Create the limiter shared by all file pipelines of a coordinator."""
    return CapacityLimiter(max_concurrency)
