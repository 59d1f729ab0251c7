"""
Rate Limiter module for the domain watcher system.

Protects upstream RDAP servers with two guarantees:
- A global ceiling on operations in flight across all servers
- A minimum spacing between consecutive invocations against the same server
"""

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from .config import RateLimitConfig

T = TypeVar("T")


class RateLimiter:
    """
    Rate limiter keyed by server base URL.

    Usage:
        result = await rate_limiter.with_limit(server, lambda: client.get(url))

    The global slot is taken first, then the per-server lock; the per-server
    timestamp is recorded while still holding that lock, immediately before
    the operation is invoked, so invocations for one key are serialized in
    time even when many domains on the same server are checked concurrently.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None) -> None:
        """
        Initialize the rate limiter.

        Args:
            config: Concurrency ceiling and per-server minimum interval
        """
        self._config = config or RateLimitConfig()
        if self._config.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent)
        # Last invocation (monotonic seconds) per server key
        self._last_invocation: dict[str, float] = {}
        # Locks guarding the timestamp check-and-set per server key
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._active = 0

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    @property
    def min_interval_seconds(self) -> float:
        return self._config.min_interval_seconds

    @property
    def active_count(self) -> int:
        """Number of operations currently holding a concurrency slot."""
        return self._active

    def last_invocation(self, server_key: str) -> Optional[float]:
        """Monotonic timestamp of the last invocation for a server, if any."""
        return self._last_invocation.get(server_key)

    @asynccontextmanager
    async def limit(self, server_key: str) -> AsyncIterator[None]:
        """
        Scoped acquisition of a concurrency slot plus per-server spacing.

        The slot is released when the context exits, whether or not the
        body raised.
        """
        async with self._semaphore:
            self._active += 1
            try:
                async with self._locks[server_key]:
                    await self._wait_for_interval(server_key)
                    self._last_invocation[server_key] = time.monotonic()
                yield
            finally:
                self._active -= 1

    async def with_limit(
        self, server_key: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run ``operation`` once both rate limit conditions are satisfied.

        Args:
            server_key: Upstream server identity (RDAP base URL)
            operation: Zero-argument coroutine function to execute

        Returns:
            Whatever ``operation`` returns; its exceptions propagate
        """
        async with self.limit(server_key):
            return await operation()

    async def _wait_for_interval(self, server_key: str) -> None:
        last = self._last_invocation.get(server_key)
        if last is None:
            return

        # Loop: the event loop may wake a timer slightly before its deadline
        while True:
            remaining = self._config.min_interval_seconds - (time.monotonic() - last)
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)
