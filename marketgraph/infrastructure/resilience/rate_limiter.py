"""Implementation of the client-side rate limiter.

Controls the frequency of outgoing requests to stay within the API's rate
limits. Uses one token bucket per channel: reads ("query") and writes
("command") are throttled independently.

Buckets refill additively: every `bucket_increase_interval` milliseconds the
bucket gains `bucket_increase_amount` tokens, capped at `bucket_maximum`.
Acquiring a token never fails; callers wait until a refill makes one
available.
"""

import asyncio
import logging
from typing import Optional

from marketgraph.domain.models.common import RateLimiterConfig
from marketgraph.domain.models.envelope import Channel

logger = logging.getLogger(__name__)

# Presets mirroring the limits enforced by the API in each environment.
DEV_QUERY_LIMITER_CONFIG: RateLimiterConfig = {
    "bucket_initial": 10,
    "bucket_increase_interval": 1000,
    "bucket_increase_amount": 1,
    "bucket_maximum": 10,
}
DEV_COMMAND_LIMITER_CONFIG: RateLimiterConfig = {
    "bucket_initial": 10,
    "bucket_increase_interval": 2000,
    "bucket_increase_amount": 1,
    "bucket_maximum": 10,
}
PROD_QUERY_LIMITER_CONFIG: RateLimiterConfig = {
    "bucket_initial": 100,
    "bucket_increase_interval": 1000,
    "bucket_increase_amount": 10,
    "bucket_maximum": 100,
}
PROD_COMMAND_LIMITER_CONFIG: RateLimiterConfig = {
    "bucket_initial": 30,
    "bucket_increase_interval": 1000,
    "bucket_increase_amount": 3,
    "bucket_maximum": 30,
}

LIMITER_PROFILES = {
    "dev": (DEV_QUERY_LIMITER_CONFIG, DEV_COMMAND_LIMITER_CONFIG),
    "prod": (PROD_QUERY_LIMITER_CONFIG, PROD_COMMAND_LIMITER_CONFIG),
}


def validate_limiter_config(config: RateLimiterConfig) -> None:
    """Raises ValueError for an unusable bucket configuration."""
    if config["bucket_maximum"] < 1:
        raise ValueError("bucket_maximum must be at least 1.")
    if config["bucket_increase_interval"] <= 0 or config["bucket_increase_amount"] <= 0:
        raise ValueError("bucket_increase_interval and bucket_increase_amount must be positive.")
    if not 0 <= config["bucket_initial"] <= config["bucket_maximum"]:
        raise ValueError("bucket_initial must be between 0 and bucket_maximum.")


class TokenBucket:
    """Token bucket shared by every call on one channel."""

    def __init__(self, config: RateLimiterConfig, name: str = "bucket"):
        """Initializes the bucket.

        Args:
            config: Bucket configuration (interval in milliseconds).
            name: Label used in log messages.
        """
        validate_limiter_config(config)
        self.name = name
        self.capacity = config["bucket_maximum"]
        self.refill_interval = config["bucket_increase_interval"] / 1000.0
        self.refill_amount = config["bucket_increase_amount"]
        self._current = config["bucket_initial"]
        self._condition = asyncio.Condition()
        self._refill_task: Optional[asyncio.Task] = None
        logger.info(
            f"TokenBucket '{name}' initialized: initial={self._current}, max={self.capacity}, "
            f"+{self.refill_amount} every {self.refill_interval:.3f}s"
        )

    @property
    def current(self) -> int:
        """Tokens currently available."""
        return self._current

    def _ensure_refill_task(self) -> None:
        # Single background tick for all callers; started on first use so
        # the bucket can be built outside an event loop.
        if self._refill_task is None or self._refill_task.done():
            self._refill_task = asyncio.get_running_loop().create_task(self._refill_loop())

    async def _refill_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refill_interval)
            await self.refill()

    async def refill(self, ticks: int = 1) -> None:
        """Applies `ticks` refill intervals and wakes waiting callers."""
        async with self._condition:
            before = self._current
            self._current = min(self.capacity, self._current + ticks * self.refill_amount)
            if self._current != before:
                logger.debug(f"Bucket '{self.name}' refilled: {before} -> {self._current}")
                self._condition.notify_all()

    async def acquire(self) -> bool:
        """Takes one token, waiting for a refill when the bucket is empty.

        Returns:
            True if the caller had to wait for a token.
        """
        self._ensure_refill_task()
        waited = False
        async with self._condition:
            while self._current < 1:
                if not waited:
                    logger.debug(f"Bucket '{self.name}' empty. Waiting for refill.")
                waited = True
                await self._condition.wait()
            self._current -= 1
        return waited

    async def force_empty(self) -> None:
        """Drops all tokens (after the server answered 429). Refill continues on schedule."""
        async with self._condition:
            logger.warning(f"Bucket '{self.name}' forced to zero (was {self._current}).")
            self._current = 0

    async def close(self) -> None:
        """Stops the background refill task."""
        if self._refill_task is not None and not self._refill_task.done():
            self._refill_task.cancel()
            try:
                await self._refill_task
            except asyncio.CancelledError:
                pass
        self._refill_task = None


class RateLimiter:
    """Pair of independent token buckets: one for queries, one for commands."""

    def __init__(
        self,
        query_config: RateLimiterConfig = DEV_QUERY_LIMITER_CONFIG,
        command_config: RateLimiterConfig = DEV_COMMAND_LIMITER_CONFIG,
    ):
        self.query_bucket = TokenBucket(query_config, name=Channel.QUERY.value)
        self.command_bucket = TokenBucket(command_config, name=Channel.COMMAND.value)

    @classmethod
    def for_profile(cls, profile: str) -> "RateLimiter":
        """Builds a limiter from a named preset ('dev' or 'prod')."""
        try:
            query_config, command_config = LIMITER_PROFILES[profile]
        except KeyError:
            raise ValueError(f"Unknown rate limiter profile '{profile}'. Use one of {sorted(LIMITER_PROFILES)}.")
        return cls(query_config, command_config)

    def bucket_for(self, channel: Channel) -> TokenBucket:
        return self.query_bucket if channel == Channel.QUERY else self.command_bucket

    async def wait_for_permission(self, channel: Channel) -> bool:
        """Waits until a request on `channel` is permitted. Returns True if it had to wait."""
        return await self.bucket_for(channel).acquire()

    async def close(self) -> None:
        await self.query_bucket.close()
        await self.command_bucket.close()
