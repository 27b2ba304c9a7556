"""Submission gate consulted before a listing is accepted."""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
import redis.asyncio as redis
from redis.exceptions import RedisError


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    remaining: int
    reset_at: datetime


class SubmissionGate(ABC):
    @abstractmethod
    async def check_and_consume(self, identifier: str) -> GateDecision:
        pass

    async def close(self) -> None:
        pass


class AllowAllGate(SubmissionGate):
    """Used when no Redis is configured."""

    def __init__(self, limit: int):
        self.limit = limit

    async def check_and_consume(self, identifier: str) -> GateDecision:
        return GateDecision(allowed=True, remaining=self.limit, reset_at=datetime.now(timezone.utc))


class RedisSubmissionGate(SubmissionGate):
    """Fixed-window counter per identifier (INCR with expiry)."""

    def __init__(self, redis_url: str = None, *, limit: int, window_seconds: int,
                 prefix: str = "rl:listing", client=None):
        self.r = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def check_and_consume(self, identifier: str) -> GateDecision:
        now = int(time.time())
        window = now // self.window_seconds
        rkey = f"{self.prefix}:{identifier}:{window}"
        reset_at = datetime.fromtimestamp((window + 1) * self.window_seconds, tz=timezone.utc)

        try:
            val = await self.r.incr(rkey)
            if val == 1:
                await self.r.expire(rkey, self.window_seconds)
        except RedisError as e:
            # Fail open: an unavailable limiter must not block submissions
            logger.warning(f"Submission gate unavailable, allowing {identifier}: {e}")
            return GateDecision(allowed=True, remaining=0, reset_at=reset_at)

        remaining = max(0, self.limit - val)
        return GateDecision(allowed=val <= self.limit, remaining=remaining, reset_at=reset_at)

    async def close(self) -> None:
        await self.r.aclose()
