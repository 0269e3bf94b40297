"""
Ambassador leaderboard backed by a Redis sorted set.

The score is cumulative ambassador revenue and is only ever changed with
ZINCRBY, never read-modify-write.
"""
from decimal import Decimal
from typing import Optional

import redis.asyncio as aioredis
import structlog

from ambassador.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class RankingStore:
    """Atomic increment-by-score map keyed by ambassador display name."""

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize ranking store.

        Args:
            redis_client: Optional Redis client (creates one if not provided)
            settings: Optional settings override
        """
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self._redis_initialized = redis_client is not None

    async def _ensure_redis(self) -> aioredis.Redis:
        """Ensure Redis client is initialized."""
        if self.redis_client is None or not self._redis_initialized:
            self.redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._redis_initialized = True
        return self.redis_client

    @property
    def key(self) -> str:
        return self.settings.rankings_key

    async def increment(self, member: str, amount: Decimal) -> float:
        """
        Add ``amount`` to the member's score.

        Returns:
            float: The member's new score
        """
        redis = await self._ensure_redis()
        score = await redis.zincrby(self.key, float(amount), member)
        logger.info("ranking_incremented", member=member, amount=str(amount), score=score)
        return float(score)

    async def ping(self) -> bool:
        redis = await self._ensure_redis()
        return await redis.ping()

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis_client and self._redis_initialized:
            await self.redis_client.aclose()
