"""
Health probes.

Liveness never touches a dependency. Readiness requires the order database
and the leaderboard store; the settlement backlog is reported but never
makes the service unready.
"""
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ambassador.database.connection import get_session_factory
from ambassador.integrations.rankings import RankingStore

if TYPE_CHECKING:
    from ambassador.workers.dispatcher import BackgroundDispatcher

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when a dependency probe fails."""

    pass


class HealthCheck:
    """Probes the order database and the ranking store."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ranking_store: Optional[RankingStore] = None,
        dispatcher: Optional["BackgroundDispatcher"] = None,
    ) -> None:
        self._session_factory = session_factory
        self.ranking_store = ranking_store or RankingStore()
        self.dispatcher = dispatcher

    async def check_database(self) -> None:
        session_factory = self._session_factory or get_session_factory()
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            raise HealthCheckError(f"Database unavailable: {str(e)}") from e

    async def check_rankings(self) -> None:
        try:
            await self.ranking_store.ping()
        except Exception as e:
            raise HealthCheckError(f"Ranking store unavailable: {str(e)}") from e

    @staticmethod
    async def _timed(name: str, probe: Callable[[], Awaitable[None]]) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            await probe()
        except HealthCheckError as e:
            logger.error("health_probe_failed", probe=name, error=str(e))
            return {"status": "unhealthy", "error": str(e)}
        return {"status": "healthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2)}

    async def check_all(self) -> Dict[str, Any]:
        """Run every dependency probe and summarize."""
        checks: Dict[str, Any] = {
            "database": await self._timed("database", self.check_database),
            "rankings": await self._timed("rankings", self.check_rankings),
        }
        healthy = all(check["status"] == "healthy" for check in checks.values())

        if self.dispatcher is not None:
            checks["settlements_pending"] = self.dispatcher.pending

        return {"status": "healthy" if healthy else "unhealthy", "checks": checks}

    async def liveness(self) -> Dict[str, Any]:
        return {"status": "alive", "message": "Application is running"}

    async def readiness(self) -> Dict[str, Any]:
        return await self.check_all()
