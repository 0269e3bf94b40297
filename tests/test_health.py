"""
Tests for health probes.
"""
from typing import Any
from unittest.mock import AsyncMock

import pytest

from ambassador.integrations.rankings import RankingStore
from ambassador.monitoring.health import HealthCheck
from ambassador.workers.dispatcher import BackgroundDispatcher


@pytest.fixture
def ranking_store() -> AsyncMock:
    store = AsyncMock(spec=RankingStore)
    store.ping.return_value = True
    return store


class TestHealthCheck:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_healthy(self, session_factory: Any, ranking_store: AsyncMock) -> None:
        health = HealthCheck(
            session_factory=session_factory,
            ranking_store=ranking_store,
            dispatcher=BackgroundDispatcher(),
        )

        result = await health.check_all()

        assert result["status"] == "healthy"
        assert result["checks"]["database"]["status"] == "healthy"
        assert result["checks"]["rankings"]["status"] == "healthy"
        assert result["checks"]["settlements_pending"] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ranking_store_down(self, session_factory: Any, ranking_store: AsyncMock) -> None:
        ranking_store.ping.side_effect = ConnectionError("Connection refused")
        health = HealthCheck(session_factory=session_factory, ranking_store=ranking_store)

        result = await health.readiness()

        assert result["status"] == "unhealthy"
        assert result["checks"]["database"]["status"] == "healthy"
        assert "Connection refused" in result["checks"]["rankings"]["error"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_liveness_skips_dependencies(self, ranking_store: AsyncMock) -> None:
        health = HealthCheck(ranking_store=ranking_store)

        result = await health.liveness()

        assert result["status"] == "alive"
        ranking_store.ping.assert_not_awaited()
