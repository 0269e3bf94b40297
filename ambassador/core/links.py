"""Referral link resolution."""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ambassador.core.errors import LinkNotFoundError
from ambassador.database.connection import get_session_factory
from ambassador.database.models import Link

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolvedLink:
    """A referral code together with the ambassador who owns it."""

    code: str
    ambassador_id: int
    ambassador_email: str
    ambassador_name: str


class LinkResolver:
    """Looks up referral codes. Has no side effects."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def resolve(self, code: str | None) -> ResolvedLink:
        """
        Resolve a referral code to its owning ambassador.

        Args:
            code: Referral code from the checkout request

        Returns:
            ResolvedLink: The link and its owner

        Raises:
            LinkNotFoundError: If the code is blank or unknown
        """
        normalized = (code or "").strip()
        if not normalized:
            logger.info("referral_link_blank")
            raise LinkNotFoundError(normalized)

        async with self.session_factory() as session:
            stmt = (
                select(Link)
                .options(selectinload(Link.user))
                .where(Link.code == normalized)
            )
            result = await session.execute(stmt)
            link = result.scalar_one_or_none()

        if link is None or link.user is None:
            logger.info("referral_link_not_found", code=normalized)
            raise LinkNotFoundError(normalized)

        logger.info("referral_link_resolved", code=link.code, ambassador_id=link.user_id)
        return ResolvedLink(
            code=link.code,
            ambassador_id=link.user_id,
            ambassador_email=link.user.email,
            ambassador_name=link.user.name,
        )
