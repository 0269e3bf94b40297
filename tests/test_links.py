"""
Tests for referral link resolution.
"""
from typing import Dict

import pytest

from ambassador.core.errors import LinkNotFoundError, NotFoundError
from ambassador.core.links import LinkResolver


class TestLinkResolver:
    """Test suite for LinkResolver."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_resolves_owner(self, link_resolver: LinkResolver, seeded: Dict[str, int]) -> None:
        link = await link_resolver.resolve("ABC123")

        assert link.code == "ABC123"
        assert link.ambassador_id == seeded["ambassador_id"]
        assert link.ambassador_email == "alice@x.com"
        assert link.ambassador_name == "Alice Smith"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_ignored(
        self, link_resolver: LinkResolver, seeded: Dict[str, int]
    ) -> None:
        link = await link_resolver.resolve("  ABC123 ")

        assert link.code == "ABC123"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_code(self, link_resolver: LinkResolver, seeded: Dict[str, int]) -> None:
        with pytest.raises(LinkNotFoundError, match="Invalid link!") as exc_info:
            await link_resolver.resolve("NOPE")

        assert exc_info.value.code == "NOPE"
        assert isinstance(exc_info.value, NotFoundError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "   ", None])
    async def test_blank_code_is_not_found(
        self, code: str, link_resolver: LinkResolver, seeded: Dict[str, int]
    ) -> None:
        with pytest.raises(LinkNotFoundError):
            await link_resolver.resolve(code)
