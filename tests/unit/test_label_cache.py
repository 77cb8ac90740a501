"""Unit tests for LabelCache."""

import asyncio

import pytest

from mail_retention.engine import LabelCache, LabelInfo


class TestLabelCache:
    """Test suite for LabelCache."""

    def test_lookup_is_case_insensitive(self) -> None:
        """Test that names are matched regardless of case and padding."""
        cache = LabelCache([LabelInfo(name="Newsletters", id="Label_1")])

        assert cache.get("newsletters") == "Label_1"
        assert " NEWSLETTERS " in cache
        assert "promotions" not in cache
        assert len(cache) == 1

    def test_clear(self) -> None:
        cache = LabelCache([LabelInfo(name="a", id="1")])

        cache.clear()

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_ensure_reuses_known_label(self, fake_provider) -> None:
        """Test that a cached label never reaches the provider."""
        cache = LabelCache([LabelInfo(name="newsletters", id="Label_2")])

        label_id = await cache.ensure("newsletters", fake_provider)

        assert label_id == "Label_2"
        assert fake_provider.ensure_calls == []

    @pytest.mark.asyncio
    async def test_concurrent_ensure_creates_once(self, fake_provider) -> None:
        """Test that concurrent callers share a single creation."""
        cache = LabelCache()

        ids = await asyncio.gather(
            *(cache.ensure("mail-retention/rule-1", fake_provider) for _ in range(5))
        )

        assert len(set(ids)) == 1
        assert fake_provider.ensure_calls == ["mail-retention/rule-1"]
        assert "mail-retention/rule-1" in cache
