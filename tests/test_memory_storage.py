"""Tests for the in-memory storage implementation."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from aggregator.digest import new_digest
from aggregator.errors import MergeConflict, NoMatchingVersion
from aggregator.storage import MemoryStorage
from aggregator.version import parse_version

T0 = datetime(2021, 12, 3, 20, 49, 51, tzinfo=timezone.utc)


def doc(*paths: str) -> bytes:
    return json.dumps({"paths": {p: {} for p in paths}}).encode()


class TestRevisions:
    @pytest.mark.asyncio
    async def test_notify_version_is_idempotent(self):
        store = MemoryStorage()
        body = doc("/crickets")
        await store.notify_version("s", "2021-09-16", body, T0)
        await store.notify_version("s", "2021-09-16", body, T0)
        assert len(store._revisions["s"][parse_version("2021-09-16")]) == 1

        await store.notify_version("s", "2021-09-16", doc("/crickets", "/kibble"), T0)
        assert len(store._revisions["s"][parse_version("2021-09-16")]) == 2

    @pytest.mark.asyncio
    async def test_has_version_after_notify(self):
        store = MemoryStorage()
        body = doc("/crickets")
        assert await store.has_version("s", "2021-09-16", new_digest(body)) is False
        await store.notify_version("s", "2021-09-16", body, T0)
        assert await store.has_version("s", "2021-09-16", new_digest(body)) is True
        assert await store.has_version("s", "2021-09-01", new_digest(body)) is False
        assert await store.has_version("other", "2021-09-16", new_digest(body)) is False

    @pytest.mark.asyncio
    async def test_post_pivot_versions_share_a_key(self):
        store = MemoryStorage()
        body = doc("/a")
        await store.notify_version("s", "2024-11-01~beta", body, T0)
        assert await store.has_version("s", "2024-11-01", new_digest(body)) is True

    @pytest.mark.asyncio
    async def test_notify_versions(self):
        store = MemoryStorage()
        await store.notify_versions("http://petfood.test", ["2021-09-16", "2021-09-01"], T0)
        assert await store.advertised_versions("petfood.test") == ["2021-09-01", "2021-09-16"]
        assert await store.advertised_versions("animals") == []


class TestCollation:
    @pytest.mark.asyncio
    async def test_nothing_collated(self):
        store = MemoryStorage()
        assert await store.versions() == []
        with pytest.raises(NoMatchingVersion):
            await store.version("2021-09-01")

    @pytest.mark.asyncio
    async def test_collate_versions(self):
        store = MemoryStorage()
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("animals", "2021-10-01", doc("/geckos"), T0)
        await store.collate_versions({"petfood", "animals"})

        assert await store.versions() == ["2021-09-01", "2021-10-01"]
        latest = json.loads(await store.version("2021-10-01"))
        assert set(latest["paths"]) == {"/crickets", "/geckos"}
        with pytest.raises(NoMatchingVersion):
            await store.version("2021-09-16")

    @pytest.mark.asyncio
    async def test_service_filter(self):
        store = MemoryStorage()
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("retired", "2021-09-01", doc("/dodos"), T0)
        await store.collate_versions({"petfood"})
        assert list(json.loads(await store.version("2021-09-01"))["paths"]) == ["/crickets"]

    @pytest.mark.asyncio
    async def test_collation_is_byte_identical(self):
        store = MemoryStorage()
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("animals", "2021-09-01", doc("/geckos"), T0)
        await store.collate_versions({"petfood", "animals"})
        first = await store.version("2021-09-01")
        await store.collate_versions({"petfood", "animals"})
        assert await store.version("2021-09-01") == first

    @pytest.mark.asyncio
    async def test_failed_collation_keeps_previous(self):
        store = MemoryStorage()
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.collate_versions({"petfood"})
        await store.notify_version("broken", "2021-09-16", b"[1, 2]", T0)
        with pytest.raises(MergeConflict):
            await store.collate_versions({"petfood", "broken"})
        assert await store.versions() == ["2021-09-01"]
