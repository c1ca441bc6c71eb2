"""Tests for disk storage and the object-store key layout."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from aggregator.collator import Collator
from aggregator.digest import escape_digest, new_digest
from aggregator.errors import NoMatchingVersion, StorageError, VersionParseError
from aggregator.excludes import Excluder
from aggregator.storage.disk import DiskStorage
from aggregator.storage.objects import parse_revision_key
from aggregator.version import parse_version

T0 = datetime(2021, 12, 3, 20, 49, 51, tzinfo=timezone.utc)


def doc(*paths: str) -> bytes:
    return json.dumps({"paths": {p: {} for p in paths}}).encode()


@pytest.fixture
def store(tmp_path):
    return DiskStorage(tmp_path / "specs")


class TestKeys:
    def test_parse_revision_key(self):
        digest = new_digest(b"{}")
        key = f"service-versions/petfood/2021-09-01~beta/{escape_digest(digest)}.json"
        assert parse_revision_key(key) == ("petfood", parse_version("2021-09-01~beta"), digest)

    def test_parse_escaped_host(self):
        digest = new_digest(b"{}")
        key = f"service-versions/team%2Fpetfood/2021-09-01/{escape_digest(digest)}.json"
        assert parse_revision_key(key) == ("team/petfood", parse_version("2021-09-01"), digest)

    @pytest.mark.parametrize("key", [
        "collated-versions/2021-09-01/spec.json",
        "service-versions/petfood/2021-09-01",
        "service-versions/petfood/2021-09-01/abc.txt",
    ])
    def test_malformed_keys(self, key):
        with pytest.raises(StorageError):
            parse_revision_key(key)

    def test_corrupt_version_in_key(self):
        with pytest.raises(VersionParseError):
            parse_revision_key(f"service-versions/petfood/2021-9-1/{escape_digest('sha256:x')}.json")


class TestDiskStorage:
    @pytest.mark.asyncio
    async def test_revision_layout(self, store):
        body = doc("/crickets")
        await store.notify_version("http://petfood.test:8080", "2024-11-01~beta", body, T0)
        path = store.root / "service-versions" / "petfood.test:8080" / "2024-11-01" / f"{escape_digest(new_digest(body))}.json"
        assert path.read_bytes() == body
        assert await store.has_version("http://petfood.test:8080", "2024-11-01", new_digest(body))

    @pytest.mark.asyncio
    async def test_timestamp_kept_as_mtime(self, store):
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        key = store.list_objects("service-versions/")[0]
        assert store.get_object(key).timestamp == T0

    @pytest.mark.asyncio
    async def test_notify_version_idempotent(self, store):
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        assert len(store.list_objects("service-versions/")) == 1

    @pytest.mark.asyncio
    async def test_notify_versions(self, store):
        await store.notify_versions("petfood", ["2021-09-16", "2021-09-01"], T0)
        advertised = json.loads((store.root / "service-advertised" / "petfood.json").read_bytes())
        assert advertised == {"versions": ["2021-09-01", "2021-09-16"], "scrapedAt": T0.isoformat()}

    @pytest.mark.asyncio
    async def test_collate_and_read_back(self, tmp_path, store):
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("animals", "2021-10-01", doc("/geckos", "/_internal/x"), T0)
        assert await store.versions() == []

        await store.collate_versions({"petfood", "animals"})
        assert await store.versions() == ["2021-09-01", "2021-10-01"]
        assert set(json.loads(await store.version("2021-10-01"))["paths"]) == {"/crickets", "/geckos", "/_internal/x"}

        # A fresh instance over the same directory sees the same collation.
        reopened = DiskStorage(tmp_path / "specs")
        assert await reopened.versions() == ["2021-09-01", "2021-10-01"]

    @pytest.mark.asyncio
    async def test_collated_specs_are_content_addressed(self, store):
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        await store.collate_versions({"petfood"})
        first = json.loads(store.get_object("collated-versions/versions.json").body)
        assert list(first) == ["2021-09-01"]
        assert first["2021-09-01"].startswith("collated-versions/2021-09-01/")

        # Unchanged input republishes the same spec object.
        await store.collate_versions({"petfood"})
        assert json.loads(store.get_object("collated-versions/versions.json").body) == first

        await store.notify_version("petfood", "2021-09-01", doc("/crickets", "/kibble"), T0.replace(hour=21))
        await store.collate_versions({"petfood"})
        second = json.loads(store.get_object("collated-versions/versions.json").body)
        assert second["2021-09-01"] != first["2021-09-01"]
        # A reader still holding the previous index gets the previous body.
        assert set(json.loads(store.get_object(first["2021-09-01"]).body)["paths"]) == {"/crickets"}
        assert set(json.loads(await store.version("2021-09-01"))["paths"]) == {"/crickets", "/kibble"}
        latest = store.get_object("collated-versions/2021-09-01/spec.json").body
        assert latest == store.get_object(second["2021-09-01"]).body

    @pytest.mark.asyncio
    async def test_service_name_with_slash(self, store):
        await store.notify_version("team/petfood", "2021-09-01", doc("/crickets"), T0)
        await store.notify_version("animals", "2021-10-01", doc("/geckos"), T0)
        await store.notify_versions("team/petfood", ["2021-09-01"], T0)
        assert await store.has_version("team/petfood", "2021-09-01", new_digest(doc("/crickets")))
        assert (store.root / "service-versions" / "team%2Fpetfood" / "2021-09-01").is_dir()
        assert (store.root / "service-advertised" / "team%2Fpetfood.json").is_file()

        await store.collate_versions({"team/petfood", "animals"})
        assert await store.versions() == ["2021-09-01", "2021-10-01"]
        assert set(json.loads(await store.version("2021-10-01"))["paths"]) == {"/crickets", "/geckos"}

    @pytest.mark.asyncio
    async def test_dot_service_names_stay_under_root(self, store):
        await store.notify_version("..", "2021-09-01", doc("/crickets"), T0)
        assert (store.root / "service-versions" / "%2E%2E" / "2021-09-01").is_dir()
        await store.collate_versions({".."})
        assert await store.versions() == ["2021-09-01"]

    @pytest.mark.asyncio
    async def test_stray_objects_do_not_block_collation(self, store):
        await store.notify_version("petfood", "2021-09-01", doc("/crickets"), T0)
        store.put_object("service-versions/petfood/notes.txt", b"hello")
        store.put_object("service-versions/petfood/2021-9-1/abc.json", b"{}")
        await store.collate_versions({"petfood"})
        assert await store.versions() == ["2021-09-01"]

    @pytest.mark.asyncio
    async def test_collator_factory(self, tmp_path):
        store = DiskStorage(
            tmp_path / "specs",
            lambda: Collator(excluder=Excluder(path_patterns=["/_internal/**"])),
        )
        await store.notify_version("animals", "2021-10-01", doc("/geckos", "/_internal/x"), T0)
        await store.collate_versions({"animals"})
        assert list(json.loads(await store.version("2021-10-01"))["paths"]) == ["/geckos"]

    @pytest.mark.asyncio
    async def test_unknown_version(self, store):
        with pytest.raises(NoMatchingVersion):
            await store.version("2021-09-01")

    @pytest.mark.asyncio
    async def test_version_rejects_malformed_input(self, store):
        with pytest.raises(VersionParseError):
            await store.version("../../etc/passwd")

    def test_keys_cannot_escape_root(self, store):
        with pytest.raises(StorageError):
            store.get_object("../outside.json")
