"""Storage contract implemented over a flat object store.

Backends (disk, S3, GCS) only provide four blocking primitives; this module
maps the storage contract onto them:

    service-versions/<host>/<version>/<escaped-digest>.json   revisions
    service-advertised/<host>.json                           advertised versions
    collated-versions/<version>/<escaped-digest>.json         collated specs
    collated-versions/<version>/spec.json                    latest collated spec
    collated-versions/versions.json                          published index

Collated specs are content-addressed and never overwritten. The index maps
each version to its spec key and is published last in a single put, so
readers see either the previous collation or the next one. ``spec.json`` is
a plain copy of the latest spec for tools reading the bucket directly; the
server never reads it.
"""

from __future__ import annotations

import asyncio
import binascii
import json
import logging
from abc import abstractmethod
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime, timezone

from aggregator.collator import dump_spec
from aggregator.digest import new_digest, unescape_digest
from aggregator.errors import AggregatorError, NoMatchingVersion, StorageError, VersionParseError
from aggregator.revision import ContentRevision
from aggregator.storage.base import (
    COLLATED_INDEX_KEY,
    SERVICE_VERSIONS_FOLDER,
    CollatorFactory,
    Storage,
    advertised_key,
    collated_key,
    latest_collated_key,
    revision_key,
    sanitized_host,
    unescape_host_segment,
)
from aggregator.version import Version, parse_version

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class StoredObject:
    body: bytes
    timestamp: datetime | None = None


def parse_revision_key(key: str) -> tuple[str, Version, str]:
    """Split a revision object key into (host, version, digest)."""
    if not key.startswith(SERVICE_VERSIONS_FOLDER):
        raise StorageError(f"not a revision key: {key}")
    parts = key[len(SERVICE_VERSIONS_FOLDER):].split("/")
    if len(parts) != 3 or not parts[2].endswith(".json"):
        raise StorageError(f"malformed revision key: {key}")
    segment, version, filename = parts
    host = unescape_host_segment(segment)
    try:
        digest = unescape_digest(filename[: -len(".json")])
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise StorageError(f"malformed digest in revision key {key}: {exc}") from exc
    return host, parse_version(version), digest


class ObjectStorage(Storage):
    """Storage on top of put/get/exists/list object primitives."""

    def __init__(self, new_collator: CollatorFactory | None = None):
        super().__init__(new_collator)
        self._collate_lock = asyncio.Lock()

    @abstractmethod
    def put_object(self, key: str, body: bytes, timestamp: datetime | None = None) -> None:
        pass

    @abstractmethod
    def get_object(self, key: str) -> StoredObject | None:
        """Return the object at key, or None if it does not exist."""
        pass

    @abstractmethod
    def has_object(self, key: str) -> bool:
        pass

    @abstractmethod
    def list_objects(self, prefix: str) -> list[str]:
        """Keys of all objects under prefix."""
        pass

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except AggregatorError:
            raise
        except Exception as exc:
            raise StorageError(f"{type(self).__name__}.{fn.__name__} failed: {exc}") from exc

    async def notify_versions(self, service: str, versions: list[str], scrape_time: datetime) -> None:
        key = advertised_key(service)
        advertised = sorted(versions)
        current = await self._run(self.get_object, key)
        if current is not None:
            try:
                if json.loads(current.body).get("versions") == advertised:
                    return
            except (ValueError, AttributeError):
                logger.warning("replacing unreadable advertised versions object %s", key)
        body = json.dumps({"versions": advertised, "scrapedAt": scrape_time.isoformat()}).encode()
        await self._run(self.put_object, key, body, scrape_time)

    async def has_version(self, service: str, version: str, digest: str) -> bool:
        key = revision_key(service, parse_version(version), digest)
        return await self._run(self.has_object, key)

    async def notify_version(self, service: str, version: str, contents: bytes, scrape_time: datetime) -> None:
        key = revision_key(service, parse_version(version), new_digest(contents))
        if await self._run(self.has_object, key):
            return
        await self._run(self.put_object, key, bytes(contents), scrape_time)
        logger.debug("stored revision %s", key)

    async def _index(self) -> dict[str, str]:
        index = await self._run(self.get_object, COLLATED_INDEX_KEY)
        if index is None:
            return {}
        try:
            entries = json.loads(index.body)
        except ValueError as exc:
            raise StorageError(f"corrupt collated versions index: {exc}") from exc
        if not isinstance(entries, dict):
            raise StorageError("corrupt collated versions index: not an object")
        return entries

    async def versions(self) -> list[str]:
        return list(await self._index())

    async def version(self, version: str) -> bytes:
        parse_version(version)
        key = (await self._index()).get(version)
        if key is None:
            raise NoMatchingVersion(f"no collated version {version}")
        spec = await self._run(self.get_object, key)
        if spec is None:
            raise StorageError(f"collated version {version} is missing its spec object {key}")
        return spec.body

    async def collate_versions(self, service_filter: Collection[str]) -> None:
        hosts = {sanitized_host(name) for name in service_filter}
        async with self._collate_lock:
            collator = self.new_collator()
            for key in await self._run(self.list_objects, SERVICE_VERSIONS_FOLDER):
                try:
                    host, version, digest = parse_revision_key(key)
                except (StorageError, VersionParseError) as exc:
                    logger.warning("skipping unreadable revision object: %s", exc)
                    continue
                if host not in hosts:
                    continue
                obj = await self._run(self.get_object, key)
                if obj is None:
                    continue
                collator.add(host, ContentRevision(
                    service=host,
                    version=version,
                    digest=digest,
                    timestamp=obj.timestamp or _EPOCH,
                    blob=obj.body,
                ))
            versions, specs = await asyncio.to_thread(collator.collate)
            index = {}
            for version in versions:
                body = dump_spec(specs[version])
                key = collated_key(str(version), new_digest(body))
                if not await self._run(self.has_object, key):
                    await self._run(self.put_object, key, body, None)
                await self._run(self.put_object, latest_collated_key(str(version)), body, None)
                index[str(version)] = key
            await self._run(self.put_object, COLLATED_INDEX_KEY, json.dumps(index).encode(), None)
        logger.info("collated %d version(s) from %d service(s)", len(versions), len(hosts))
