"""In-memory storage.

Not intended for production use, but a functionally complete reference
implementation used to validate the rest of the system.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection
from datetime import datetime

from aggregator.collator import dump_spec
from aggregator.digest import new_digest
from aggregator.errors import NoMatchingVersion
from aggregator.revision import ContentRevision
from aggregator.storage.base import CollatorFactory, Storage, sanitized_host
from aggregator.version import Version, parse_version

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """Storage held in process memory.

    Writers hold an asyncio lock. Collation publishes a new versions list and
    spec map by replacing both references at once, so readers always see a
    complete collation without locking.
    """

    def __init__(self, new_collator: CollatorFactory | None = None):
        super().__init__(new_collator)
        self._lock = asyncio.Lock()
        # host -> version -> digest -> revision
        self._revisions: dict[str, dict[Version, dict[str, ContentRevision]]] = {}
        self._advertised: dict[str, tuple[list[str], datetime]] = {}
        self._collated: tuple[list[str], dict[str, bytes]] = ([], {})

    async def notify_versions(self, service: str, versions: list[str], scrape_time: datetime) -> None:
        host = sanitized_host(service)
        async with self._lock:
            current = self._advertised.get(host)
            if current is not None and current[0] == sorted(versions):
                return
            self._advertised[host] = (sorted(versions), scrape_time)

    async def has_version(self, service: str, version: str, digest: str) -> bool:
        parsed = parse_version(version).effective()
        revisions = self._revisions.get(sanitized_host(service), {}).get(parsed, {})
        return digest in revisions

    async def notify_version(self, service: str, version: str, contents: bytes, scrape_time: datetime) -> None:
        host = sanitized_host(service)
        parsed = parse_version(version).effective()
        digest = new_digest(contents)
        async with self._lock:
            revisions = self._revisions.setdefault(host, {}).setdefault(parsed, {})
            if digest in revisions:
                return
            revisions[digest] = ContentRevision(
                service=host,
                version=parsed,
                digest=digest,
                timestamp=scrape_time,
                blob=bytes(contents),
            )
            logger.debug("stored revision %s %s %s", host, parsed, digest)

    async def versions(self) -> list[str]:
        return list(self._collated[0])

    async def version(self, version: str) -> bytes:
        spec = self._collated[1].get(version)
        if spec is None:
            raise NoMatchingVersion(f"no collated version {version}")
        return spec

    async def advertised_versions(self, service: str) -> list[str]:
        current = self._advertised.get(sanitized_host(service))
        return list(current[0]) if current else []

    async def collate_versions(self, service_filter: Collection[str]) -> None:
        hosts = {sanitized_host(name) for name in service_filter}
        async with self._lock:
            collator = self.new_collator()
            for host, by_version in self._revisions.items():
                if host not in hosts:
                    continue
                for revisions in by_version.values():
                    for revision in revisions.values():
                        collator.add(host, revision)
            versions, specs = await asyncio.to_thread(collator.collate)
            self._collated = (
                [str(v) for v in versions],
                {str(v): dump_spec(doc) for v, doc in specs.items()},
            )
        logger.info("collated %d version(s) from %d service(s)", len(versions), len(hosts))
