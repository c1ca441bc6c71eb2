"""Storage contract shared by all aggregator storage backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Collection
from datetime import datetime
from urllib.parse import quote, unquote, urlsplit

from aggregator.collator import Collator
from aggregator.digest import escape_digest
from aggregator.version import Version

logger = logging.getLogger(__name__)

SERVICE_VERSIONS_FOLDER = "service-versions/"
COLLATED_VERSIONS_FOLDER = "collated-versions/"
SERVICE_ADVERTISED_FOLDER = "service-advertised/"
COLLATED_INDEX_KEY = COLLATED_VERSIONS_FOLDER + "versions.json"

CollatorFactory = Callable[[], Collator]


def sanitized_host(name: str) -> str:
    """Reduce a service identifier to a bare host[:port] when it is a URL."""
    if name.startswith("http"):
        try:
            host = urlsplit(name).netloc
        except ValueError:
            logger.warning("service url misconfigured, falling back to %s", name)
            return name
        if host:
            return host
        logger.warning("service url misconfigured, falling back to %s", name)
    return name


def host_segment(name: str) -> str:
    """Escape a service host for use as a single object key segment."""
    segment = quote(sanitized_host(name), safe=":")
    if not segment.strip("."):
        segment = segment.replace(".", "%2E")
    return segment


def unescape_host_segment(segment: str) -> str:
    return unquote(segment)


def revision_key(service: str, version: Version, digest: str) -> str:
    return f"{SERVICE_VERSIONS_FOLDER}{host_segment(service)}/{version.canonical()}/{escape_digest(digest)}.json"


def collated_key(version: str, digest: str) -> str:
    return f"{COLLATED_VERSIONS_FOLDER}{version}/{escape_digest(digest)}.json"


def latest_collated_key(version: str) -> str:
    return f"{COLLATED_VERSIONS_FOLDER}{version}/spec.json"


def advertised_key(service: str) -> str:
    return f"{SERVICE_ADVERTISED_FOLDER}{host_segment(service)}.json"


class Storage(ABC):
    """Durable store of service revisions and collated versions.

    Revisions are content-addressed by (service, version, digest) and never
    change once written. Collated versions are replaced wholesale by each
    ``collate_versions`` run.
    """

    def __init__(self, new_collator: CollatorFactory | None = None):
        self.new_collator = new_collator or Collator

    @abstractmethod
    async def notify_versions(self, service: str, versions: list[str], scrape_time: datetime) -> None:
        """Record the set of versions a service currently advertises."""
        pass

    @abstractmethod
    async def has_version(self, service: str, version: str, digest: str) -> bool:
        """Return whether (service, version, digest) is already stored."""
        pass

    @abstractmethod
    async def notify_version(self, service: str, version: str, contents: bytes, scrape_time: datetime) -> None:
        """Store a revision of the service's spec at version.

        Idempotent: contents already stored at the same digest are ignored.
        """
        pass

    @abstractmethod
    async def versions(self) -> list[str]:
        """Currently collated versions, canonical form, sorted."""
        pass

    @abstractmethod
    async def version(self, version: str) -> bytes:
        """Collated document at exactly this version.

        Raises NoMatchingVersion if no such version is collated.
        """
        pass

    @abstractmethod
    async def collate_versions(self, service_filter: Collection[str]) -> None:
        """Collate revisions of the given services and publish the results."""
        pass

    async def close(self) -> None:
        pass
