"""Content revisions: immutable snapshots of a service's spec at one version."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from aggregator.errors import NoMatchingVersion
from aggregator.version import Version, VersionSet


@dataclass(frozen=True)
class ContentRevision:
    """Exact contents of a service's spec version as scraped at a point in time.

    Revisions are equal when service, version and digest match; the scrape
    timestamp and blob do not take part in equality.
    """
    service: str
    version: Version
    digest: str
    timestamp: datetime = field(compare=False)
    blob: bytes = field(compare=False, repr=False)


def _newest_first(revision: ContentRevision) -> tuple[datetime, str]:
    return (revision.timestamp, revision.digest)


class ServiceRevisions:
    """Revisions of a single service, indexed by version."""

    def __init__(self):
        self._revisions: dict[Version, list[ContentRevision]] = {}
        self.versions = VersionSet()

    def __len__(self) -> int:
        return sum(len(revs) for revs in self._revisions.values())

    def add(self, revision: ContentRevision) -> None:
        """Register a revision; identical (service, version, digest) are ignored."""
        revisions = self._revisions.setdefault(revision.version, [])
        if revision in revisions:
            return
        revisions.append(revision)
        # Newest scrape first; digest breaks timestamp ties deterministically.
        revisions.sort(key=_newest_first, reverse=True)
        self.versions.add(revision.version)

    def revisions(self, version: Version) -> list[ContentRevision]:
        return list(self._revisions.get(version, ()))

    def resolve_latest_revision(self, version: Version) -> ContentRevision:
        """Return the newest revision in effect at the given version.

        An exact version match is preferred; otherwise the version is resolved
        against this service's versions. Raises NoMatchingVersion when nothing
        is in effect.
        """
        revisions = self._revisions.get(version)
        if not revisions:
            resolved = self.versions.resolve(version)
            revisions = self._revisions.get(resolved)
            if not revisions:
                raise NoMatchingVersion(f"no revision found for resolved version {resolved}")
        return revisions[0]
