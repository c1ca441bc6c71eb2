"""Collation of service revisions into unified per-version OpenAPI documents."""

from __future__ import annotations

import json
import logging

from aggregator import metrics
from aggregator.errors import MergeConflict, NoMatchingVersion
from aggregator.excludes import Excluder
from aggregator.merge import apply_overlay, merge
from aggregator.revision import ContentRevision, ServiceRevisions
from aggregator.version import Version, VersionSet

logger = logging.getLogger(__name__)


class Collator:
    """Aggregates revisions from all services and merges them per version.

    Versions are keyed by their pivot-applied (effective) form, and services
    are merged in alphabetical order so output is reproducible.
    """

    def __init__(self, excluder: Excluder | None = None, overlay: dict | None = None):
        if overlay is not None and not isinstance(overlay, dict):
            raise MergeConflict("overlay must be an OpenAPI object")
        self.excluder = excluder or Excluder()
        self.overlay = overlay
        self.revisions: dict[str, ServiceRevisions] = {}
        self.versions = VersionSet()

    def add(self, service: str, revision: ContentRevision) -> None:
        if service not in self.revisions:
            self.revisions[service] = ServiceRevisions()
        self.revisions[service].add(revision)
        self.versions.add(revision.version.effective())

    def collate(self) -> tuple[list[Version], dict[Version, dict]]:
        """Merge the latest revision of every service in effect at each version.

        Raises MergeConflict if any revision cannot be loaded or merged; no
        partial result is returned in that case.
        """
        specs: dict[Version, dict] = {}
        for version in self.versions:
            revisions = self._resolve_revisions(version)
            if not revisions:
                continue
            try:
                specs[version] = self._merge_revisions(revisions)
            except MergeConflict:
                logger.error("could not merge revisions for version %s", version)
                metrics.collator_merge_error.labels(version=str(version)).inc()
                raise
        return sorted(specs), specs

    def _resolve_revisions(self, version: Version) -> list[ContentRevision]:
        revisions = []
        for service in sorted(self.revisions):
            try:
                revisions.append(self.revisions[service].resolve_latest_revision(version))
            except NoMatchingVersion as exc:
                # A service need not have anything in effect at every version.
                logger.debug("could not resolve version %s for service %s: %s", version, service, exc)
        return revisions

    def _merge_revisions(self, revisions: list[ContentRevision]) -> dict:
        doc: dict = {}
        for revision in revisions:
            doc = merge(doc, load_revision(revision), replace=True)
        if self.overlay is not None:
            doc = apply_overlay(doc, self.overlay)
        return self.excluder.apply(doc)


def load_revision(revision: ContentRevision) -> dict:
    try:
        doc = json.loads(revision.blob)
    except ValueError as exc:
        raise MergeConflict(
            f"could not load revision {revision.service}-{revision.version}-{revision.digest}: {exc}"
        ) from exc
    if not isinstance(doc, dict):
        raise MergeConflict(
            f"revision {revision.service}-{revision.version}-{revision.digest} is not a JSON object"
        )
    return doc


def dump_spec(doc: dict) -> bytes:
    """Serialize a collated document deterministically."""
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
