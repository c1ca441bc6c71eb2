"""Error kinds raised by the aggregator engine."""

from __future__ import annotations


class AggregatorError(Exception):
    """Base class for all aggregator errors."""
    pass


class ConfigInvalid(AggregatorError):
    """Raised when the server configuration cannot be loaded or validated."""
    pass


class VersionParseError(AggregatorError, ValueError):
    """Raised when a version or stability string is malformed."""
    pass


class NoMatchingVersion(AggregatorError, LookupError):
    """Raised when version resolution finds no candidate."""
    pass


class TransportError(AggregatorError):
    """Raised when an upstream request fails or returns unusable content."""
    pass


class StorageError(AggregatorError):
    """Raised when a storage backend operation fails."""
    pass


class MergeConflict(AggregatorError):
    """Raised when documents cannot be merged into a collated spec."""
    pass


class ScrapeError(AggregatorError):
    """Combined failure of one or more service scrapes in a single run."""

    def __init__(self, errors: dict[str, Exception]):
        self.errors = errors
        details = "; ".join(f"{name}: {err}" for name, err in sorted(errors.items()))
        super().__init__(f"{len(errors)} service scrape(s) failed: {details}")
