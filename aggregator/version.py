"""API versions: dates plus stability levels, and resolution over version sets.

A version is written ``YYYY-MM-DD`` (GA) or ``YYYY-MM-DD~<stability>``.
Versions dated on or after ``PIVOT_DATE`` are treated as GA regardless of
their suffix; ``Version.effective()`` and ``Version.canonical()`` apply that
rule, plain ``str()`` does not.
"""

from __future__ import annotations

import bisect
import enum
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timezone

from aggregator.errors import NoMatchingVersion, VersionParseError

PIVOT_DATE = date(2024, 10, 15)

_DATE_FORMAT = "%Y-%m-%d"


class Stability(enum.IntEnum):
    WIP = 1
    EXPERIMENTAL = 2
    BETA = 3
    GA = 4

    def __str__(self) -> str:
        return self.name.lower()


def parse_stability(value: str) -> Stability:
    """Parse a stability label such as ``beta``."""
    try:
        if value != value.lower():
            raise KeyError(value)
        return Stability[value.upper()]
    except KeyError:
        raise VersionParseError(f"invalid stability {value!r}") from None


def _parse_date(value: str, original: str) -> date:
    if len(value) != 10:
        raise VersionParseError(f"invalid version {original!r}")
    try:
        return datetime.strptime(value, _DATE_FORMAT).date()
    except ValueError:
        raise VersionParseError(f"invalid version {original!r}") from None


@dataclass(frozen=True, order=True)
class Version:
    date: date
    stability: Stability = Stability.GA

    def __str__(self) -> str:
        if self.stability == Stability.GA:
            return self.date_string
        return f"{self.date_string}~{self.stability}"

    @property
    def date_string(self) -> str:
        return self.date.strftime(_DATE_FORMAT)

    def effective(self, pivot: date = PIVOT_DATE) -> Version:
        """Return the version as the pivot-date regime sees it."""
        if self.date >= pivot and self.stability != Stability.GA:
            return Version(self.date, Stability.GA)
        return self

    def canonical(self, pivot: date = PIVOT_DATE) -> str:
        """String form used for storage keys and collated output."""
        return str(self.effective(pivot))

    def compare(self, other: Version) -> int:
        if self < other:
            return -1
        if self > other:
            return 1
        return 0


def parse_version(value: str) -> Version:
    """Parse ``YYYY-MM-DD`` or ``YYYY-MM-DD~stability`` into a Version."""
    date_part, sep, stability_part = value.partition("~")
    parsed_date = _parse_date(date_part, value)
    if not sep:
        return Version(parsed_date)
    return Version(parsed_date, parse_stability(stability_part))


def today(clock: Callable[[], datetime] | None = None) -> date:
    """Current UTC date, truncated to the day."""
    now = clock() if clock else datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date()


def parse_query(value: str, clock: Callable[[], datetime] | None = None) -> Version:
    """Parse a requested version, accepting a bare stability label.

    A bare label such as ``beta`` is resolved against today's UTC date.
    """
    try:
        return parse_version(value)
    except VersionParseError:
        try:
            stability = parse_stability(value)
        except VersionParseError:
            raise VersionParseError(f"invalid version {value!r}") from None
        return Version(today(clock), stability)


class VersionSet:
    """Sorted, de-duplicated collection of versions."""

    def __init__(self, versions: Iterable[Version] = (), pivot: date = PIVOT_DATE):
        self._versions: list[Version] = sorted(set(versions))
        self.pivot = pivot

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[Version]:
        return iter(self._versions)

    def __contains__(self, version: object) -> bool:
        if not isinstance(version, Version):
            return False
        i = bisect.bisect_left(self._versions, version)
        return i < len(self._versions) and self._versions[i] == version

    def __repr__(self) -> str:
        return f"VersionSet({self.strings()!r})"

    def add(self, version: Version) -> bool:
        """Insert a version in sort order. Returns False if already present."""
        i = bisect.bisect_left(self._versions, version)
        if i < len(self._versions) and self._versions[i] == version:
            return False
        self._versions.insert(i, version)
        return True

    def strings(self) -> list[str]:
        return [str(v) for v in self._versions]

    def resolve(self, query: Version) -> Version:
        """Return the newest version no newer and at least as stable as query.

        Candidates are compared by their effective stability, so a post-pivot
        ``~beta`` version satisfies a GA query. Ties on date go to the most
        stable candidate.
        """
        # Every version dated on or before the query date sorts before this bound.
        upper = bisect.bisect_right(self._versions, Version(query.date, Stability.GA))
        best: Version | None = None
        best_key: tuple[Stability, Stability] | None = None
        for candidate in reversed(self._versions[:upper]):
            if best is not None and candidate.date < best.date:
                break
            effective = candidate.effective(self.pivot).stability
            if effective < query.stability:
                continue
            key = (effective, candidate.stability)
            if best_key is None or key > best_key:
                best, best_key = candidate, key
        if best is None:
            raise NoMatchingVersion(f"no version matches {query}")
        return best
