"""Content digests for OpenAPI documents."""

from __future__ import annotations

import base64
import hashlib

DIGEST_PREFIX = "sha256:"

_HEADER_ALGORITHMS = ("sha-256", "id-sha-256")


def new_digest(contents: bytes) -> str:
    """Return ``sha256:`` plus the standard base64 SHA-256 of contents."""
    return DIGEST_PREFIX + base64.b64encode(hashlib.sha256(contents).digest()).decode("ascii")


def parse_digest_header(value: str | None) -> str:
    """Extract a content digest from an HTTP ``Digest`` response header.

    Returns the first ``sha-256`` or ``id-sha-256`` value, prefixed with
    ``sha256:``, or "" if the header carries no usable digest.
    """
    if not value:
        return ""
    for directive in value.split(","):
        key, sep, digest = directive.strip().partition("=")
        if not sep:
            continue
        if key.strip() in _HEADER_ALGORITHMS:
            return DIGEST_PREFIX + digest.strip()
    return ""


def escape_digest(digest: str) -> str:
    """Encode a digest for use as an object name (no ``/`` characters)."""
    return base64.urlsafe_b64encode(digest.encode("utf-8")).decode("ascii")


def unescape_digest(escaped: str) -> str:
    return base64.urlsafe_b64decode(escaped.encode("ascii")).decode("utf-8")
