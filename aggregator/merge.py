"""Structural merge of OpenAPI documents.

Documents are plain JSON-compatible dicts. ``merge`` never mutates its
inputs; it returns a new document.

Rules:
  - ``paths`` and every ``components`` section are unioned by key. On a key
    collision the destination wins unless ``replace`` is set.
  - ``servers``, ``security`` and ``tags`` are unioned by deep equality,
    destination items first.
  - ``info`` and ``openapi`` come from the destination when present.
  - Any other top-level field is unioned recursively as a mapping; scalar
    conflicts keep the destination value.

``apply_overlay`` lays a fragment over a collated document. Its top-level
fields replace the document's, except ``paths``, ``components`` and the array
fields, which are unioned with the overlay winning on key collisions.
"""

from __future__ import annotations

import copy
from typing import Any

from aggregator.errors import MergeConflict

ARRAY_UNION_FIELDS = ("servers", "security", "tags")
DESTINATION_FIELDS = ("info", "openapi")


def merge(dst: dict, src: dict, replace: bool = False) -> dict:
    """Merge src into a copy of dst and return the result."""
    if not isinstance(dst, dict) or not isinstance(src, dict):
        raise MergeConflict("OpenAPI documents must be JSON objects")

    result = copy.deepcopy(dst)
    for key, value in src.items():
        if key == "paths":
            result[key] = _merge_keyed(result.get(key), value, replace, key)
        elif key == "components":
            result[key] = _merge_components(result.get(key), value, replace)
        elif key in ARRAY_UNION_FIELDS:
            result[key] = _union_list(result.get(key), value, key)
        elif key in DESTINATION_FIELDS:
            if result.get(key) is None:
                result[key] = copy.deepcopy(value)
        else:
            result[key] = _union_value(result.get(key), value, key in result)
    return result


def _merge_keyed(dst: Any, src: Any, replace: bool, where: str) -> dict:
    if dst is None:
        dst = {}
    if src is None:
        return dst
    if not isinstance(dst, dict) or not isinstance(src, dict):
        raise MergeConflict(f"{where} must be an object")
    for name, value in src.items():
        if name not in dst or replace:
            dst[name] = copy.deepcopy(value)
    return dst


def _merge_components(dst: Any, src: Any, replace: bool) -> dict:
    if dst is None:
        dst = {}
    if src is None:
        return dst
    if not isinstance(dst, dict) or not isinstance(src, dict):
        raise MergeConflict("components must be an object")
    for section, entries in src.items():
        existing = dst.get(section)
        if isinstance(entries, dict) and (existing is None or isinstance(existing, dict)):
            dst[section] = _merge_keyed(existing, entries, replace, f"components.{section}")
        elif section not in dst or replace:
            dst[section] = copy.deepcopy(entries)
    return dst


def _union_list(dst: Any, src: Any, where: str) -> list:
    if dst is None:
        dst = []
    if src is None:
        return dst
    if not isinstance(dst, list) or not isinstance(src, list):
        raise MergeConflict(f"{where} must be an array")
    for item in src:
        if item not in dst:
            dst.append(copy.deepcopy(item))
    return dst


def _union_value(dst: Any, src: Any, present: bool) -> Any:
    if not present:
        return copy.deepcopy(src)
    if isinstance(dst, dict) and isinstance(src, dict):
        for key, value in src.items():
            dst[key] = _union_value(dst.get(key), value, key in dst)
    return dst


def apply_overlay(doc: dict, overlay: dict) -> dict:
    """Lay overlay over a copy of doc and return the result."""
    if not isinstance(doc, dict) or not isinstance(overlay, dict):
        raise MergeConflict("OpenAPI documents must be JSON objects")

    result = copy.deepcopy(doc)
    for key, value in overlay.items():
        if key == "paths":
            result[key] = _merge_keyed(result.get(key), value, True, key)
        elif key == "components":
            result[key] = _merge_components(result.get(key), value, True)
        elif key in ARRAY_UNION_FIELDS:
            result[key] = _union_list(result.get(key), value, key)
        else:
            result[key] = copy.deepcopy(value)
    return result
