"""Removal of excluded elements from collated OpenAPI documents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from aggregator.errors import ConfigInvalid

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compile a doublestar glob.

    ``*`` matches within one path segment, ``**`` matches across segments,
    ``?`` matches one non-separator character, ``[...]`` is a character class
    and ``{a,b}`` an alternation.
    """
    out: list[str] = []
    i, n = 0, len(pattern)
    depth = 0
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                at_segment_start = i == 0 or pattern[i - 1] == "/"
                if at_segment_start and pattern.startswith("**/", i):
                    out.append("(?:.*/)?")
                    i += 3
                    continue
                if at_segment_start and i + 2 == n and i > 0:
                    # "a/**" also matches "a" itself.
                    out[-1] = "(?:/.*)?"
                    i += 2
                    continue
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        elif c == "{":
            depth += 1
            out.append("(?:")
        elif c == "}" and depth:
            depth -= 1
            out.append(")")
        elif c == "," and depth:
            out.append("|")
        elif c == "/":
            out.append("/")
        else:
            out.append(re.escape(c))
        i += 1
    if depth:
        raise ConfigInvalid(f"unbalanced braces in exclude pattern {pattern!r}")
    return re.compile("".join(out) + r"\Z")


def _compile_regexes(patterns: list[str], kind: str) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigInvalid(f"invalid {kind} pattern {pattern!r}: {exc}") from exc
    return compiled


@dataclass
class Excluder:
    """Matches paths, extensions and headers that must not be published."""
    path_patterns: list[str] = field(default_factory=list)
    extension_patterns: list[str] = field(default_factory=list)
    header_patterns: list[str] = field(default_factory=list)

    def __post_init__(self):
        self._paths = [glob_to_regex(p) for p in self.path_patterns]
        self._extensions = _compile_regexes(self.extension_patterns, "extension")
        self._headers = _compile_regexes(self.header_patterns, "header")

    def is_excluded_path(self, path: str) -> bool:
        return any(p.match(path) for p in self._paths)

    def is_excluded_extension(self, name: str) -> bool:
        return any(p.search(name) for p in self._extensions)

    def is_excluded_header(self, name: str) -> bool:
        return any(p.search(name) for p in self._headers)

    def apply(self, doc: dict) -> dict:
        """Remove excluded elements from doc in place and return it."""
        paths = doc.get("paths")
        if isinstance(paths, dict) and self._paths:
            for path in [p for p in paths if self.is_excluded_path(p)]:
                del paths[path]
        if self._headers and isinstance(paths, dict):
            for path_item in paths.values():
                if isinstance(path_item, dict):
                    self._strip_path_item_headers(path_item)
        if self._extensions:
            self._strip_extensions(doc)
        return doc

    def _strip_path_item_headers(self, path_item: dict) -> None:
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            params = operation.get("parameters")
            if isinstance(params, list):
                operation["parameters"] = [p for p in params if not self._is_excluded_header_param(p)]
            responses = operation.get("responses")
            if not isinstance(responses, dict):
                continue
            for response in responses.values():
                headers = response.get("headers") if isinstance(response, dict) else None
                if isinstance(headers, dict):
                    for name in [h for h in headers if self.is_excluded_header(h)]:
                        del headers[name]

    def _is_excluded_header_param(self, param: Any) -> bool:
        if not isinstance(param, dict) or param.get("in") != "header":
            return False
        return self.is_excluded_header(str(param.get("name", "")))

    def _strip_extensions(self, node: Any) -> None:
        if isinstance(node, dict):
            for key in [k for k in node if k.startswith("x-") and self.is_excluded_extension(k)]:
                del node[key]
            for value in node.values():
                self._strip_extensions(value)
        elif isinstance(node, list):
            for item in node:
                self._strip_extensions(item)
