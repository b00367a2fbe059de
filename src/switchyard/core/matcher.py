"""Matcher runtime.

This module resolves (path, method) pairs against compiled dispatch data:
- Exact method bucket first, then the any-method bucket
- Path-only scan of every bucket to tell 405 from 404
- Attribute extraction with percent-decoding
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from urllib.parse import unquote

from switchyard.core.dispatch import ANY_METHOD, DispatchData, MarkChunk, NamedChunk

logger = logging.getLogger(__name__)


class MatchStatus(str, Enum):
    """Outcome of a match attempt."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"


@dataclass(frozen=True)
class MatchResult:
    """Result of matching one request.

    Attributes:
        status: Match outcome
        method: Upper-cased request method
        path: Request path
        route_name: Name of the matched route (FOUND only)
        attributes: Decoded attribute values (FOUND only), read-only
        allowed_methods: Methods whose routes match the path (METHOD_NOT_ALLOWED only)
        failed_routes: Names of routes that matched the path but not the method
    """

    status: MatchStatus
    method: str
    path: str
    route_name: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)
    allowed_methods: tuple[str, ...] = ()
    failed_routes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def is_found(self) -> bool:
        return self.status is MatchStatus.FOUND

    @property
    def is_method_not_allowed(self) -> bool:
        return self.status is MatchStatus.METHOD_NOT_ALLOWED

    @property
    def is_not_found(self) -> bool:
        return self.status is MatchStatus.NOT_FOUND


class _CompiledMarkChunk:
    """Mark chunk with its alternation compiled."""

    def __init__(self, chunk: MarkChunk):
        self.regex = re.compile(chunk.regex)
        # Absolute group number of every tag
        self.offsets = {tag: self.regex.groupindex[tag] for tag in chunk.tags}
        self.tags = chunk.tags

    def match(self, path: str) -> tuple[str, dict[str, str]] | None:
        m = self.regex.fullmatch(path)
        if m is None or m.lastgroup not in self.tags:
            return None

        tag = self.tags[m.lastgroup]
        base = self.offsets[m.lastgroup]
        attributes = {}
        for name, group in zip(tag.attributes, tag.groups):
            value = m.group(base + group)
            if value:
                attributes[name] = unquote(value)
        return tag.route, attributes


class _CompiledNamedChunk:
    """Named chunk with every entry regex compiled."""

    def __init__(self, chunk: NamedChunk):
        self.entries = [
            (entry.route, re.compile(entry.regex), entry.captures) for entry in chunk.entries
        ]

    def match(self, path: str) -> tuple[str, dict[str, str]] | None:
        for route, regex, captures in self.entries:
            m = regex.fullmatch(path)
            if m is None:
                continue
            attributes = {
                captures[alias]: unquote(value)
                for alias, value in m.groupdict().items()
                if alias in captures and value
            }
            return route, attributes
        return None


class Matcher:
    """Matches request paths against compiled dispatch data.

    The matcher holds only immutable compiled regexes, so one instance can be
    shared between threads. Every call returns a new MatchResult.
    """

    def __init__(self, data: DispatchData):
        """Initialize the matcher.

        Args:
            data: Dispatch data produced by the collector or loaded from cache
        """
        self.data = data
        self._groups: dict[str, list[_CompiledMarkChunk | _CompiledNamedChunk]] = {
            method: [self._compile_chunk(chunk) for chunk in chunks]
            for method, chunks in data.groups.items()
        }

    @staticmethod
    def _compile_chunk(chunk: MarkChunk | NamedChunk) -> _CompiledMarkChunk | _CompiledNamedChunk:
        if isinstance(chunk, MarkChunk):
            return _CompiledMarkChunk(chunk)
        return _CompiledNamedChunk(chunk)

    def _match_bucket(self, method: str, path: str) -> tuple[str, dict[str, str]] | None:
        for chunk in self._groups.get(method, ()):
            found = chunk.match(path)
            if found is not None:
                return found
        return None

    def match(self, path: str, method: str) -> MatchResult:
        """Match a request path and method.

        Args:
            path: Request path, still percent-encoded
            method: HTTP method (any case)

        Returns:
            MatchResult with status FOUND, METHOD_NOT_ALLOWED or NOT_FOUND
        """
        method = method.upper()

        for bucket in (method, ANY_METHOD):
            found = self._match_bucket(bucket, path)
            if found is not None:
                route_name, attributes = found
                return MatchResult(
                    status=MatchStatus.FOUND,
                    method=method,
                    path=path,
                    route_name=route_name,
                    attributes=attributes,
                )

        allowed: list[str] = []
        failed: list[str] = []
        for bucket in self._groups:
            found = self._match_bucket(bucket, path)
            if found is None:
                continue
            if bucket not in allowed:
                allowed.append(bucket)
            if found[0] not in failed:
                failed.append(found[0])

        if allowed:
            logger.debug(
                f"Method {method} not allowed for {path}",
                extra={"path": path, "method": method, "allowed_methods": allowed},
            )
            return MatchResult(
                status=MatchStatus.METHOD_NOT_ALLOWED,
                method=method,
                path=path,
                allowed_methods=tuple(allowed),
                failed_routes=tuple(failed),
            )

        return MatchResult(status=MatchStatus.NOT_FOUND, method=method, path=path)
