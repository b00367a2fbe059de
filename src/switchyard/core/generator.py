"""URL generator.

Builds request paths from route names and attribute values, using the same
pattern grammar as the parser so generated paths match back to their route.
"""

import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from switchyard.core.exceptions import (
    AttributeMismatchError,
    MissingAttributeError,
    RouteNotFoundError,
)
from switchyard.core.parser import (
    PatternLayout,
    RouteToken,
    analyze_pattern,
    is_dynamic,
    render,
    resolve_constraint,
)
from switchyard.core.route import Route


@dataclass(frozen=True)
class _RouteLayout:
    """Analyzed pattern and resolved constraints of one route."""

    layout: PatternLayout | None
    constraints: dict[str, str]


class UrlGenerator:
    """Generates URLs for named routes.

    Example::

        generator = UrlGenerator(routes)
        generator.generate("archive", {"year": 2024, "month": "05"})
        # "/archive/2024/05"
    """

    def __init__(self, routes: Mapping[str, Route], use_cache: bool = True):
        """Initialize the generator.

        Args:
            routes: Route records keyed by name; read on every call
            use_cache: Keep analyzed patterns per route name
        """
        self.routes = routes
        self.use_cache = use_cache
        self._cache: dict[str, _RouteLayout] = {}
        self._lock = threading.Lock()

    def generate(self, name: str, attributes: Mapping[str, Any] | None = None) -> str:
        """Generate the path of a named route.

        Args:
            name: Route name
            attributes: Attribute values; None values count as missing

        Returns:
            Percent-encoded path

        Raises:
            RouteNotFoundError: If no route has this name
            MissingAttributeError: If a required attribute is missing
            AttributeMismatchError: If a value does not satisfy its constraint
        """
        route = self.routes.get(name)
        if route is None:
            raise RouteNotFoundError(name)

        values = {k: v for k, v in (attributes or {}).items() if v is not None}
        route_layout = self._get_layout(route)
        layout = route_layout.layout

        if layout is None:
            return route.path or "/"
        if layout.optional_start and not values:
            return "/"

        def substitute(token: RouteToken) -> str:
            value = str(values[token.name])
            constraint = route_layout.constraints[token.name]
            if re.fullmatch(constraint, value) is None:
                raise AttributeMismatchError(token.name, constraint, route.name)
            return quote(value, safe="")

        for token in layout.base_tokens:
            if token.name not in values:
                raise MissingAttributeError(token.name, route.name)

        path = render(layout.base, substitute)
        for segment in layout.segments:
            if any(
                not isinstance(piece, str) and piece.name not in values for piece in segment
            ):
                break
            path += render(segment, substitute)

        return path or "/"

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _get_layout(self, route: Route) -> _RouteLayout:
        if not self.use_cache:
            return self._analyze(route)

        with self._lock:
            cached = self._cache.get(route.name)
            if cached is None:
                cached = self._analyze(route)
                self._cache[route.name] = cached
        return cached

    @staticmethod
    def _analyze(route: Route) -> _RouteLayout:
        if not is_dynamic(route.path):
            return _RouteLayout(layout=None, constraints={})

        layout = analyze_pattern(route.path)
        constraints = {
            token.name: resolve_constraint(token, route.tokens, route.path)
            for token in layout.tokens
        }
        return _RouteLayout(layout=layout, constraints=constraints)
