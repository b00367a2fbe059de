"""Route collector.

This module compiles registered routes into dispatch data:
- Parsing every route once, per dispatch strategy
- Bucketing parsed routes per HTTP method (any-method routes go to ANY)
- Batching each bucket into chunks of bounded size
- Building one compiled structure per chunk
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from switchyard.core.dispatch import (
    ANY_METHOD,
    DispatchData,
    MarkChunk,
    NamedChunk,
    NamedEntry,
    VariantTag,
)
from switchyard.core.parser import MarkParser, NamedParser, NamedRoute, ParsedRoute, Parser
from switchyard.core.route import Route

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 15


@dataclass(frozen=True)
class CollectedRoute:
    """A parsed route waiting in a method bucket."""

    name: str
    parsed: ParsedRoute | NamedRoute


class DispatchStrategy(ABC):
    """Turns parsed routes into chunks for one dispatch strategy."""

    name: str

    @abstractmethod
    def create_parser(self) -> Parser:
        """Create the parser producing this strategy's route data."""

    @abstractmethod
    def build_chunk(self, routes: list[CollectedRoute]) -> MarkChunk | NamedChunk:
        """Build one chunk from at most chunk_size routes."""


class MarkStrategy(DispatchStrategy):
    """Combined alternation per chunk, one tag group per route variant."""

    name = "mark"

    def create_parser(self) -> Parser:
        return MarkParser()

    def build_chunk(self, routes: list[CollectedRoute]) -> MarkChunk:
        alternatives: list[str] = []
        tags: dict[str, VariantTag] = {}

        for route_index, route in enumerate(routes):
            parsed = route.parsed
            if not isinstance(parsed, ParsedRoute):
                raise TypeError(f"Mark chunks need ParsedRoute data, got {type(parsed).__name__}")
            for variant_index, variant in enumerate(parsed.variants):
                tag = f"_r{route_index}_{variant_index}"
                groups = list(parsed.groups[variant_index]) if parsed.groups else []
                alternatives.append(f"(?P<{tag}>{variant})")
                tags[tag] = VariantTag(
                    route=route.name,
                    attributes=list(parsed.attributes[: len(groups)]),
                    groups=groups,
                )

        return MarkChunk(
            routes=[route.name for route in routes],
            regex="(?:" + "|".join(alternatives) + ")",
            tags=tags,
        )


class NamedStrategy(DispatchStrategy):
    """Named-capture regex per route, tried in sequence within a chunk."""

    name = "named"

    def create_parser(self) -> Parser:
        return NamedParser()

    def build_chunk(self, routes: list[CollectedRoute]) -> NamedChunk:
        entries: list[NamedEntry] = []
        for route in routes:
            parsed = route.parsed
            if not isinstance(parsed, NamedRoute):
                raise TypeError(f"Named chunks need NamedRoute data, got {type(parsed).__name__}")
            entries.append(
                NamedEntry(route=route.name, regex=parsed.regex, captures=dict(parsed.captures))
            )
        return NamedChunk(routes=[route.name for route in routes], entries=entries)


STRATEGIES: dict[str, type[DispatchStrategy]] = {
    MarkStrategy.name: MarkStrategy,
    NamedStrategy.name: NamedStrategy,
}


def get_strategy(name: str) -> DispatchStrategy:
    """Create a dispatch strategy by name.

    Raises:
        ValueError: If the strategy is unknown
    """
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown dispatch strategy: {name}. Must be one of {sorted(STRATEGIES)}"
        ) from None


class RegexCollector:
    """Collects routes and compiles them into per-method dispatch groups.

    Usage::

        collector = RegexCollector(chunk_size=15)
        collector.add_routes(routes)
        data = collector.get_data()
    """

    def __init__(self, strategy: str | DispatchStrategy = "mark", chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize the collector.

        Args:
            strategy: Dispatch strategy instance or name ("mark" or "named")
            chunk_size: Maximum number of routes per chunk
        """
        if chunk_size < 1:
            raise ValueError(f"Invalid chunk_size: {chunk_size}. Must be at least 1")

        self.strategy = get_strategy(strategy) if isinstance(strategy, str) else strategy
        self.chunk_size = chunk_size
        self.parser = self.strategy.create_parser()
        self._buckets: dict[str, list[CollectedRoute]] = {}
        self._seen: set[str] = set()

    def add_route(self, route: Route) -> None:
        """Parse a route and add it to its method buckets.

        A route already collected under the same name is skipped.

        Raises:
            RouteSyntaxError: If the route pattern is invalid
        """
        if route.name in self._seen:
            return

        parsed = self.parser.parse(route.path, route.tokens)
        methods = route.sorted_methods() or [ANY_METHOD]
        collected = CollectedRoute(name=route.name, parsed=parsed)

        for method in methods:
            self._buckets.setdefault(method, []).append(collected)
        self._seen.add(route.name)

    def add_routes(self, routes: Iterable[Route]) -> None:
        for route in routes:
            self.add_route(route)

    def compile(self) -> DispatchData:
        """Compile every method bucket into chunks.

        Returns:
            DispatchData holding the dispatch group of every method
        """
        start = time.perf_counter()
        groups = {
            method: [
                self.strategy.build_chunk(routes[offset : offset + self.chunk_size])
                for offset in range(0, len(routes), self.chunk_size)
            ]
            for method, routes in self._buckets.items()
        }
        data = DispatchData(strategy=self.strategy.name, chunk_size=self.chunk_size, groups=groups)

        logger.debug(
            f"Compiled {len(self._seen)} routes into {sum(len(c) for c in groups.values())} chunks",
            extra={
                "strategy": self.strategy.name,
                "methods": sorted(groups),
                "duration_ms": (time.perf_counter() - start) * 1000,
            },
        )
        return data

    def get_data(self) -> DispatchData:
        """Return the compiled dispatch data (alias of compile)."""
        return self.compile()
